"""
Supervisory client for a remote irrigation controller.
"""

from .client import DeviceClient
from .gateway import CommandGateway
from .heartbeat import LivenessVerdict, evaluate
from .poller import PollHandle, Poller
from .session import DashboardSession
from .store import SnapshotStore

__all__ = [
    "CommandGateway",
    "DashboardSession",
    "DeviceClient",
    "LivenessVerdict",
    "PollHandle",
    "Poller",
    "SnapshotStore",
    "evaluate",
]
