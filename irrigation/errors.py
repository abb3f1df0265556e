"""
Exceptions raised by the synchronization and command layers.
"""

from __future__ import annotations

from typing import Optional


class IrrigationError(Exception):
    """Base class for every error raised by this package."""


class FetchFailure(IrrigationError):
    """
    A read against the device failed: network error, non-2xx status or a
    payload that did not parse. The poller recovers from these on its own.
    """


class UnknownZone(IrrigationError):
    """The device's last snapshot has no zone with this id."""

    def __init__(self, zone_id: str) -> None:
        self.zone_id = zone_id
        super().__init__(f"Zone {zone_id} not found")


class CommandError(IrrigationError):
    """Base class for failures on the write path."""


class PolicyViolation(CommandError):
    """
    The command was blocked client-side before anything was sent.
    """

    OFFLINE = "offline"
    AUTOMATIC_MODE = "automatic_mode"

    _MESSAGES = {
        OFFLINE: "Device offline",
        AUTOMATIC_MODE: "Automatic mode active",
    }

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(self._MESSAGES.get(cause, cause))


class CommandInFlight(CommandError):
    """A command for the same target is still waiting on the device."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"A command for {target} is already in progress")


class CommandRejected(CommandError):
    """
    The device refused the command, or it never got there.
    ``status_code`` is None for transport failures and timeouts.
    """

    def __init__(self, reason: str, status_code: Optional[int] = None) -> None:
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)
