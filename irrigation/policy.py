"""
Command eligibility rules.
"""

from __future__ import annotations

from typing import Optional

from .errors import PolicyViolation
from .schemas import Mode


def can_toggle_valve(mode: Optional[Mode], is_online: bool) -> bool:
    return mode is Mode.MANUAL and is_online


def can_change_mode(is_online: bool) -> bool:
    return is_online


def check_toggle_valve(mode: Optional[Mode], is_online: bool) -> None:
    """
    Raise PolicyViolation if a valve command is not allowed right now.
    Offline wins over automatic mode so the user is told the real blocker.
    """
    if not is_online:
        raise PolicyViolation(PolicyViolation.OFFLINE)
    if not can_toggle_valve(mode, is_online):
        raise PolicyViolation(PolicyViolation.AUTOMATIC_MODE)


def check_change_mode(is_online: bool) -> None:
    if not can_change_mode(is_online):
        raise PolicyViolation(PolicyViolation.OFFLINE)
