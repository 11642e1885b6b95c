"""Per-user login lockout state machine.

A credential record is either ``NORMAL`` or ``LOCKED``. Failed logins count
towards a threshold; reaching it locks the account for a fixed window. The
lock is never cleared by a timer: an elapsed ``locked_until`` is read as
``NORMAL`` the next time a login is evaluated.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from .models.user import User


class LockState(str, enum.Enum):
    NORMAL = "normal"
    LOCKED = "locked"


@dataclass(frozen=True)
class LockoutPolicy:
    max_failed_attempts: int = 5
    lockout: timedelta = timedelta(minutes=30)


def current_state(user: User, now: datetime) -> LockState:
    if user.locked_until is not None and user.locked_until > now:
        return LockState.LOCKED
    return LockState.NORMAL


def is_locked(user: User, now: datetime) -> bool:
    return current_state(user, now) is LockState.LOCKED


def register_failure(user: User, now: datetime, policy: LockoutPolicy) -> LockState:
    """Apply ``LoginFailed`` to ``user`` in place and return the new state."""
    if user.locked_until is not None and user.locked_until <= now:
        # lock expired: counting starts over
        user.failed_login_attempts = 0
        user.locked_until = None

    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= policy.max_failed_attempts:
        user.locked_until = now + policy.lockout
        return LockState.LOCKED
    return LockState.NORMAL


def register_success(user: User, now: datetime) -> LockState:
    """Apply ``LoginSucceeded`` to ``user`` in place."""
    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    return LockState.NORMAL
