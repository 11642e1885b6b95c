from datetime import datetime, timedelta

import pytest

from temanagement import lockout
from temanagement.lockout import LockState, LockoutPolicy
from temanagement.models import User


NOW = datetime(2026, 3, 1, 12, 0, 0)
POLICY = LockoutPolicy(max_failed_attempts=5, lockout=timedelta(minutes=30))


def _user(**kwargs) -> User:
    values = {"email": "u@x.com", "password_hash": "x", "role": "employee", "failed_login_attempts": 0}
    values.update(kwargs)
    return User(**values)


def test_failures_below_threshold_stay_normal():
    user = _user()
    for attempt in range(1, 5):
        assert lockout.register_failure(user, NOW, POLICY) is LockState.NORMAL
        assert user.failed_login_attempts == attempt
    assert user.locked_until is None


def test_fifth_failure_locks_for_thirty_minutes():
    user = _user(failed_login_attempts=4)
    assert lockout.register_failure(user, NOW, POLICY) is LockState.LOCKED
    assert user.locked_until == NOW + timedelta(minutes=30)
    assert lockout.is_locked(user, NOW + timedelta(minutes=29))


def test_elapsed_lock_reads_as_normal():
    user = _user(failed_login_attempts=5, locked_until=NOW - timedelta(seconds=1))
    assert lockout.current_state(user, NOW) is LockState.NORMAL


def test_failure_after_elapsed_lock_starts_counting_again():
    user = _user(failed_login_attempts=5, locked_until=NOW - timedelta(minutes=1))
    assert lockout.register_failure(user, NOW, POLICY) is LockState.NORMAL
    assert user.failed_login_attempts == 1
    assert user.locked_until is None


def test_success_resets_counters():
    user = _user(failed_login_attempts=3, locked_until=NOW - timedelta(minutes=1))
    assert lockout.register_success(user, NOW) is LockState.NORMAL
    assert user.failed_login_attempts == 0
    assert user.locked_until is None
    assert user.last_login_at == NOW


def test_unknown_role_rejected_by_model():
    with pytest.raises(ValueError):
        _user(role="superuser")
