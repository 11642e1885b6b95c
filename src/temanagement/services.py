"""Service layer for the authentication and session lifecycle."""

import hmac
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import lockout
from .config import Settings, settings as default_settings
from .database import utcnow
from .errors import (
    AccountNotActive,
    InvalidCredentials,
    InvalidCurrentPassword,
    InvalidRefreshToken,
    InvalidToken,
    Unauthorized,
)
from .models import AccountStatus, Employee, User, UserRole
from .security import TokenClaims, TokenService, hash_password, verify_password


logger = logging.getLogger(__name__)

# Prometheus counters for key auth events
LOGIN_COUNTER = Counter(
    "auth_login_attempts_total", "Login attempts by outcome", ["outcome"]
)
LOCKOUT_COUNTER = Counter(
    "auth_account_lockouts_total", "Accounts locked after repeated failed logins"
)
REFRESH_COUNTER = Counter(
    "auth_token_refresh_total", "Refresh token exchanges by outcome", ["outcome"]
)


def _commit(session: Session) -> None:
    """Commit, rolling back before the error propagates."""
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("auth persistence error")
        raise


def _active_users(session: Session):
    return session.query(User).filter(User.deleted_at.is_(None))


class AuthService:
    """Login, logout, refresh and password change over the credential store."""

    def __init__(
        self,
        session: Session,
        config: Settings | None = None,
        tokens: TokenService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = session
        self._config = config or default_settings
        self._tokens = tokens or TokenService(self._config)
        self._clock = clock
        self._policy = lockout.LockoutPolicy(
            max_failed_attempts=self._config.max_failed_login_attempts,
            lockout=timedelta(minutes=self._config.lockout_minutes),
        )

    def login(self, email: str, password: str) -> Dict[str, object]:
        """Verify credentials and start a new session, replacing any previous one."""
        now = self._clock()
        user = _active_users(self._db).filter(User.email == email).first()
        if user is None:
            LOGIN_COUNTER.labels(outcome="unknown_user").inc()
            logger.info("login rejected: unknown email %s", email)
            raise InvalidCredentials()

        if not user.is_active:
            LOGIN_COUNTER.labels(outcome="not_active").inc()
            logger.info("login rejected: user=%s status=%s", user.id, user.account_status)
            raise AccountNotActive()

        # locked accounts are refused before spending time on bcrypt
        if lockout.is_locked(user, now):
            LOGIN_COUNTER.labels(outcome="locked").inc()
            logger.warning("login rejected: user=%s locked until %s", user.id, user.locked_until)
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            self._record_failed_login(user.id, now)
            LOGIN_COUNTER.labels(outcome="bad_password").inc()
            raise InvalidCredentials()

        lockout.register_success(user, now)
        access_token, refresh_token = self._start_session(user, now)
        _commit(self._db)

        LOGIN_COUNTER.labels(outcome="success").inc()
        logger.info("login succeeded user=%s", user.id)
        return {
            "user": self._profile(user),
            "token": access_token,
            "refreshToken": refresh_token,
        }

    def logout(self, user_id: int) -> None:
        """Drop the stored refresh token; logging out twice is harmless."""
        self._db.query(User).filter(User.id == user_id).update(
            {User.refresh_token: None, User.refresh_token_expires_at: None},
            synchronize_session="fetch",
        )
        _commit(self._db)
        logger.info("logout user=%s", user_id)

    def refresh_token(self, presented: str) -> Dict[str, str]:
        """Exchange a refresh token for a new pair, rotating the stored one.

        Every rejection is reported as the same ``InvalidRefreshToken``.
        """
        now = self._clock()
        try:
            user = self._check_refresh_token(presented, now)
        except (InvalidToken, InvalidRefreshToken) as exc:
            REFRESH_COUNTER.labels(outcome="rejected").inc()
            logger.info("refresh rejected: %s", exc)
            raise InvalidRefreshToken() from None

        access_token, refresh_token = self._start_session(user, now)
        _commit(self._db)
        REFRESH_COUNTER.labels(outcome="rotated").inc()
        logger.info("refresh token rotated user=%s", user.id)
        return {"token": access_token, "refreshToken": refresh_token}

    def change_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> Dict[str, str]:
        user = self._get_user(user_id)
        if not verify_password(current_password, user.password_hash):
            logger.info("password change rejected user=%s", user_id)
            raise InvalidCurrentPassword()

        # Issued tokens stay valid until they expire or the user logs out.
        user.password_hash = hash_password(new_password, self._config.bcrypt_rounds)
        user.password_changed_at = self._clock()
        _commit(self._db)
        logger.info("password changed user=%s", user_id)
        return {"message": "Password changed successfully"}

    def get_current_user(self, user_id: int) -> Dict[str, Optional[str]]:
        return self._profile(self._get_user(user_id))

    def _get_user(self, user_id: int) -> User:
        user = _active_users(self._db).filter(User.id == user_id).first()
        if user is None:
            raise Unauthorized("User not found")
        return user

    def _check_refresh_token(self, presented: str, now: datetime) -> User:
        claims = self._tokens.verify_refresh_token(presented)
        user = _active_users(self._db).filter(User.id == claims.subject_id).first()
        if user is None:
            raise InvalidRefreshToken("unknown subject")
        stored = user.refresh_token
        if stored is None or not hmac.compare_digest(stored.encode(), presented.encode()):
            raise InvalidRefreshToken("token is not the active session")
        expires_at = user.refresh_token_expires_at
        if expires_at is None or now >= expires_at:
            raise InvalidRefreshToken("stored token expired")
        return user

    def _start_session(self, user: User, now: datetime) -> tuple[str, str]:
        """Issue a token pair and store the refresh half on ``user``."""
        claims = TokenClaims(subject_id=user.id, email=user.email, role=user.role)
        access_token = self._tokens.issue_access_token(claims, now)
        refresh_token = self._tokens.issue_refresh_token(claims, now)
        user.refresh_token = refresh_token
        user.refresh_token_expires_at = now + self._config.refresh_token_ttl
        return access_token, refresh_token

    def _record_failed_login(self, user_id: int, now: datetime) -> None:
        # re-read under a row lock so concurrent failures are not lost
        user = (
            self._db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        state = lockout.register_failure(user, now, self._policy)
        _commit(self._db)
        if state is lockout.LockState.LOCKED:
            LOCKOUT_COUNTER.inc()
            logger.warning(
                "user=%s locked until %s after %s failed logins",
                user_id,
                user.locked_until,
                user.failed_login_attempts,
            )
        else:
            logger.info(
                "login failed user=%s attempts=%s", user_id, user.failed_login_attempts
            )

    def _profile(self, user: User) -> Dict[str, Optional[str]]:
        """Public view of ``user`` enriched with its employee profile, if any."""
        employee = (
            self._db.query(Employee)
            .filter(Employee.user_id == user.id, Employee.deleted_at.is_(None))
            .first()
        )
        department = employee.department if employee is not None else None
        if department is not None and department.deleted_at is not None:
            department = None
        return {
            "id": str(user.id),
            "email": user.email,
            "firstName": employee.first_name if employee else "",
            "lastName": employee.last_name if employee else "",
            "role": user.role,
            "department": department.name if department else "",
            "avatar": employee.avatar_url if employee else None,
        }


def create_user(
    session: Session,
    email: str,
    password: str,
    role: UserRole | str = UserRole.EMPLOYEE,
    account_status: AccountStatus | str = AccountStatus.ACTIVE,
    rounds: int | None = None,
) -> User:
    """Provision a credential record with a freshly hashed password."""
    existing = session.query(User).filter(User.email == email).first()
    if existing is not None:
        # the unique index also covers soft-deleted rows
        state = "a deleted account" if existing.deleted_at is not None else "an account"
        raise ValueError(f"email {email!r} already belongs to {state}")
    user = User(
        email=email,
        password_hash=hash_password(password, rounds),
        role=role,
        account_status=account_status,
        failed_login_attempts=0,
    )
    session.add(user)
    _commit(session)
    session.refresh(user)
    logger.info("user created id=%s role=%s", user.id, user.role)
    return user


def soft_delete_user(session: Session, user_id: int) -> bool:
    """Mark a user and its profile deleted; returns False when already gone."""
    user = _active_users(session).filter(User.id == user_id).first()
    if user is None:
        return False
    now = utcnow()
    user.deleted_at = now
    user.refresh_token = None
    user.refresh_token_expires_at = None
    session.query(Employee).filter(
        Employee.user_id == user_id, Employee.deleted_at.is_(None)
    ).update({Employee.deleted_at: now}, synchronize_session="fetch")
    _commit(session)
    logger.info("user soft-deleted id=%s", user_id)
    return True
