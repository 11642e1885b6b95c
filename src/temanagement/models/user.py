import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import validates

from ..database import Base, utcnow


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


def _in_clause(column: str, values) -> str:
    return "{} IN ({})".format(column, ", ".join(f"'{v.value}'" for v in values))


class User(Base):
    """SQLAlchemy model for login credentials and session state."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(_in_clause("role", UserRole), name="ck_users_role"),
        CheckConstraint(
            _in_clause("account_status", AccountStatus), name="ck_users_account_status"
        ),
        CheckConstraint("failed_login_attempts >= 0", name="ck_users_failed_attempts"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default=UserRole.EMPLOYEE.value, nullable=False)
    account_status = Column(String(20), default=AccountStatus.ACTIVE.value, nullable=False)

    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    refresh_token = Column(String(1024), nullable=True)
    refresh_token_expires_at = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)

    @validates("role")
    def _validate_role(self, key, value):
        if isinstance(value, UserRole):
            return value.value
        if value not in {r.value for r in UserRole}:
            raise ValueError(f"unknown role {value!r}")
        return value

    @validates("account_status")
    def _validate_account_status(self, key, value):
        if isinstance(value, AccountStatus):
            return value.value
        if value not in {s.value for s in AccountStatus}:
            raise ValueError(f"unknown account status {value!r}")
        return value

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None and self.account_status == AccountStatus.ACTIVE.value
