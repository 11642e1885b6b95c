"""Per-request authentication and role checks.

Each operation declares an :class:`AccessPolicy`; :func:`authorize` turns the
policy into a FastAPI dependency. ``PUBLIC`` operations skip the token check,
``AUTHENTICATED`` ones accept any active account and ``roles(...)`` narrows
that to a set of roles.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .errors import Forbidden, InvalidToken, Unauthorized
from .models.user import User, UserRole
from .security import TokenService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class AccessKind(str, enum.Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ROLES = "roles"


@dataclass(frozen=True)
class AccessPolicy:
    kind: AccessKind
    allowed_roles: FrozenSet[str] = field(default_factory=frozenset)

    def permits(self, role: str) -> bool:
        if self.kind is AccessKind.ROLES:
            return role in self.allowed_roles
        return True


PUBLIC = AccessPolicy(AccessKind.PUBLIC)
AUTHENTICATED = AccessPolicy(AccessKind.AUTHENTICATED)


def roles(*allowed: UserRole | str) -> AccessPolicy:
    """Policy admitting only the given roles."""
    names = frozenset(r.value if isinstance(r, UserRole) else r for r in allowed)
    if not names:
        raise ValueError("a role policy needs at least one role")
    return AccessPolicy(AccessKind.ROLES, names)


@dataclass(frozen=True)
class CurrentUser:
    """Verified identity attached to the request."""

    id: int
    email: str
    role: str


def get_token_service() -> TokenService:
    return TokenService()


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Missing bearer token")
    try:
        claims = tokens.verify_access_token(credentials.credentials)
    except InvalidToken:
        raise Unauthorized("Invalid token")

    # the token outlives account changes, so the account is checked live
    user = (
        db.query(User)
        .filter(
            User.id == claims.subject_id,
            User.email == claims.email,
            User.deleted_at.is_(None),
        )
        .first()
    )
    if user is None or not user.is_active:
        logger.info("access token rejected for inactive subject %s", claims.subject_id)
        raise Unauthorized("User account is not active")

    current = CurrentUser(id=user.id, email=user.email, role=user.role)
    request.state.user = current
    return current


def authorize(policy: AccessPolicy) -> Callable:
    """Build the dependency enforcing ``policy`` for one operation."""
    if policy.kind is AccessKind.PUBLIC:

        def allow_anonymous() -> None:
            return None

        return allow_anonymous

    def check(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not policy.permits(current_user.role):
            logger.info(
                "role %s denied, requires one of %s",
                current_user.role,
                sorted(policy.allowed_roles),
            )
            raise Forbidden()
        return current_user

    return check
