"""Password hashing and signed token issuance."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .config import Settings, settings as default_settings
from .database import utcnow
from .errors import InvalidToken, PasswordTooLong

ACCESS = "access"
REFRESH = "refresh"


MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt digest for ``password``.

    bcrypt only reads the first 72 bytes, so longer passwords are refused
    with ``PasswordTooLong`` rather than silently truncated.
    """
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLong()
    salt = bcrypt.gensalt(rounds=rounds or default_settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check ``password`` against a stored digest; malformed digests never match."""
    if not password_hash or len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried inside access and refresh tokens."""

    subject_id: int
    email: str
    role: str


class TokenService:
    """Issue and verify JWTs, keeping access and refresh keys separate."""

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or default_settings

    def issue_access_token(self, claims: TokenClaims, now: datetime | None = None) -> str:
        return self._encode(
            claims, ACCESS, self._config.jwt_secret, self._config.access_token_ttl, now
        )

    def issue_refresh_token(self, claims: TokenClaims, now: datetime | None = None) -> str:
        return self._encode(
            claims,
            REFRESH,
            self._config.jwt_refresh_secret,
            self._config.refresh_token_ttl,
            now,
        )

    def verify_access_token(self, token: str) -> TokenClaims:
        return self._decode(token, ACCESS, self._config.jwt_secret)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        return self._decode(token, REFRESH, self._config.jwt_refresh_secret)

    def _encode(
        self,
        claims: TokenClaims,
        token_type: str,
        secret: str,
        ttl: timedelta,
        now: datetime | None,
    ) -> str:
        issued_at = (now or utcnow()).replace(tzinfo=timezone.utc)
        payload = {
            # PyJWT requires a string subject; it is converted back on decode.
            "sub": str(claims.subject_id),
            "email": claims.email,
            "role": claims.role,
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": issued_at,
            "exp": issued_at + ttl,
        }
        return jwt.encode(payload, secret, algorithm=self._config.jwt_algorithm)

    def _decode(self, token: str, token_type: str, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._config.jwt_algorithm],
                options={"require": ["sub", "exp", "type"]},
            )
        except jwt.PyJWTError as exc:
            raise InvalidToken(str(exc)) from exc

        if payload.get("type") != token_type:
            raise InvalidToken("unexpected token type")
        try:
            subject_id = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise InvalidToken("malformed subject") from exc
        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or not isinstance(role, str):
            raise InvalidToken("missing identity claims")
        return TokenClaims(subject_id=subject_id, email=email, role=role)
