import re
from datetime import timedelta

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str) -> timedelta:
    """Turn a duration string such as ``"15m"`` or ``"7d"`` into a timedelta."""
    match = _DURATION_RE.match(value or "")
    if match is None:
        raise ValueError(f"invalid duration {value!r}, expected e.g. '15m' or '7d'")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field("sqlite:///temanagement.db")
    api_title: str = Field("TE Management API")
    api_prefix: str = Field("/api")
    debug: bool = Field(False)

    jwt_secret: str = Field("dev-access-secret-change-me")
    jwt_expires_in: str = Field("1h")
    jwt_refresh_secret: str = Field("dev-refresh-secret-change-me")
    jwt_refresh_expires_in: str = Field("7d")
    jwt_algorithm: str = Field("HS256")

    bcrypt_rounds: int = Field(10, ge=4, le=31)
    max_failed_login_attempts: int = Field(5, ge=1)
    lockout_minutes: int = Field(30, ge=1)

    rate_limit_enabled: bool = Field(True)
    auth_rate_limit: str = Field("10/minute")

    @field_validator("jwt_expires_in", "jwt_refresh_expires_in")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def _check_key_separation(self) -> "Settings":
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_expires_in)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_refresh_expires_in)


settings = Settings()
