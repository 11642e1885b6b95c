"""FastAPI application exposing the authentication endpoints."""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from prometheus_client import Counter
from pydantic import BaseModel, ConfigDict, Field, field_validator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .auth import AUTHENTICATED, PUBLIC, CurrentUser, authorize
from .config import settings
from .database import get_db, init_db
from .errors import register_exception_handlers
from .security import MAX_PASSWORD_BYTES
from .services import AuthService


limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
app = FastAPI(title=settings.api_title)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app, debug=settings.debug)
init_db()

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(CamelModel):
    """Request body for user login."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    """Request body for exchanging a refresh token."""

    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class ChangePasswordRequest(CamelModel):
    """Request body for changing the caller's password."""

    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class UserProfile(CamelModel):
    """Public view of a login enriched with the employee profile."""

    id: str
    email: str
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    role: str
    department: str = ""
    avatar: Optional[str] = None


class TokenPairResponse(CamelModel):
    """Freshly issued access and refresh tokens."""

    token: str
    refresh_token: str = Field(..., alias="refreshToken")


class LoginResponse(TokenPairResponse):
    user: UserProfile


class MessageResponse(BaseModel):
    message: str


router = APIRouter(prefix=f"{settings.api_prefix}/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(authorize(PUBLIC))],
)
@limiter.limit(settings.auth_rate_limit)
def login(
    request: Request,
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    return service.login(payload.email, payload.password)


@router.post("/logout", response_model=MessageResponse)
def logout(
    current_user: CurrentUser = Depends(authorize(AUTHENTICATED)),
    service: AuthService = Depends(get_auth_service),
):
    service.logout(current_user.id)
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/refresh",
    response_model=TokenPairResponse,
    dependencies=[Depends(authorize(PUBLIC))],
)
@limiter.limit(settings.auth_rate_limit)
def refresh(
    request: Request,
    payload: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
):
    return service.refresh_token(payload.refresh_token)


@router.get("/me", response_model=UserProfile)
def me(
    current_user: CurrentUser = Depends(authorize(AUTHENTICATED)),
    service: AuthService = Depends(get_auth_service),
):
    return service.get_current_user(current_user.id)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    current_user: CurrentUser = Depends(authorize(AUTHENTICATED)),
    service: AuthService = Depends(get_auth_service),
):
    return service.change_password(
        current_user.id, payload.current_password, payload.new_password
    )


app.include_router(router)


@app.get("/", dependencies=[Depends(authorize(PUBLIC))])
def health_check():
    return {
        "status": "ok",
        "message": f"{settings.api_title} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health", dependencies=[Depends(authorize(PUBLIC))])
def health():
    return {
        "status": "healthy",
        "uptime": time.monotonic() - STARTED_AT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
