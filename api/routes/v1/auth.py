"""
api/routes/v1/auth.py -- Registration and session endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; sets JWT cookie
  POST /api/v1/auth/login      -- password login; sets JWT cookie
  POST /api/v1/auth/logout     -- clears cookie; 200

Security:
  register and login are rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_email() + verify().
  Cache-Control: no-store on responses that carry a token.

Threading: register and login run the PBKDF2 KDF, which is CPU-bound and
deliberately slow. They are plain `def` handlers so FastAPI runs them in its
thread pool instead of blocking the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError
from sqlalchemy.exc import IntegrityError

from api.errors import from_password_error, http_error
from api.limiter import limiter
from api.models import AuthResponse, LoginRequest, ProfileResponse, RegisterRequest
from auth import credentials
from auth.models import User
from auth.store import UserStore
from auth.tokens import COOKIE_NAME, authenticate_user, create_access_token, set_auth_cookie
from core.config import get_settings
from ledger.lifecycle import initialize_user
from ledger.store import LedgerStore

# Auth policy: every route here is public -- they establish or end a session.
router = APIRouter()

_settings = get_settings()


def _session_response(user: User, status_code: int = 200) -> JSONResponse:
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            profile=ProfileResponse(**user.profile()),
        ).model_dump(by_alias=True),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.login_rate_limit)  # above @router so FastAPI introspects the undecorated signature
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user with an email and password, then start a session.

    Validation order matches what the client renders: email first, then the
    password rules from auth.credentials.set_password().
    """
    if not body.email.strip():
        raise http_error(400, "auth.register.error.email.required", "Email is required.")
    try:
        _, email = validate_email(body.email.strip())
    except PydanticCustomError:
        raise http_error(400, "auth.register.error.email.invalid", "Email is invalid.") from None

    try:
        blob = credentials.set_password(body.password, body.repeat_password)
    except credentials.PasswordValidationError as exc:
        raise from_password_error(exc) from exc

    user_store: UserStore = request.app.state.user_store
    ledger: LedgerStore = request.app.state.ledger
    settings = {"locale": body.locale or _settings.default_locale}
    try:
        user_id = user_store.create_user(User(email=email, password=blob, settings=settings))
    except IntegrityError as exc:
        raise http_error(409, "auth.register.error.email.unique", "Email is already registered.") from exc

    user = user_store.get_by_id(user_id)
    user = initialize_user(ledger, user_store, user)
    return _session_response(user, status_code=201)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same error for unknown email and wrong password to avoid
    leaking which emails are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={
                "error": {"code": "auth.login.error.password.invalid", "message": "Invalid email or password."}
            },
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _session_response(user)


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(COOKIE_NAME)
    return resp
