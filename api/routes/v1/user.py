"""
api/routes/v1/user.py -- The signed-in user's own profile and credentials.

Routes:
  GET  /api/v1/user/profile   -- email, status, settings
  POST /api/v1/user/status    -- mark first-run walkthrough done ("ready") or redo it ("init")
  POST /api/v1/user/password  -- change password (current password required)
  POST /api/v1/user/remove    -- delete the account and all its data (password required)

Password change and removal re-verify the current password even though the
request is authenticated: a stolen session cookie alone must not be enough to
lock the owner out or destroy their data.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import from_password_error, http_error
from api.models import DeletionResponse, PasswordChangeRequest, ProfileResponse, StatusUpdate, UserDeleteRequest
from auth import credentials
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import COOKIE_NAME, check_password
from ledger import lifecycle
from ledger.store import LedgerStore

# Auth policy: every route requires a session (router-level dependency).
router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/user/profile", response_model=ProfileResponse)
async def profile(current_user: User = Depends(get_current_user)) -> ProfileResponse:
    return ProfileResponse(**current_user.profile())


@router.post("/user/status", response_model=ProfileResponse)
def update_status(
    request: Request,
    body: StatusUpdate,
    current_user: User = Depends(get_current_user),
) -> ProfileResponse:
    user_store: UserStore = request.app.state.user_store
    user_store.update_user(current_user.id, status=body.status.value)
    if body.status.value == "init":
        # Re-running the walkthrough restores any missing defaults.
        ledger: LedgerStore = request.app.state.ledger
        lifecycle.initialize_user(ledger, user_store, user_store.get_by_id(current_user.id))
    return ProfileResponse(**user_store.get_by_id(current_user.id).profile())


@router.post("/user/password")
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Replace the stored credential after checking the current password."""
    if not check_password(current_user, body.current_password):
        raise http_error(400, "user.password.error.currentPassword.invalid", "Current password is incorrect.")
    try:
        blob = credentials.set_password(body.password, body.repeat_password)
    except credentials.PasswordValidationError as exc:
        raise from_password_error(exc) from exc
    user_store: UserStore = request.app.state.user_store
    user_store.set_password(current_user.id, blob)
    return JSONResponse(content={"message": "Password changed."})


@router.post("/user/remove", response_model=DeletionResponse)
def remove_user(
    request: Request,
    body: UserDeleteRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Delete the user and everything they own.

    Dependents are removed before the user record (ledger.lifecycle). If a
    step fails the generic 500 handler answers and the user can retry.
    """
    if not check_password(current_user, body.password):
        raise http_error(400, "user.remove.error.password.invalid", "Password is incorrect.")
    report = lifecycle.delete_user(request.app.state.ledger, request.app.state.user_store, current_user.id)
    resp = JSONResponse(
        content=DeletionResponse(
            operations=report.operations,
            categories=report.categories,
            accounts=report.accounts,
        ).model_dump(by_alias=True)
    )
    resp.delete_cookie(COOKIE_NAME)
    return resp
