"""
api/routes/v1/accounts.py -- Currency list and account CRUD.

Routes:
  GET  /currency/load     -- all configured currencies
  GET  /account/load      -- the user's accounts with current balances
  POST /account/add       -- create an account
  POST /account/update    -- change name / startBalance / status / order
  POST /account/remove    -- delete an account and its operations

Every mutating route answers with the full, refreshed account list so the
client can replace its state in one step.

Errors: LedgerError keys from ledger/store.py, e.g.
  account.update.error._id.required / .invalid / .notFound
  account.update.error.startBalance.invalid / .positive / .negative
  account.update.error.name.exist
"""

from fastapi import APIRouter, Depends, Request

from api.errors import from_ledger_error
from api.models import (
    AccountCreate,
    AccountListResponse,
    AccountResponse,
    AccountUpdate,
    CurrencyListResponse,
    CurrencyResponse,
    IdRequest,
)
from auth.dependencies import get_current_user
from auth.models import User
from ledger.models import Account
from ledger.store import LedgerError, LedgerStore

# Auth policy: every route requires a session (router-level dependency).
router = APIRouter(dependencies=[Depends(get_current_user)])


def _account_list(ledger: LedgerStore, user_id: int) -> AccountListResponse:
    return AccountListResponse(accounts=[AccountResponse.from_domain(a) for a in ledger.list_accounts(user_id)])


@router.get("/currency/load", response_model=CurrencyListResponse)
def list_currencies(request: Request) -> CurrencyListResponse:
    ledger: LedgerStore = request.app.state.ledger
    return CurrencyListResponse(currency_list=[CurrencyResponse.from_domain(c) for c in ledger.list_currencies()])


@router.get("/account/load", response_model=AccountListResponse)
def list_accounts(request: Request, current_user: User = Depends(get_current_user)) -> AccountListResponse:
    return _account_list(request.app.state.ledger, current_user.id)


@router.post("/account/add", response_model=AccountListResponse)
def add_account(
    request: Request,
    body: AccountCreate,
    current_user: User = Depends(get_current_user),
) -> AccountListResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.create_account(
            Account(
                user_id=current_user.id,
                name=body.name,
                currency_id=body.currency,
                type=body.type.value,
                start_balance=body.start_balance,
                status=body.status.value,
            )
        )
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _account_list(ledger, current_user.id)


@router.post("/account/update", response_model=AccountListResponse)
def update_account(
    request: Request,
    body: AccountUpdate,
    current_user: User = Depends(get_current_user),
) -> AccountListResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.update_account(
            current_user.id,
            body.id,
            name=body.name,
            start_balance=body.start_balance,
            status=body.status.value if body.status else None,
            order=body.order,
        )
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _account_list(ledger, current_user.id)


@router.post("/account/remove", response_model=AccountListResponse)
def remove_account(
    request: Request,
    body: IdRequest,
    current_user: User = Depends(get_current_user),
) -> AccountListResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.remove_account(current_user.id, body.id)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _account_list(ledger, current_user.id)
