"""
api/routes/v1/operations.py -- Operation (money movement) CRUD.

Routes:
  GET  /operation/load     -- newest first; filters: account, category,
                              dateFrom, dateTo (inclusive), limit, skip
  POST /operation/add      -- record an operation; returns it
  POST /operation/update   -- change fields present in the body; returns it
  POST /operation/remove   -- delete; 204
"""

from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.errors import from_ledger_error
from api.models import IdRequest, OperationCreate, OperationListResponse, OperationResponse, OperationUpdate
from auth.dependencies import get_current_user
from auth.models import User
from ledger.models import Operation, OperationQuery
from ledger.store import LedgerError, LedgerStore

# Auth policy: every route requires a session (router-level dependency).
router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/operation/load", response_model=OperationListResponse)
def list_operations(
    request: Request,
    current_user: User = Depends(get_current_user),
    account: Optional[int] = None,
    category: Optional[int] = None,
    date_from: Annotated[Optional[date], Query(alias="dateFrom")] = None,
    date_to: Annotated[Optional[date], Query(alias="dateTo")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    skip: Annotated[int, Query(ge=0)] = 0,
) -> OperationListResponse:
    ledger: LedgerStore = request.app.state.ledger
    query = OperationQuery(
        account_id=account,
        category_id=category,
        date_from=date_from.isoformat() if date_from else None,
        date_to=date_to.isoformat() if date_to else None,
        limit=limit,
        skip=skip,
    )
    ops = ledger.list_operations(current_user.id, query)
    return OperationListResponse(operations=[OperationResponse.from_domain(op) for op in ops])


@router.post("/operation/add", response_model=OperationResponse, status_code=201)
def add_operation(
    request: Request,
    body: OperationCreate,
    current_user: User = Depends(get_current_user),
) -> OperationResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        op_id = ledger.add_operation(
            Operation(
                user_id=current_user.id,
                account_id=body.account,
                category_id=body.category,
                amount=body.amount,
                created=body.created.isoformat() if body.created else "",
                comment=body.comment,
            )
        )
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return OperationResponse.from_domain(ledger.get_operation(current_user.id, op_id))


@router.post("/operation/update", response_model=OperationResponse)
def update_operation(
    request: Request,
    body: OperationUpdate,
    current_user: User = Depends(get_current_user),
) -> OperationResponse:
    ledger: LedgerStore = request.app.state.ledger
    fields: dict = {
        "amount": body.amount,
        "created": body.created.isoformat() if body.created else None,
        "comment": body.comment,
    }
    if "account" in body.model_fields_set:
        fields["account_id"] = body.account
    if "category" in body.model_fields_set:
        fields["category_id"] = body.category
    try:
        updated = ledger.update_operation(current_user.id, body.id, **fields)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return OperationResponse.from_domain(updated)


@router.post("/operation/remove", status_code=204)
def remove_operation(
    request: Request,
    body: IdRequest,
    current_user: User = Depends(get_current_user),
) -> Response:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.remove_operation(current_user.id, body.id)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return Response(status_code=204)
