"""
api/routes/v1/categories.py -- Category tree editing.

Routes:
  GET  /category/load     -- the user's categories as a nested tree
  POST /category/add      -- new category under `parent` (system root if omitted)
  POST /category/update   -- rename
  POST /category/move     -- re-parent under `to`
  POST /category/remove   -- delete; its operations move to "no category"

Every route answers with the refreshed tree. /category/add also returns
newId so the client can select the new node.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.errors import from_ledger_error
from api.models import CategoryAdd, CategoryMove, CategoryTreeNode, CategoryTreeResponse, CategoryUpdate, IdRequest
from auth.dependencies import get_current_user
from auth.models import User
from ledger.store import LedgerError, LedgerStore, build_category_tree

# Auth policy: every route requires a session (router-level dependency).
router = APIRouter(dependencies=[Depends(get_current_user)])


def _tree(ledger: LedgerStore, user_id: int, new_id: Optional[int] = None) -> CategoryTreeResponse:
    ledger.ensure_system_root(user_id)
    roots = build_category_tree(ledger.list_categories(user_id))
    return CategoryTreeResponse(categories=[CategoryTreeNode.from_node(n) for n in roots], new_id=new_id)


@router.get("/category/load", response_model=CategoryTreeResponse)
def load_categories(request: Request, current_user: User = Depends(get_current_user)) -> CategoryTreeResponse:
    return _tree(request.app.state.ledger, current_user.id)


@router.post("/category/add", response_model=CategoryTreeResponse)
def add_category(
    request: Request,
    body: CategoryAdd,
    current_user: User = Depends(get_current_user),
) -> CategoryTreeResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        new_id = ledger.add_category(current_user.id, body.parent, body.name, category_type=body.type.value)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _tree(ledger, current_user.id, new_id=new_id)


@router.post("/category/update", response_model=CategoryTreeResponse)
def update_category(
    request: Request,
    body: CategoryUpdate,
    current_user: User = Depends(get_current_user),
) -> CategoryTreeResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.update_category(current_user.id, body.id, body.name)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _tree(ledger, current_user.id)


@router.post("/category/move", response_model=CategoryTreeResponse)
def move_category(
    request: Request,
    body: CategoryMove,
    current_user: User = Depends(get_current_user),
) -> CategoryTreeResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.move_category(current_user.id, body.id, body.to)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _tree(ledger, current_user.id)


@router.post("/category/remove", response_model=CategoryTreeResponse)
def remove_category(
    request: Request,
    body: IdRequest,
    current_user: User = Depends(get_current_user),
) -> CategoryTreeResponse:
    ledger: LedgerStore = request.app.state.ledger
    try:
        ledger.remove_category(current_user.id, body.id)
    except LedgerError as exc:
        raise from_ledger_error(exc) from exc
    return _tree(ledger, current_user.id)
