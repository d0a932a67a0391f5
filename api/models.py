"""
API request and response models for Pocketbook REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
ledger/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire format: JSON keys are camelCase and record ids travel as "_id", which is
what the browser client already sends and reads. Python attributes stay
snake_case; aliases do the translation in both directions.

Loose request fields: ids and money amounts are typed Any on purpose. The
ledger store validates them and answers with its own message keys
(e.g. "account.update.error._id.invalid"), which the client translates. A
Pydantic type error here would produce a generic 422 instead.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledger.models import Account, Category, CategoryNode, Currency, Operation


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _WireOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class UserStatusEnum(str, Enum):
    init = "init"
    ready = "ready"


class AccountTypeEnum(str, Enum):
    standart = "standart"
    debt = "debt"


class AccountStatusEnum(str, Enum):
    active = "active"
    archived = "archived"


class CategoryTypeEnum(str, Enum):
    expense = "expense"
    income = "income"
    any = "any"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload. code is a client message key."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Auth and user
# ---------------------------------------------------------------------------


class RegisterRequest(_Wire):
    """Request body for POST /api/v1/auth/register.

    password and repeat_password default to "" so a missing field reaches
    set_password() and yields its "required" key rather than a 422.
    """

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    repeat_password: str = Field(default="", max_length=255)
    locale: Optional[str] = Field(default=None, max_length=10)


class LoginRequest(_Wire):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class PasswordChangeRequest(_Wire):
    current_password: str = Field(min_length=1, max_length=255)
    password: str = Field(default="", max_length=255)
    repeat_password: str = Field(default="", max_length=255)


class UserDeleteRequest(_Wire):
    password: str = Field(min_length=1, max_length=255)


class StatusUpdate(_Wire):
    status: UserStatusEnum


class ProfileResponse(_WireOut):
    email: str
    status: str
    settings: dict


class AuthResponse(_WireOut):
    access_token: str
    token_type: str
    expires_in: int
    profile: ProfileResponse


class DeletionResponse(_WireOut):
    operations: int
    categories: int
    accounts: int


# ---------------------------------------------------------------------------
# Currencies
# ---------------------------------------------------------------------------


class CurrencyResponse(_WireOut):
    id: int = Field(alias="_id")
    code: str
    name: str
    symbol: str

    @classmethod
    def from_domain(cls, currency: Currency) -> "CurrencyResponse":
        return cls(id=currency.id, code=currency.code, name=currency.name, symbol=currency.symbol)


class CurrencyListResponse(_WireOut):
    currency_list: list[CurrencyResponse]


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class AccountCreate(_Wire):
    name: Any = None
    currency: Any = None
    type: AccountTypeEnum = AccountTypeEnum.standart
    start_balance: Any = 0
    status: AccountStatusEnum = AccountStatusEnum.active


class AccountUpdate(_Wire):
    id: Any = Field(default=None, alias="_id")
    name: Any = None
    start_balance: Any = None
    status: Optional[AccountStatusEnum] = None
    order: Optional[int] = Field(default=None, ge=0)


class IdRequest(_Wire):
    """Request body for the remove endpoints."""

    id: Any = Field(default=None, alias="_id")


class AccountResponse(_WireOut):
    id: int = Field(alias="_id")
    name: str
    currency: Any = None
    type: str
    start_balance: float
    balance: float
    status: str
    order: int

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            currency=account.currency_id,
            type=account.type,
            start_balance=account.start_balance,
            balance=account.balance,
            status=account.status,
            order=account.order,
        )


class AccountListResponse(_WireOut):
    accounts: list[AccountResponse]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryAdd(_Wire):
    """Request body for POST /category/add. parent None means the system root."""

    parent: Any = None
    name: Any = None
    type: CategoryTypeEnum = CategoryTypeEnum.expense


class CategoryUpdate(_Wire):
    id: Any = Field(default=None, alias="_id")
    name: Any = None


class CategoryMove(_Wire):
    id: Any = Field(default=None, alias="_id")
    to: Any = None


class CategoryTreeNode(_WireOut):
    id: int = Field(alias="_id")
    name: str
    type: str
    parent: Optional[int]
    is_system: bool
    children: list["CategoryTreeNode"] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: CategoryNode) -> "CategoryTreeNode":
        c: Category = node.category
        return cls(
            id=c.id,
            name=c.name,
            type=c.type,
            parent=c.parent_id,
            is_system=c.is_system,
            children=[cls.from_node(child) for child in node.children],
        )


class CategoryTreeResponse(_WireOut):
    categories: list[CategoryTreeNode]
    new_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class OperationCreate(_Wire):
    account: Any = None
    category: Any = None
    amount: Any = None
    created: Optional[datetime] = None
    comment: str = Field(default="", max_length=500)


class OperationUpdate(_Wire):
    """Request body for POST /operation/update.

    Only fields present in the body are changed. Sending "category": null
    explicitly moves the operation to "no category".
    """

    id: Any = Field(default=None, alias="_id")
    account: Any = None
    category: Any = None
    amount: Any = None
    created: Optional[datetime] = None
    comment: Optional[str] = Field(default=None, max_length=500)


class OperationResponse(_WireOut):
    id: int = Field(alias="_id")
    account: int
    category: Optional[int]
    amount: float
    created: str
    comment: str

    @classmethod
    def from_domain(cls, op: Operation) -> "OperationResponse":
        return cls(
            id=op.id,
            account=op.account_id,
            category=op.category_id,
            amount=op.amount,
            created=op.created,
            comment=op.comment,
        )


class OperationListResponse(_WireOut):
    operations: list[OperationResponse]
