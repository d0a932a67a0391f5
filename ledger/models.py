"""
ledger/models.py -- Domain dataclasses for the Pocketbook ledger.

These are pure data containers with zero logic. Business rules (balance sign
per account type, category tree constraints, ownership checks) live in
ledger/store.py.

Separation of concerns: these dataclasses are the ledger's domain truth, just
as auth/models.py is the user domain's. ledger/ may import auth/, never the
reverse.
"""

from dataclasses import dataclass, field
from typing import Optional

ACCOUNT_TYPES = ("standart", "debt")
ACCOUNT_STATUSES = ("active", "archived")
CATEGORY_TYPES = ("expense", "income", "any")


@dataclass
class Currency:
    code: str  # ISO 4217, e.g. "USD"
    name: str
    symbol: str = ""
    id: Optional[int] = None


@dataclass
class Account:
    """A money account owned by one user.

    type "debt" accounts track money owed; their start_balance is zero or
    negative. "standart" accounts hold money; their start_balance is zero or
    positive. (The spelling "standart" is the stored value, kept for
    compatibility with existing data and clients.)

    balance is computed on read (start_balance + sum of operation amounts)
    and is never stored.

    id is None before the record is written to the database.
    """

    user_id: int
    name: str
    currency_id: int
    type: str = "standart"
    start_balance: float = 0.0
    status: str = "active"
    order: int = 0
    id: Optional[int] = None
    created_at: str = ""
    balance: float = 0.0


@dataclass
class Category:
    """A node in a user's category tree.

    parent_id is None only for the system root. Each user has exactly one,
    of type "any"; it cannot be renamed, moved or removed.
    """

    user_id: int
    name: str
    type: str = "expense"
    parent_id: Optional[int] = None
    is_system: bool = False
    id: Optional[int] = None


@dataclass
class CategoryNode:
    """A Category with its children, as returned by build_category_tree()."""

    category: Category
    children: list["CategoryNode"] = field(default_factory=list)


@dataclass
class Operation:
    """A single money movement on an account.

    amount is signed: negative for expenses, positive for income.
    category_id None means "no category".
    """

    user_id: int
    account_id: int
    amount: float
    created: str  # ISO 8601
    category_id: Optional[int] = None
    comment: str = ""
    id: Optional[int] = None


@dataclass
class OperationQuery:
    """Filters for LedgerStore.list_operations()."""

    account_id: Optional[int] = None
    category_id: Optional[int] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    limit: int = 50
    skip: int = 0
