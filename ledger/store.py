"""
ledger/store.py -- SQLAlchemy-backed persistence layer for the Pocketbook ledger.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in ledger/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. LedgerStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route
handlers never touch SQL directly.

Ownership: every account, category and operation belongs to one user, and
every read or write takes user_id. A record owned by someone else is
reported exactly like a missing one ("notFound"), so ids cannot be probed
across users.

Errors: rule violations raise LedgerError with a message key of the form
    <entity>.<action>.error.<field>.<reason>
e.g. "account.update.error.startBalance.negative". The front end translates
the key; routes map it to an HTTP status (see LedgerError.status_code).

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = LedgerStore()                               # SQLite default
    store = LedgerStore("postgresql://user:pw@host/db") # PostgreSQL
    account_id = store.create_account(Account(user_id=1, name="cash", currency_id=usd.id))
    store.add_operation(Operation(user_id=1, account_id=account_id, amount=-12.5, created=now))
    accounts = store.list_accounts(1)
    store.close()
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from ledger.models import (
    ACCOUNT_STATUSES,
    ACCOUNT_TYPES,
    CATEGORY_TYPES,
    Account,
    Category,
    CategoryNode,
    Currency,
    Operation,
    OperationQuery,
)

logger = logging.getLogger("pocketbook.ledger")

_DEFAULT_CURRENCIES: list[Currency] = [
    Currency(code="USD", name="US Dollar", symbol="$"),
    Currency(code="EUR", name="Euro", symbol="€"),
    Currency(code="RUB", name="Russian Ruble", symbol="₽"),
]

SYSTEM_ROOT_NAME = "categories"

_MAX_NAME_LENGTH = 100

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_currencies = Table(
    "currencies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(3), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("symbol", String(8), nullable=False, server_default=""),
)

_accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(_MAX_NAME_LENGTH), nullable=False),
    Column("currency_id", Integer, nullable=False),
    Column("type", String(10), nullable=False, server_default="standart"),
    Column("start_balance", Float, nullable=False, server_default="0"),
    Column("status", String(10), nullable=False, server_default="active"),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(_MAX_NAME_LENGTH), nullable=False),
    Column("type", String(10), nullable=False, server_default="expense"),
    Column("parent_id", Integer),  # NULL for the system root
    Column("is_system", Integer, nullable=False, server_default="0"),
)

_operations = Table(
    "operations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("account_id", Integer, nullable=False, index=True),
    Column("category_id", Integer),  # NULL = "no category"
    Column("amount", Float, nullable=False),
    Column("created", String(32), nullable=False),
    Column("comment", Text, nullable=False, server_default=""),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LedgerError(Exception):
    """A ledger rule was violated. code is the front end's message key."""

    def __init__(self, entity: str, action: str, field: str, reason: str) -> None:
        self.code = f"{entity}.{action}.error.{field}.{reason}"
        self.field = field
        self.reason = reason
        super().__init__(self.code)

    @property
    def status_code(self) -> int:
        return 404 if self.reason == "notFound" else 400


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def parse_id(value: Any, entity: str, action: str, field: str = "_id") -> int:
    """Coerce a client-supplied id to int.

    None or "" -> <field>.required; anything that is not a positive integer
    (or its decimal string form) -> <field>.invalid.
    """
    if value is None or value == "":
        raise LedgerError(entity, action, field, "required")
    if isinstance(value, bool):
        raise LedgerError(entity, action, field, "invalid")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise LedgerError(entity, action, field, "invalid")
    if parsed < 1:
        raise LedgerError(entity, action, field, "invalid")
    return parsed


def parse_amount(value: Any, entity: str, action: str, field: str) -> float:
    """Coerce a client-supplied money amount to float or raise <field>.invalid."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise LedgerError(entity, action, field, "invalid")
    try:
        parsed = float(value)
    except ValueError:
        raise LedgerError(entity, action, field, "invalid") from None
    if not math.isfinite(parsed):
        raise LedgerError(entity, action, field, "invalid")
    return parsed


def _parse_name(value: Any, entity: str, action: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise LedgerError(entity, action, "name", "required")
    name = value.strip()
    if len(name) > _MAX_NAME_LENGTH:
        raise LedgerError(entity, action, "name", "long")
    return name


def check_balance_sign(account_type: str, start_balance: float, action: str) -> None:
    """Debt accounts cannot start positive; standard accounts cannot start negative."""
    if account_type == "debt" and start_balance > 0:
        raise LedgerError("account", action, "startBalance", "positive")
    if account_type == "standart" and start_balance < 0:
        raise LedgerError("account", action, "startBalance", "negative")


def types_compatible(parent_type: str, child_type: str) -> bool:
    """A parent of type "any" accepts every child type; otherwise types must match."""
    return parent_type == "any" or parent_type == child_type


def build_category_tree(categories: list[Category]) -> list[CategoryNode]:
    """Nest a flat category list into a forest, preserving input order.

    Categories whose parent is missing from the list become roots, so a
    partial list still renders.
    """
    nodes = {c.id: CategoryNode(category=c) for c in categories}
    roots: list[CategoryNode] = []
    for c in categories:
        node = nodes[c.id]
        parent = nodes.get(c.parent_id) if c.parent_id is not None else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots


def to_utc_iso(value: Any, action: str) -> str:
    """Normalise an operation timestamp to an ISO 8601 string in UTC.

    Listing sorts and filters on the stored text, so every row must carry the
    same offset. Naive values are taken to be UTC already.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise LedgerError("operation", action, "created", "invalid") from None
    if not isinstance(value, datetime):
        raise LedgerError("operation", action, "created", "invalid")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.astimezone(timezone.utc).isoformat()


def _date_to_bound(date_to: str) -> str:
    """Exclusive upper bound for an inclusive date_to filter.

    A bare date (YYYY-MM-DD) covers the whole day, so the bound is the next
    midnight. A full timestamp is used as-is.
    """
    if len(date_to) == 10:
        return (date.fromisoformat(date_to) + timedelta(days=1)).isoformat()
    return date_to + "\x00"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LedgerStore:
    """Repository for currencies, accounts, categories and operations."""

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().ledger_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self._seed_currencies()

    def _seed_currencies(self) -> None:
        """Insert the default currencies that are not present yet. Idempotent."""
        with self.engine.connect() as conn:
            existing = {row.code for row in conn.execute(select(_currencies.c.code))}
            for currency in _DEFAULT_CURRENCIES:
                if currency.code not in existing:
                    conn.execute(
                        _currencies.insert().values(code=currency.code, name=currency.name, symbol=currency.symbol)
                    )
            conn.commit()

    # ------------------------------------------------------------------
    # Currencies
    # ------------------------------------------------------------------

    def list_currencies(self) -> list[Currency]:
        with self.engine.connect() as conn:
            rows = conn.execute(_currencies.select().order_by(_currencies.c.code)).fetchall()
        return [_row_to_currency(r) for r in rows]

    def get_currency(self, currency_id: int) -> Optional[Currency]:
        with self.engine.connect() as conn:
            row = conn.execute(_currencies.select().where(_currencies.c.id == currency_id)).fetchone()
        return _row_to_currency(row) if row is not None else None

    def get_currency_by_code(self, code: str) -> Optional[Currency]:
        with self.engine.connect() as conn:
            row = conn.execute(_currencies.select().where(_currencies.c.code == code.upper())).fetchone()
        return _row_to_currency(row) if row is not None else None

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _account_name_taken(self, conn, user_id: int, name: str) -> bool:
        stmt = select(func.count()).where(
            (_accounts.c.user_id == user_id) & (func.lower(_accounts.c.name) == name.lower())
        )
        return (conn.execute(stmt).scalar() or 0) > 0

    def create_account(self, account: Account) -> int:
        """Validate and insert a new account. Returns its id.

        order defaults to the end of the user's list.
        """
        action = "add"
        name = _parse_name(account.name, "account", action)
        if account.type not in ACCOUNT_TYPES:
            raise LedgerError("account", action, "type", "invalid")
        if account.status not in ACCOUNT_STATUSES:
            raise LedgerError("account", action, "status", "invalid")
        start_balance = parse_amount(account.start_balance, "account", action, "startBalance")
        check_balance_sign(account.type, start_balance, action)
        currency_id = parse_id(account.currency_id, "account", action, field="currency")
        if self.get_currency(currency_id) is None:
            raise LedgerError("account", action, "currency", "notFound")

        with self.engine.connect() as conn:
            if self._account_name_taken(conn, account.user_id, name):
                raise LedgerError("account", action, "name", "exist")
            order = account.order
            if not order:
                count = conn.execute(
                    select(func.count()).where(_accounts.c.user_id == account.user_id)
                ).scalar()
                order = count or 0
            result = conn.execute(
                _accounts.insert().values(
                    user_id=account.user_id,
                    name=name,
                    currency_id=currency_id,
                    type=account.type,
                    start_balance=start_balance,
                    status=account.status,
                    sort_order=order,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def _balance_select(self):
        sums = (
            select(
                _operations.c.account_id,
                func.sum(_operations.c.amount).label("total"),
            )
            .group_by(_operations.c.account_id)
            .subquery()
        )
        return select(
            _accounts,
            (_accounts.c.start_balance + func.coalesce(sums.c.total, 0)).label("balance"),
        ).select_from(_accounts.outerjoin(sums, sums.c.account_id == _accounts.c.id))

    def list_accounts(self, user_id: int) -> list[Account]:
        """Return the user's accounts in display order, each with its current balance."""
        stmt = (
            self._balance_select()
            .where(_accounts.c.user_id == user_id)
            .order_by(_accounts.c.sort_order, _accounts.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_account(r) for r in rows]

    def get_account(self, user_id: int, account_id: int) -> Optional[Account]:
        stmt = self._balance_select().where((_accounts.c.user_id == user_id) & (_accounts.c.id == account_id))
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_account(self, user_id: int, account_id: Any, **fields) -> Account:
        """Update name, start_balance, status or order on an account.

        account_id may be the raw client value; it is validated here so the
        caller gets the same error keys whatever transport it uses. Fields
        left out (or None) are unchanged. The balance sign rule is checked
        against the account's existing type.
        """
        action = "update"
        account_id = parse_id(account_id, "account", action)
        current = self.get_account(user_id, account_id)
        if current is None:
            raise LedgerError("account", action, "_id", "notFound")

        values: dict = {}
        if fields.get("start_balance") is not None:
            start_balance = parse_amount(fields["start_balance"], "account", action, "startBalance")
            check_balance_sign(current.type, start_balance, action)
            values["start_balance"] = start_balance
        if fields.get("status") is not None:
            if fields["status"] not in ACCOUNT_STATUSES:
                raise LedgerError("account", action, "status", "invalid")
            values["status"] = fields["status"]
        if fields.get("order") is not None:
            values["sort_order"] = int(fields["order"])

        with self.engine.connect() as conn:
            if fields.get("name") is not None:
                name = _parse_name(fields["name"], "account", action)
                # The account's own row counts: renaming to the current name is a clash.
                if self._account_name_taken(conn, user_id, name):
                    raise LedgerError("account", action, "name", "exist")
                values["name"] = name
            if values:
                conn.execute(
                    _accounts.update()
                    .where((_accounts.c.id == account_id) & (_accounts.c.user_id == user_id))
                    .values(**values)
                )
                conn.commit()
        return self.get_account(user_id, account_id)

    def remove_account(self, user_id: int, account_id: Any) -> int:
        """Delete an account and every operation recorded on it.

        Both deletes run in one transaction. Returns the number of
        operations removed.
        """
        account_id = parse_id(account_id, "account", "remove")
        with self.engine.connect() as conn:
            owned = conn.execute(
                select(_accounts.c.id).where((_accounts.c.id == account_id) & (_accounts.c.user_id == user_id))
            ).fetchone()
            if owned is None:
                raise LedgerError("account", "remove", "_id", "notFound")
            ops = conn.execute(
                _operations.delete().where(
                    (_operations.c.account_id == account_id) & (_operations.c.user_id == user_id)
                )
            )
            conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        logger.info("Removed account id=%d with %d operations", account_id, ops.rowcount)
        return ops.rowcount

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def ensure_system_root(self, user_id: int) -> int:
        """Return the id of the user's system root category, creating it if needed."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_categories.c.id).where(
                    (_categories.c.user_id == user_id)
                    & (_categories.c.is_system == 1)
                    & _categories.c.parent_id.is_(None)
                )
            ).fetchone()
            if row is not None:
                return row.id
            result = conn.execute(
                _categories.insert().values(
                    user_id=user_id, name=SYSTEM_ROOT_NAME, type="any", parent_id=None, is_system=1
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_categories(self, user_id: int) -> list[Category]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _categories.select().where(_categories.c.user_id == user_id).order_by(_categories.c.id)
            ).fetchall()
        return [_row_to_category(r) for r in rows]

    def get_category(self, user_id: int, category_id: int) -> Optional[Category]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _categories.select().where((_categories.c.id == category_id) & (_categories.c.user_id == user_id))
            ).fetchone()
        return _row_to_category(row) if row is not None else None

    def _sibling_name_taken(
        self, conn, user_id: int, parent_id: int, name: str, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(func.count()).where(
            (_categories.c.user_id == user_id)
            & (_categories.c.parent_id == parent_id)
            & (func.lower(_categories.c.name) == name.lower())
        )
        if exclude_id is not None:
            stmt = stmt.where(_categories.c.id != exclude_id)
        return (conn.execute(stmt).scalar() or 0) > 0

    def _editable_category(self, user_id: int, category_id: Any, action: str) -> Category:
        category_id = parse_id(category_id, "category", action)
        category = self.get_category(user_id, category_id)
        if category is None:
            raise LedgerError("category", action, "_id", "notFound")
        if category.is_system:
            raise LedgerError("category", action, "_id", "isSystem")
        return category

    def add_category(self, user_id: int, parent_id: Any, name: Any, category_type: str = "expense") -> int:
        """Create a category under parent_id (the system root when None). Returns its id."""
        action = "add"
        name = _parse_name(name, "category", action)
        if category_type not in CATEGORY_TYPES:
            raise LedgerError("category", action, "type", "invalid")
        if parent_id is None or parent_id == "":
            parent_id = self.ensure_system_root(user_id)
        else:
            parent_id = parse_id(parent_id, "category", action)
        parent = self.get_category(user_id, parent_id)
        if parent is None:
            raise LedgerError("category", action, "_id", "notFound")
        if not types_compatible(parent.type, category_type):
            raise LedgerError("category", action, "type", "incompatible")
        with self.engine.connect() as conn:
            if self._sibling_name_taken(conn, user_id, parent_id, name):
                raise LedgerError("category", action, "name", "exist")
            result = conn.execute(
                _categories.insert().values(
                    user_id=user_id, name=name, type=category_type, parent_id=parent_id, is_system=0
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_category(self, user_id: int, category_id: Any, name: Any) -> Category:
        """Rename a category. The type is fixed at creation; moving may not change it."""
        action = "update"
        category = self._editable_category(user_id, category_id, action)
        name = _parse_name(name, "category", action)
        with self.engine.connect() as conn:
            if self._sibling_name_taken(conn, user_id, category.parent_id, name, exclude_id=category.id):
                raise LedgerError("category", action, "name", "exist")
            conn.execute(_categories.update().where(_categories.c.id == category.id).values(name=name))
            conn.commit()
        category.name = name
        return category

    def _descendant_ids(self, user_id: int, category_id: int) -> set[int]:
        children: dict[int, list[int]] = {}
        for c in self.list_categories(user_id):
            if c.parent_id is not None:
                children.setdefault(c.parent_id, []).append(c.id)
        found: set[int] = set()
        stack = [category_id]
        while stack:
            for child in children.get(stack.pop(), []):
                if child not in found:
                    found.add(child)
                    stack.append(child)
        return found

    def move_category(self, user_id: int, category_id: Any, to: Any) -> Category:
        """Re-parent a category (with its subtree) under `to`.

        Rejects moves under the category itself or any of its descendants,
        which would detach the subtree from the root.
        """
        action = "move"
        category = self._editable_category(user_id, category_id, action)
        target_id = parse_id(to, "category", action, field="to")
        target = self.get_category(user_id, target_id)
        if target is None:
            raise LedgerError("category", action, "to", "notFound")
        if target.id == category.id or target.id in self._descendant_ids(user_id, category.id):
            raise LedgerError("category", action, "to", "invalid")
        if not types_compatible(target.type, category.type):
            raise LedgerError("category", action, "type", "incompatible")
        with self.engine.connect() as conn:
            if self._sibling_name_taken(conn, user_id, target.id, category.name, exclude_id=category.id):
                raise LedgerError("category", action, "name", "exist")
            conn.execute(_categories.update().where(_categories.c.id == category.id).values(parent_id=target.id))
            conn.commit()
        category.parent_id = target.id
        return category

    def remove_category(self, user_id: int, category_id: Any) -> int:
        """Delete a category.

        Its operations move to "no category" and its children move up to its
        parent, in one transaction. Returns the number of operations moved.
        """
        category = self._editable_category(user_id, category_id, "remove")
        with self.engine.connect() as conn:
            moved = conn.execute(
                _operations.update()
                .where((_operations.c.category_id == category.id) & (_operations.c.user_id == user_id))
                .values(category_id=None)
            )
            conn.execute(
                _categories.update()
                .where((_categories.c.parent_id == category.id) & (_categories.c.user_id == user_id))
                .values(parent_id=category.parent_id)
            )
            conn.execute(_categories.delete().where(_categories.c.id == category.id))
            conn.commit()
        return moved.rowcount

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _check_operation_refs(
        self, user_id: int, account_id: Any, category_id: Any, action: str
    ) -> tuple[int, Optional[int]]:
        account_id = parse_id(account_id, "operation", action, field="account")
        if self.get_account(user_id, account_id) is None:
            raise LedgerError("operation", action, "account", "notFound")
        if category_id is None or category_id == "":
            return account_id, None
        category_id = parse_id(category_id, "operation", action, field="category")
        if self.get_category(user_id, category_id) is None:
            raise LedgerError("operation", action, "category", "notFound")
        return account_id, category_id

    def add_operation(self, operation: Operation) -> int:
        action = "add"
        amount = parse_amount(operation.amount, "operation", action, "amount")
        if amount == 0:
            raise LedgerError("operation", action, "amount", "invalid")
        account_id, category_id = self._check_operation_refs(
            operation.user_id, operation.account_id, operation.category_id, action
        )
        created = to_utc_iso(operation.created, action) if operation.created else _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _operations.insert().values(
                    user_id=operation.user_id,
                    account_id=account_id,
                    category_id=category_id,
                    amount=amount,
                    created=created,
                    comment=operation.comment or "",
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_operation(self, user_id: int, operation_id: int) -> Optional[Operation]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _operations.select().where((_operations.c.id == operation_id) & (_operations.c.user_id == user_id))
            ).fetchone()
        return _row_to_operation(row) if row is not None else None

    def list_operations(self, user_id: int, query: Optional[OperationQuery] = None) -> list[Operation]:
        """Return the user's operations, newest first, filtered by query."""
        query = query or OperationQuery()
        stmt = _operations.select().where(_operations.c.user_id == user_id)
        if query.account_id is not None:
            stmt = stmt.where(_operations.c.account_id == query.account_id)
        if query.category_id is not None:
            stmt = stmt.where(_operations.c.category_id == query.category_id)
        if query.date_from:
            stmt = stmt.where(_operations.c.created >= query.date_from)
        if query.date_to:
            stmt = stmt.where(_operations.c.created < _date_to_bound(query.date_to))
        stmt = (
            stmt.order_by(_operations.c.created.desc(), _operations.c.id.desc())
            .limit(query.limit)
            .offset(query.skip)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_operation(r) for r in rows]

    def update_operation(self, user_id: int, operation_id: Any, **fields) -> Operation:
        """Update account_id, category_id, amount, created or comment on an operation.

        category_id may be passed explicitly as None to clear the category;
        other fields are unchanged when omitted.
        """
        action = "update"
        operation_id = parse_id(operation_id, "operation", action)
        current = self.get_operation(user_id, operation_id)
        if current is None:
            raise LedgerError("operation", action, "_id", "notFound")

        values: dict = {}
        if fields.get("amount") is not None:
            amount = parse_amount(fields["amount"], "operation", action, "amount")
            if amount == 0:
                raise LedgerError("operation", action, "amount", "invalid")
            values["amount"] = amount
        if "account_id" in fields or "category_id" in fields:
            account_id, category_id = self._check_operation_refs(
                user_id,
                fields.get("account_id") or current.account_id,
                fields["category_id"] if "category_id" in fields else current.category_id,
                action,
            )
            values["account_id"] = account_id
            values["category_id"] = category_id
        if fields.get("created"):
            values["created"] = to_utc_iso(fields["created"], action)
        if fields.get("comment") is not None:
            values["comment"] = fields["comment"]

        if values:
            with self.engine.connect() as conn:
                conn.execute(_operations.update().where(_operations.c.id == operation_id).values(**values))
                conn.commit()
        return self.get_operation(user_id, operation_id)

    def remove_operation(self, user_id: int, operation_id: Any) -> None:
        operation_id = parse_id(operation_id, "operation", "remove")
        with self.engine.connect() as conn:
            result = conn.execute(
                _operations.delete().where((_operations.c.id == operation_id) & (_operations.c.user_id == user_id))
            )
            conn.commit()
        if result.rowcount == 0:
            raise LedgerError("operation", "remove", "_id", "notFound")

    # ------------------------------------------------------------------
    # Bulk removal by owner (used by ledger.lifecycle.delete_user)
    # ------------------------------------------------------------------

    def delete_user_operations(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_operations.delete().where(_operations.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def delete_user_categories(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_categories.delete().where(_categories.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def delete_user_accounts(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_currency(row) -> Currency:
    return Currency(id=row.id, code=row.code, name=row.name, symbol=row.symbol)


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        currency_id=row.currency_id,
        type=row.type,
        start_balance=row.start_balance,
        status=row.status,
        order=row.sort_order,
        created_at=row.created_at,
        balance=float(row.balance),
    )


def _row_to_category(row) -> Category:
    return Category(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        type=row.type,
        parent_id=row.parent_id,
        is_system=bool(row.is_system),
    )


def _row_to_operation(row) -> Operation:
    return Operation(
        id=row.id,
        user_id=row.user_id,
        account_id=row.account_id,
        category_id=row.category_id,
        amount=row.amount,
        created=row.created,
        comment=row.comment or "",
    )
