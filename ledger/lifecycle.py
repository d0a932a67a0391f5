"""
ledger/lifecycle.py -- User setup and teardown across the auth and ledger stores.

These are explicit service functions called by the routes that create or
remove users. Neither store runs hooks on its own: UserStore.delete_user()
removes only the user row, and LedgerStore knows nothing about users beyond
their ids.

Deletion order and partial failure:
  Users live in the auth database, ledger data in the ledger database, so a
  deletion cannot be one transaction. delete_user() removes dependents first
  (operations, categories, accounts) and the user record last. Every step is
  idempotent. If a step raises, the exception propagates, later steps are
  skipped, and the user record is still present -- the user can log in and
  the deletion can simply be retried to completion. No step leaves a
  dependent pointing at a missing user.
"""

import logging
from dataclasses import dataclass

from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from ledger.models import Account
from ledger.store import LedgerError, LedgerStore

logger = logging.getLogger("pocketbook.ledger")

DEFAULT_ACCOUNT_NAMES = ("cash", "card")

_LOCALE_CURRENCY = {"ru": "RUB"}
_FALLBACK_CURRENCY = "USD"


@dataclass
class DeletionReport:
    user_id: int
    operations: int = 0
    categories: int = 0
    accounts: int = 0
    user_removed: bool = False


def preferred_currency(locale: str) -> str:
    """Base currency for a new user: RUB for the "ru" locale, USD otherwise."""
    return _LOCALE_CURRENCY.get((locale or "").split("-")[0].lower(), _FALLBACK_CURRENCY)


def initialize_user(ledger: LedgerStore, user_store: UserStore, user: User) -> User:
    """Give a new user a base currency, default accounts and a category root.

    Runs only while user.status == "init". Safe to call more than once:
    settings already present are kept, and accounts that already exist by
    name are not recreated.
    """
    if user.status != "init":
        return user

    settings = dict(user.settings)
    settings.setdefault("locale", get_settings().default_locale)
    if "base_currency" not in settings:
        settings["base_currency"] = preferred_currency(settings["locale"])
    currency = ledger.get_currency_by_code(settings["base_currency"])
    if currency is None:
        raise LookupError(f"Base currency {settings['base_currency']!r} is not configured")

    existing = {a.name for a in ledger.list_accounts(user.id)}
    for name in DEFAULT_ACCOUNT_NAMES:
        if name in existing:
            continue
        try:
            ledger.create_account(Account(user_id=user.id, name=name, currency_id=currency.id))
        except LedgerError as exc:
            # A concurrent initialize_user() may have created it first.
            if exc.reason != "exist":
                raise
    ledger.ensure_system_root(user.id)

    if settings != user.settings:
        user_store.update_user(user.id, settings=settings)
        user.settings = settings
    logger.info("Initialized ledger for user id=%d (base currency %s)", user.id, settings["base_currency"])
    return user


def delete_user(ledger: LedgerStore, user_store: UserStore, user_id: int) -> DeletionReport:
    """Remove a user and everything they own, dependents first.

    See the module docstring for the partial-failure contract.
    """
    report = DeletionReport(user_id=user_id)
    report.operations = ledger.delete_user_operations(user_id)
    report.categories = ledger.delete_user_categories(user_id)
    report.accounts = ledger.delete_user_accounts(user_id)
    report.user_removed = user_store.delete_user(user_id)
    logger.info(
        "Deleted user id=%d (operations=%d categories=%d accounts=%d user_removed=%s)",
        user_id,
        report.operations,
        report.categories,
        report.accounts,
        report.user_removed,
    )
    return report
