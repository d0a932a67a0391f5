"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in ledger/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or ledger/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

USER_STATUSES = ("init", "ready")


@dataclass
class User:
    """A registered Pocketbook user.

    password is the credential blob from auth/credentials.py (salt length,
    iteration count, salt and derived hash). It is None only between insert
    and the first set_password() call in tooling; registered users always
    have one.

    status is "init" until the user finishes the first-run walkthrough in
    the front end, then "ready".

    settings holds per-user preferences: "locale" and "base_currency" (an
    ISO currency code chosen by initialize_user()).
    """

    email: str
    password: bytes | None = None
    status: str = "init"
    settings: dict = field(default_factory=dict)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None

    def profile(self) -> dict:
        """Public view of the user. Never includes the credential."""
        return {
            "email": self.email,
            "status": self.status,
            "settings": dict(self.settings),
        }
