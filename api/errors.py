"""
api/errors.py -- Translate domain exceptions into HTTPException.

Route handlers catch domain errors (LedgerError, PasswordValidationError)
and re-raise them through these helpers, so every 4xx carries the same
{"code", "message"} detail dict that api/main.py's handler renders into the
ErrorResponse envelope.
"""

from __future__ import annotations

from fastapi import HTTPException

from auth.credentials import PasswordValidationError
from ledger.store import LedgerError


def http_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def from_ledger_error(exc: LedgerError) -> HTTPException:
    message = "Not found." if exc.status_code == 404 else "Request rejected by ledger rules."
    return http_error(exc.status_code, exc.code, message)


def from_password_error(exc: PasswordValidationError) -> HTTPException:
    return http_error(400, exc.code, "Password rejected.")
