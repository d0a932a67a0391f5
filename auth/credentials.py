"""
auth/credentials.py -- Password credential codec (PBKDF2-HMAC-SHA512).

A credential is a single self-describing binary blob stored on the user
record:

    offset 0..4                 salt length   uint32 big-endian
    offset 4..8                 iterations    uint32 big-endian
    offset 8..8+salt_length     salt
    offset 8+salt_length..end   derived hash

The hash length is not stored. It is inferred as len(blob) - salt_length - 8
when verifying, so records written with an older salt length or iteration
count keep verifying after the configuration changes. Changing the hash
length is also safe for old records; only the inference makes it so.

Blobs are never mutated in place. A password change replaces the whole blob.

verify() distinguishes "wrong password" (returns False) from "unreadable
credential" (raises MalformedCredential). Callers must not fold the two.

Every function here is pure given its inputs and config, so it is safe to
call from any thread. The KDF is CPU-bound -- call it from sync route
handlers, which FastAPI runs in its thread pool.

Layer rule: no imports from api/ or ledger/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
import struct
from dataclasses import dataclass

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from core.config import get_settings

_HEADER = struct.Struct(">II")

MIN_PASSWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CredentialError(Exception):
    """Base class for credential failures."""


class PasswordValidationError(CredentialError):
    """A new password was rejected before hashing.

    code is the message key the front end translates.
    """

    code = "auth.register.error.password.invalid"

    def __init__(self, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(self.code)


class PasswordRequired(PasswordValidationError):
    code = "auth.register.error.password.required"


class PasswordMismatch(PasswordValidationError):
    code = "auth.register.error.password.identical"


class PasswordTooShort(PasswordValidationError):
    code = "auth.register.error.password.short"


class MalformedCredential(CredentialError):
    """The stored blob cannot be parsed. Never a plain verification failure."""


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CredentialConfig:
    """Parameters applied to newly encoded credentials.

    prf is fixed to SHA-512; it is recorded here so callers can see it, not
    so it can be swapped. The blob does not store the PRF.
    """

    salt_bytes: int = 16
    hash_bytes: int = 32
    iterations: int = 743243
    prf: str = "sha512"

    @classmethod
    def from_settings(cls) -> CredentialConfig:
        settings = get_settings()
        return cls(
            salt_bytes=settings.credential_salt_bytes,
            hash_bytes=settings.credential_hash_bytes,
            iterations=settings.credential_iterations,
        )


@dataclass(frozen=True)
class ParsedCredential:
    salt: bytes
    iterations: int
    hash: bytes

    @property
    def salt_bytes(self) -> int:
        return len(self.salt)

    @property
    def hash_bytes(self) -> int:
        return len(self.hash)


# ---------------------------------------------------------------------------
# KDF
# ---------------------------------------------------------------------------


def _kdf(salt: bytes, iterations: int, length: int) -> PBKDF2HMAC:
    # PBKDF2HMAC instances are single-use; build a fresh one per derive/verify.
    return PBKDF2HMAC(algorithm=hashes.SHA512(), length=length, salt=salt, iterations=iterations)


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def encode(plaintext: str, config: CredentialConfig | None = None) -> bytes:
    """Hash plaintext with a fresh random salt and return the credential blob."""
    config = config or CredentialConfig.from_settings()
    salt = secrets.token_bytes(config.salt_bytes)
    derived = _kdf(salt, config.iterations, config.hash_bytes).derive(plaintext.encode("utf-8"))
    return _HEADER.pack(len(salt), config.iterations) + salt + derived


def decode(blob: bytes) -> ParsedCredential:
    """Split a credential blob into salt, iteration count and stored hash.

    Raises MalformedCredential if the header is truncated, the declared salt
    leaves no room for a hash, or the iteration count is zero.
    """
    if blob is None or len(blob) < _HEADER.size:
        raise MalformedCredential("credential shorter than its 8-byte header")
    salt_len, iterations = _HEADER.unpack_from(blob, 0)
    hash_len = len(blob) - salt_len - _HEADER.size
    if hash_len < 1:
        raise MalformedCredential(f"declared salt length {salt_len} leaves no hash bytes")
    if iterations < 1:
        raise MalformedCredential("credential declares zero iterations")
    salt_end = _HEADER.size + salt_len
    return ParsedCredential(
        salt=bytes(blob[_HEADER.size : salt_end]),
        iterations=iterations,
        hash=bytes(blob[salt_end:]),
    )


def rederive(plaintext: str, blob: bytes) -> bytes:
    """Recompute the hash for plaintext using the salt and iterations stored in blob."""
    parsed = decode(blob)
    return _kdf(parsed.salt, parsed.iterations, parsed.hash_bytes).derive(plaintext.encode("utf-8"))


def verify(plaintext: str, blob: bytes) -> bool:
    """Return True iff plaintext matches the credential blob.

    The comparison is constant-time (PBKDF2HMAC.verify uses
    cryptography's constant_time.bytes_eq).
    """
    parsed = decode(blob)
    try:
        _kdf(parsed.salt, parsed.iterations, parsed.hash_bytes).verify(plaintext.encode("utf-8"), parsed.hash)
    except InvalidKey:
        return False
    return True


def needs_rehash(blob: bytes, config: CredentialConfig | None = None) -> bool:
    """Return True if blob was written with parameters other than the current config."""
    config = config or CredentialConfig.from_settings()
    parsed = decode(blob)
    return (
        parsed.iterations != config.iterations
        or parsed.salt_bytes != config.salt_bytes
        or parsed.hash_bytes != config.hash_bytes
    )


def set_password(plaintext: str, confirmation: str, config: CredentialConfig | None = None) -> bytes:
    """Validate a new password and its confirmation, then encode it.

    Checks run in a fixed order so the first failing rule is the one
    reported: missing password, missing confirmation, mismatch, length.
    """
    if not plaintext:
        raise PasswordRequired()
    if not confirmation:
        raise PasswordRequired("auth.register.error.repeatPassword.required")
    if plaintext != confirmation:
        raise PasswordMismatch()
    if len(plaintext) < MIN_PASSWORD_LENGTH:
        raise PasswordTooShort()
    return encode(plaintext, config)
