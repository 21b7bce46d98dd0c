"""
auth/hashing.py -- Two-stage password hashing.

Stage 1, client side -- prehash():
  The client never sends the plaintext password. It sends a raw Argon2i hash
  of the password, hex-encoded. The salt is the 64-bit xxHash of the password
  itself, so the transform is deterministic: the same password always yields
  the same prehash. This is a fixed transform, not a real salt -- identical
  passwords produce identical prehashes. Known weakness, kept as-is so
  existing clients keep working.

  Parameters match the Argon2 reference defaults (Argon2i, t=3, m=4096 KiB,
  p=1, 32-byte output).

Stage 2, server side -- storage_hash() / verify_storage():
  The prehash is hashed again with Argon2id and a fresh 16-byte random salt
  per call (argon2-cffi PasswordHasher). The result is a self-describing PHC
  string ($argon2id$v=19$m=...,t=...,p=...$salt$hash) that is stored verbatim
  and carries everything verify needs.

  verify_storage() never raises: a mismatch, a malformed stored string, or an
  internal verification error all return False. Hashing errors on the write
  path raise HashingFailure -- a server fault, never "invalid login".

Timing equalization:
  DUMMY_STORAGE_HASH is computed once at import so sign-in can run a full
  verify even when the username does not exist. Response time then does not
  reveal whether an account exists.

Layer rule: no imports from api/, cache/, or client/. client/ imports
prehash() from here so both sides share one definition.
"""

from __future__ import annotations

import logging

import xxhash
from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, VerificationError, VerifyMismatchError
from argon2.low_level import hash_secret_raw

from core.errors import HashingFailure

logger = logging.getLogger("tokenauth.auth")

PREHASH_TIME_COST = 3
PREHASH_MEMORY_COST = 4096  # KiB
PREHASH_PARALLELISM = 1
PREHASH_HASH_LEN = 32

_storage_hasher = PasswordHasher(type=Type.ID, salt_len=16)


def prehash(password: str) -> str:
    """Return the deterministic client-side prehash of a plaintext password."""
    secret = password.encode("utf-8")
    salt = xxhash.xxh64_intdigest(secret).to_bytes(8, "little")
    try:
        raw = hash_secret_raw(
            secret,
            salt,
            time_cost=PREHASH_TIME_COST,
            memory_cost=PREHASH_MEMORY_COST,
            parallelism=PREHASH_PARALLELISM,
            hash_len=PREHASH_HASH_LEN,
            type=Type.I,
        )
    except HashingError as exc:
        raise HashingFailure() from exc
    return raw.hex()


def storage_hash(prehashed: str) -> str:
    """Return an Argon2id PHC string of the prehash with a fresh random salt."""
    try:
        return _storage_hasher.hash(prehashed)
    except HashingError as exc:
        logger.error("Storage hash computation failed: %s", exc)
        raise HashingFailure() from exc


def verify_storage(stored: str, prehashed: str) -> bool:
    """Return True if prehashed matches the stored PHC string."""
    try:
        return _storage_hasher.verify(stored, prehashed)
    except VerifyMismatchError:
        return False
    except (VerificationError, ValueError) as exc:  # ValueError covers InvalidHashError
        logger.warning("Stored password hash could not be verified: %s", exc)
        return False


DUMMY_STORAGE_HASH: str = storage_hash(prehash("tokenauth_timing_dummy"))
