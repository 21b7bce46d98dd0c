"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Stores and
AuthCore do the work; these only own the domain shape.

Layer rule: no imports from api/, cache/, or client/.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from uuid import UUID

_TOKEN_BITS = 64
_TOKEN_MAX = (1 << _TOKEN_BITS) - 1


@dataclass
class Account:
    """One registered account row.

    username is the case-folded canonical form used for every lookup;
    display_username keeps the casing the user registered with and is what
    identity -> username lookups return. linked_address is stored case-folded.

    storage_hash is the Argon2id PHC string of the client prehash, never the
    prehash itself.
    """

    identity: UUID
    username: str
    display_username: str
    linked_address: str
    storage_hash: str
    activated: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class AccountInfo:
    """Public projection of an Account returned by address lookups."""

    identity: UUID
    display_username: str
    linked_address: str
    activated: bool

    @classmethod
    def from_account(cls, account: Account) -> AccountInfo:
        return cls(
            identity=account.identity,
            display_username=account.display_username,
            linked_address=account.linked_address,
            activated=account.activated,
        )


@dataclass(frozen=True)
class AuthToken:
    """Opaque single-use bearer credential issued by a successful sign-in.

    A uniformly random 64-bit value. Not signed and not stored anywhere but the
    in-memory TokenCache; uniqueness is probabilistic. The wire form is the
    decimal string of the value.
    """

    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= _TOKEN_MAX:
            raise ValueError(f"AuthToken must fit in {_TOKEN_BITS} unsigned bits")

    @classmethod
    def generate(cls) -> AuthToken:
        return cls(secrets.randbits(_TOKEN_BITS))

    @classmethod
    def parse(cls, raw: str) -> AuthToken:
        """Parse the decimal wire form. Raises ValueError on anything else."""
        raw = raw.strip()
        if not raw.isdigit() or not raw.isascii():
            raise ValueError(f"invalid token {raw!r}: expected an unsigned decimal integer")
        return cls(int(raw))

    def serialize(self) -> str:
        return str(self.value)

    def __str__(self) -> str:
        return self.serialize()

    def __repr__(self) -> str:
        # Keep bearer values out of logs and tracebacks.
        return "AuthToken(<redacted>)"
