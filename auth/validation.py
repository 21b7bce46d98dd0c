"""
auth/validation.py -- Input legality rules for usernames and linked addresses.

Checks run before any store or cache access so a malformed request can never
leave partial state behind. Each check raises InvalidInput with a message that
is safe to show the caller.

Canonical forms:
  canonical_username() -- case-folded username, the store's lookup key.
  canonical_address()  -- case-folded linked address.
"""

from __future__ import annotations

import re
import string

from core.errors import InvalidInput

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 32
ADDRESS_LENGTH = 42
ADDRESS_PREFIXES = ("0x", "0X")

_USERNAME_CHARS = frozenset(string.ascii_letters + string.digits + "-_")
_ADDRESS_BODY_RE = re.compile(r"^[0-9a-fA-F]{40}$")


def validate_username(username: str) -> None:
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise InvalidInput(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters inclusive."
        )
    if not all(c in _USERNAME_CHARS for c in username):
        raise InvalidInput("Illegal character in username.")


def validate_address(address: str) -> None:
    """Require "0x" + 40 hex digits (42 characters in total)."""
    if len(address) != ADDRESS_LENGTH:
        raise InvalidInput(f"Address must be {ADDRESS_LENGTH} characters long including the '0x' prefix.")
    if not address.startswith(ADDRESS_PREFIXES):
        raise InvalidInput("Address must start with the hex prefix '0x'.")
    if not _ADDRESS_BODY_RE.match(address[2:]):
        raise InvalidInput("Illegal character in address.")


def validate_password(password: str) -> None:
    # The password field carries the client prehash; only emptiness is checked.
    if not password:
        raise InvalidInput("Password must not be empty.")


def canonical_username(username: str) -> str:
    return username.lower()


def canonical_address(address: str) -> str:
    return address.lower()
