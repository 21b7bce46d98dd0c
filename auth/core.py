"""
auth/core.py -- Authentication state transitions.

AuthCore owns the operations the transport exposes: register, sign_in, verify,
the three lookups, change_credential and activate_address. It depends on a
UserStore (accounts), a TokenCache (issued tokens) and auth.hashing.

Every operation:
  1. validates its input and raises InvalidInput before touching the store or
     the token cache (no partial state on bad input);
  2. does the slow Argon2 work outside any lock;
  3. performs one logical read or one logical write on exactly one row.

Error mapping:
  sqlalchemy IntegrityError on insert -> AlreadyExists
  any other SQLAlchemyError           -> StoreFailure (server fault, not retried)
  argon2 HashingError                 -> HashingFailure (raised by auth.hashing)

sign_in collapses "no such user" and "wrong password" into InvalidLogin and
runs a full verify against DUMMY_STORAGE_HASH when the user is missing, so
neither the response nor its timing reveals whether the username exists.

change_credential does not revoke tokens that are already outstanding.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.hashing import DUMMY_STORAGE_HASH, storage_hash, verify_storage
from auth.models import Account, AccountInfo, AuthToken
from auth.store import UserStore
from auth.validation import (
    canonical_address,
    canonical_username,
    validate_address,
    validate_password,
    validate_username,
)
from cache.store import TokenCache
from core.errors import AddressNotFound, AlreadyExists, InvalidLogin, InvalidToken, StoreFailure, UserNotFound

logger = logging.getLogger("tokenauth.auth")


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate unexpected SQLAlchemy errors into StoreFailure."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Store failure during %s: %s", operation, exc)
        raise StoreFailure() from exc


class AuthCore:
    """Orchestrates accounts, password hashing and token issuance.

    Usage:
        core = AuthCore(UserStore(), TokenCache())
        core.register("alice", prehash("Secret1"), "0x" + "ab" * 20)
        token = core.sign_in("alice", prehash("Secret1"))
        identity = core.verify(token)
    """

    def __init__(
        self,
        store: UserStore,
        tokens: TokenCache,
        token_factory: Callable[[], AuthToken] = AuthToken.generate,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self._token_factory = token_factory

    # ------------------------------------------------------------------
    # Registration and sign-in
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, linked_address: str) -> UUID:
        """Create an account and return its new identity.

        password is the client prehash, not the plaintext.
        """
        validate_username(username)
        validate_address(linked_address)
        validate_password(password)
        canonical = canonical_username(username)
        address = canonical_address(linked_address)

        with _store_errors("register"):
            if self.store.exists(canonical):
                raise AlreadyExists()

        account = Account(
            identity=uuid.uuid4(),
            username=canonical,
            display_username=username,
            linked_address=address,
            storage_hash=storage_hash(password),
        )
        try:
            self.store.insert(account)
        except IntegrityError as exc:
            raise AlreadyExists("That username or address is already registered.") from exc
        except SQLAlchemyError as exc:
            logger.error("Store failure during register: %s", exc)
            raise StoreFailure() from exc
        logger.info("Registered account %s", account.identity)
        return account.identity

    def sign_in(self, username: str, password: str) -> AuthToken:
        """Check credentials and issue a fresh single-use token."""
        validate_username(username)
        canonical = canonical_username(username)

        with _store_errors("sign_in"):
            account = self.store.find_by_username(canonical)
        if account is None:
            verify_storage(DUMMY_STORAGE_HASH, password)
            raise InvalidLogin()
        if not verify_storage(account.storage_hash, password):
            raise InvalidLogin()

        token = self._token_factory()
        self.tokens.insert(token, account.identity)
        return token

    def verify(self, token: AuthToken) -> UUID:
        """Consume token and return the identity it was issued for."""
        identity = self.tokens.take_if_valid(token)
        if identity is None:
            raise InvalidToken()
        return identity

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def username_to_identity(self, username: str) -> UUID:
        with _store_errors("username_to_identity"):
            account = self.store.find_by_username(canonical_username(username))
        if account is None:
            raise UserNotFound()
        return account.identity

    def identity_to_username(self, identity: UUID) -> str:
        with _store_errors("identity_to_username"):
            account = self.store.find_by_identity(identity)
        if account is None:
            raise UserNotFound()
        return account.display_username

    def address_to_account_info(self, linked_address: str) -> AccountInfo:
        return AccountInfo.from_account(self._account_for_address(linked_address, "address_to_account_info"))

    def address_to_username(self, linked_address: str) -> str:
        return self._account_for_address(linked_address, "address_to_username").display_username

    # ------------------------------------------------------------------
    # Account changes
    # ------------------------------------------------------------------

    def change_credential(self, linked_address: str, new_password: str) -> None:
        """Replace the stored hash for the account linked to linked_address.

        Tokens issued before the change stay valid until consumed or swept.
        """
        validate_address(linked_address)
        validate_password(new_password)
        address = canonical_address(linked_address)

        with _store_errors("change_credential"):
            if self.store.find_by_address(address) is None:
                raise AddressNotFound()
        new_hash = storage_hash(new_password)
        with _store_errors("change_credential"):
            updated = self.store.update_storage_hash(address, new_hash)
        if not updated:
            raise AddressNotFound()
        logger.info("Credential changed for address %s", address)

    def activate_address(self, linked_address: str) -> AccountInfo:
        """Mark the account linked to linked_address as activated (idempotent)."""
        validate_address(linked_address)
        address = canonical_address(linked_address)
        with _store_errors("activate_address"):
            updated = self.store.set_activated(address, True)
        if not updated:
            raise AddressNotFound()
        return self.address_to_account_info(address)

    def _account_for_address(self, linked_address: str, operation: str) -> Account:
        with _store_errors(operation):
            account = self.store.find_by_address(canonical_address(linked_address))
        if account is None:
            raise AddressNotFound()
        return account
