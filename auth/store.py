"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_account is the mapper. AuthCore never
touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Contract:
  Every method is one logical read or one logical write against one row, so
  no multi-statement transactions are needed. Keys are compared byte-exact --
  case folding is applied by AuthCore before calling in, never here.

  insert() lets sqlalchemy.exc.IntegrityError propagate on a UNIQUE conflict
  (username, display_username or linked_address). AuthCore maps that to
  AlreadyExists; this layer does not know about the error taxonomy.

Layer rule: no imports from api/, cache/, or client/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Account
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "users",
    _metadata,
    Column("uuid", String(32), primary_key=True),  # UUID simple (hex) form
    Column("username", String(32), nullable=False, unique=True),  # case-folded
    Column("display_username", String(32), nullable=False, unique=True),
    Column("ethaddr", String(42), nullable=False, unique=True),  # case-folded
    Column("pwhash", Text, nullable=False),  # Argon2id PHC string
    Column("activated", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed while a write is in flight.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Account rows.

    Usage:
        store = UserStore()
        store.insert(account)
        account = store.find_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def exists(self, username: str) -> bool:
        """Return True if an account with this canonical username exists."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_accounts.c.uuid).where(_accounts.c.username == username)).first()
        return row is not None

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return result or 0

    def find_by_username(self, username: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_identity(self, identity: UUID) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.uuid == identity.hex)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_address(self, address: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.ethaddr == address)).fetchone()
        return _row_to_account(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, account: Account) -> None:
        """Insert one account row.

        Raises sqlalchemy.exc.IntegrityError if the username, display username
        or linked address is already taken. A concurrent register that passed
        the exists() check lands here too.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    uuid=account.identity.hex,
                    username=account.username,
                    display_username=account.display_username,
                    ethaddr=account.linked_address,
                    pwhash=account.storage_hash,
                    activated=1 if account.activated else 0,
                    created_at=account.created_at or _now_iso(),
                )
            )
            conn.commit()

    def update_storage_hash(self, address: str, storage_hash: str) -> bool:
        """Overwrite the stored hash for the account linked to address.

        Returns True if a row was updated, False if no account has that address.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.ethaddr == address).values(pwhash=storage_hash)
            )
            conn.commit()
        return result.rowcount > 0

    def set_activated(self, address: str, activated: bool = True) -> bool:
        """Set the activation flag for the account linked to address."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.ethaddr == address).values(activated=1 if activated else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        identity=UUID(hex=row.uuid),
        username=row.username,
        display_username=row.display_username,
        linked_address=row.ethaddr,
        storage_hash=row.pwhash,
        activated=bool(row.activated),
        created_at=row.created_at,
    )
