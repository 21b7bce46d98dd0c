"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for tokenauth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_db_dir -> AUTH_DB_DIR). Type coercion and validation are built in.

  @model_validator(mode="after"): Resolves the database URL from AUTH_DB_DIR
      once all fields are known, and rejects timing values that would disable
      expiry or rate limiting.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, cache/, or client/.
"""

import ipaddress
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokenauth.config")

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "auth" / "tokenauth.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    host: str = "0.0.0.0"  # noqa: S104 -- service is meant to sit behind a proxy
    port: int = 19253

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Directory (or file path) override for the SQLite database. Only honoured
    # when the path or its parent exists; otherwise the default is kept.
    auth_db_dir: str = ""
    # Empty string means "derive from auth_db_dir / default path".
    db_url: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    token_ttl_seconds: float = 15.0
    token_sweep_interval_seconds: float = 60.0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_window_seconds: float = 600.0
    rate_limit_max_events: int = 60
    # Peers whose X-Real-IP header is believed, in addition to loopback. Set
    # as JSON, e.g. TRUSTED_PROXIES='["10.0.0.2"]'.
    trusted_proxies: list[str] = []

    # ------------------------------------------------------------------
    # Client
    # ------------------------------------------------------------------

    auth_server_url: str = "http://localhost:19253/"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def resolve_db_url(self) -> "Settings":
        """Derive db_url from AUTH_DB_DIR when no explicit URL is configured.

        AUTH_DB_DIR may name a directory (tokenauth.db is created inside it)
        or a file. A path whose parent does not exist is ignored with a
        warning rather than failing startup.
        """
        if self.db_url:
            return self
        path = _DEFAULT_DB_PATH
        if self.auth_db_dir:
            override = Path(self.auth_db_dir)
            if override.is_dir():
                path = override / "tokenauth.db"
            elif override.exists() or override.parent.exists():
                path = override
            else:
                logger.warning("AUTH_DB_DIR is an invalid path: %s", self.auth_db_dir)
        self.db_url = f"sqlite:///{path}"
        return self

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject non-positive timing and limit values.

        A zero TTL would make every token expire on the first sweep and a zero
        window would switch rate limiting off entirely.
        """
        for name in (
            "token_ttl_seconds",
            "token_sweep_interval_seconds",
            "rate_limit_window_seconds",
            "rate_limit_max_events",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be greater than zero.")
        return self

    @model_validator(mode="after")
    def normalize_trusted_proxies(self) -> "Settings":
        """Parse each trusted proxy as an IP address and store its canonical form."""
        try:
            self.trusted_proxies = [str(ipaddress.ip_address(p.strip())) for p in self.trusted_proxies]
        except ValueError as exc:
            raise ValueError(f"TRUSTED_PROXIES must hold IP addresses: {exc}") from exc
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
