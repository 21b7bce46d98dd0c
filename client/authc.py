"""
client/authc.py -- Blocking HTTP client for a tokenauth server.

The client prehashes passwords (auth.hashing.prehash) before they leave the
process; the server only ever sees the prehash.

Errors:
  AuthClientError is raised for every failure. status is the HTTP status when
  the server answered with a non-2xx response, None for transport failures
  (connection refused, timeout, bad URL).

Usage:
    client = AuthClient("http://localhost:19253/")
    client.register("alice", "Secret1", "0x" + "ab" * 20)
    token = client.sign_in("alice", "Secret1")
    identity = client.validate(token)
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin
from uuid import UUID

import requests

from auth.hashing import prehash
from auth.models import AuthToken

logger = logging.getLogger("tokenauth.client")

_TIMEOUT = 10  # seconds


class AuthClientError(Exception):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        if self.status is not None:
            return f"Auth server returned {self.status} with: {self.message}"
        return self.message


class AuthClient:
    def __init__(self, provider: str, session: requests.Session | None = None) -> None:
        if not provider.startswith(("http://", "https://")):
            raise AuthClientError(f"Got invalid url to make auth requests to: {provider!r}")
        # urljoin drops the last path segment unless the base ends with "/".
        self.provider = provider if provider.endswith("/") else provider + "/"
        self.session = session or requests.Session()
        self.session.max_redirects = 3

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, ethaddr: str) -> None:
        self._post("register", {"username": username, "password": prehash(password), "ethaddr": ethaddr})

    def sign_in(self, username: str, password: str) -> AuthToken:
        data = self._post("generate_token", {"username": username, "password": prehash(password)})
        return AuthToken.parse(str(data["token"]))

    def validate(self, token: AuthToken) -> UUID:
        data = self._post("verify", {"token": token.serialize()})
        return UUID(data["uuid"])

    def username_to_uuid(self, username: str) -> UUID:
        return UUID(self._post("username_to_uuid", {"username": username})["uuid"])

    def uuid_to_username(self, identity: UUID) -> str:
        return self._post("uuid_to_username", {"uuid": str(identity)})["username"]

    def address_info(self, ethaddr: str) -> dict[str, Any]:
        return self._post("eth_to_info", {"ethaddr": ethaddr})

    def address_to_username(self, ethaddr: str) -> str:
        return self._post("eth_to_username", {"ethaddr": ethaddr})["username"]

    def activate(self, ethaddr: str) -> dict[str, Any]:
        """Mark the account linked to ethaddr as activated; returns its account info."""
        return self._post("activate", {"ethaddr": ethaddr})

    def change_password(self, ethaddr: str, password: str) -> None:
        self._post("change_password", {"ethaddr": ethaddr, "password": prehash(password)})

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = urljoin(self.provider, endpoint)
        try:
            resp = self.session.post(url, json=payload, timeout=_TIMEOUT)
        except requests.RequestException as exc:
            logger.warning("Request to %s failed: %s", url, exc)
            raise AuthClientError(f"Request failed with: {exc}") from exc
        return _handle_response(resp)


def _handle_response(resp: requests.Response) -> dict[str, Any]:
    """Return the decoded JSON body of a 2xx response, else raise AuthClientError.

    Error bodies use the server's {"error": {"code", "message"}} envelope; the
    message is extracted when present, otherwise the raw text is used.
    """
    if resp.ok:
        try:
            return resp.json()
        except ValueError as exc:
            raise AuthClientError(f"Auth server sent an unreadable response: {exc}", resp.status_code) from exc
    message = resp.text
    try:
        message = resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        pass
    raise AuthClientError(message, resp.status_code)
