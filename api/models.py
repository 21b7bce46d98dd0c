"""
API request and response models for the tokenauth HTTP endpoints.

These Pydantic v2 models define the transport contract. They are deliberately
separate from the dataclasses in auth/models.py, which own the domain shape.
Route handlers map between the two.

Field names (username, password, ethaddr, token, uuid) follow the wire format
existing clients already speak. Username/address legality is NOT checked here:
AuthCore validates before any store access and reports InvalidInput (400).
Pydantic only bounds sizes so an oversized body is rejected early (422).

The token travels as the decimal string of its 64-bit value.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field

_Username = Annotated[str, Field(max_length=64)]
_Password = Annotated[str, Field(max_length=1024)]
_Address = Annotated[str, Field(max_length=64)]
_Token = Annotated[str, Field(max_length=32, description="Decimal string of the 64-bit token value.")]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Body for POST /register. password is the client prehash."""

    username: _Username
    password: _Password
    ethaddr: _Address


class SignInRequest(BaseModel):
    username: _Username
    password: _Password


class ValidityCheckRequest(BaseModel):
    token: _Token


class UuidLookupRequest(BaseModel):
    username: _Username


class UsernameLookupRequest(BaseModel):
    uuid: UUID


class AddressLookupRequest(BaseModel):
    ethaddr: _Address


class ChangePasswordRequest(BaseModel):
    ethaddr: _Address
    password: _Password


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    message: str = "Ok"


class SignInResponse(BaseModel):
    token: str


class ValidityCheckResponse(BaseModel):
    uuid: UUID


class UuidLookupResponse(BaseModel):
    uuid: UUID


class UsernameLookupResponse(BaseModel):
    username: str


class AccountInfoResponse(BaseModel):
    username: str
    uuid: UUID
    ethaddr: str
    activated: bool


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: str | None = None


class ErrorResponse(BaseModel):
    """Uniform error envelope: {"error": {"code": ..., "message": ...}}."""

    error: ErrorDetail
