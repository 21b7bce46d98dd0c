"""
api/routes/v1/auth.py -- Account and token REST endpoints.

Routes (mounted at the application root; paths match the existing client wire
protocol):
  POST /register          -- create account                   [rate limited]
  POST /generate_token    -- sign in, issue single-use token   [rate limited]
  POST /verify            -- consume token, return identity
  POST /username_to_uuid  -- username -> identity
  POST /uuid_to_username  -- identity -> display username
  POST /eth_to_info       -- linked address -> account info
  POST /eth_to_username   -- linked address -> display username
  POST /change_password   -- replace stored hash by address    [rate limited]
  POST /activate          -- mark address as activated          [rate limited]

Handlers are plain `def` so FastAPI runs each request on a worker thread; the
Argon2 work in register/sign-in/change_password never blocks the event loop.

Handlers do not catch AuthError. api/main.py renders every AuthError into the
error envelope with the status code the exception carries.

Security:
  Sign-in responses carry Cache-Control: no-store.
  Token values and passwords are never logged.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import enforce_rate_limit
from api.models import (
    AccountInfoResponse,
    AddressLookupRequest,
    ChangePasswordRequest,
    MessageResponse,
    RegisterRequest,
    SignInRequest,
    SignInResponse,
    UsernameLookupRequest,
    UsernameLookupResponse,
    UuidLookupRequest,
    UuidLookupResponse,
    ValidityCheckRequest,
    ValidityCheckResponse,
)
from auth.core import AuthCore
from auth.models import AccountInfo, AuthToken
from core.errors import InvalidInput

router = APIRouter()


def get_auth_core(request: Request) -> AuthCore:
    return request.app.state.auth_core


def _info_response(info: AccountInfo) -> AccountInfoResponse:
    return AccountInfoResponse(
        username=info.display_username,
        uuid=info.identity,
        ethaddr=info.linked_address,
        activated=info.activated,
    )


# ---------------------------------------------------------------------------
# Registration and tokens
# ---------------------------------------------------------------------------


@router.post(
    "/register",
    response_model=MessageResponse,
    status_code=201,
    dependencies=[Depends(enforce_rate_limit)],
)
def register(body: RegisterRequest, core: AuthCore = Depends(get_auth_core)) -> MessageResponse:
    """Create an account. The password field must already be the client prehash."""
    core.register(body.username, body.password, body.ethaddr)
    return MessageResponse()


@router.post("/generate_token", response_model=SignInResponse, dependencies=[Depends(enforce_rate_limit)])
def generate_token(body: SignInRequest, core: AuthCore = Depends(get_auth_core)) -> JSONResponse:
    """Sign in and return a fresh single-use token.

    Wrong password and unknown user both produce 401 invalid_login.
    """
    token = core.sign_in(body.username, body.password)
    resp = JSONResponse(content=SignInResponse(token=token.serialize()).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/verify", response_model=ValidityCheckResponse)
def verify(body: ValidityCheckRequest, core: AuthCore = Depends(get_auth_core)) -> ValidityCheckResponse:
    """Consume a token. A second verify of the same token always fails."""
    try:
        token = AuthToken.parse(body.token)
    except ValueError as exc:
        raise InvalidInput("Token must be an unsigned 64-bit decimal integer.") from exc
    return ValidityCheckResponse(uuid=core.verify(token))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


@router.post("/username_to_uuid", response_model=UuidLookupResponse)
def username_to_uuid(body: UuidLookupRequest, core: AuthCore = Depends(get_auth_core)) -> UuidLookupResponse:
    return UuidLookupResponse(uuid=core.username_to_identity(body.username))


@router.post("/uuid_to_username", response_model=UsernameLookupResponse)
def uuid_to_username(
    body: UsernameLookupRequest, core: AuthCore = Depends(get_auth_core)
) -> UsernameLookupResponse:
    return UsernameLookupResponse(username=core.identity_to_username(body.uuid))


@router.post("/eth_to_info", response_model=AccountInfoResponse)
def eth_to_info(body: AddressLookupRequest, core: AuthCore = Depends(get_auth_core)) -> AccountInfoResponse:
    return _info_response(core.address_to_account_info(body.ethaddr))


@router.post("/eth_to_username", response_model=UsernameLookupResponse)
def eth_to_username(
    body: AddressLookupRequest, core: AuthCore = Depends(get_auth_core)
) -> UsernameLookupResponse:
    return UsernameLookupResponse(username=core.address_to_username(body.ethaddr))


# ---------------------------------------------------------------------------
# Account changes
# ---------------------------------------------------------------------------


@router.post("/change_password", response_model=MessageResponse, dependencies=[Depends(enforce_rate_limit)])
def change_password(body: ChangePasswordRequest, core: AuthCore = Depends(get_auth_core)) -> MessageResponse:
    """Replace the password of the account linked to ethaddr.

    Tokens issued before the change are not revoked.
    """
    core.change_credential(body.ethaddr, body.password)
    return MessageResponse()


@router.post("/activate", response_model=AccountInfoResponse, dependencies=[Depends(enforce_rate_limit)])
def activate(body: AddressLookupRequest, core: AuthCore = Depends(get_auth_core)) -> AccountInfoResponse:
    return _info_response(core.activate_address(body.ethaddr))
