# OAuth2 router — authorize, token, revoke, introspect.
# Created: 2026-02-20

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from urllib.parse import unquote, urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from bookingx_api.api.deps import get_identity, get_services
from bookingx_api.api.v1.schemas.oauth2 import (
    IntrospectRequest,
    IntrospectResponse,
    OAuthErrorResponse,
    RevokeRequest,
    TokenRequest,
    TokenResponse,
)
from bookingx_api.auth_pipeline import IdentityKind
from bookingx_api.errors import OAuthError
from bookingx_api.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}
_ERROR_RESPONSES = {400: {"model": OAuthErrorResponse}, 401: {"model": OAuthErrorResponse}}


def _oauth_error(error: OAuthError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


def _redirect(uri: str, params: dict[str, str]) -> RedirectResponse:
    separator = "&" if "?" in uri else "?"
    return RedirectResponse(f"{uri}{separator}{urlencode(params)}", status_code=302)


async def _read_params(request: Request) -> dict:
    """Request parameters from a form or JSON body."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


def _basic_credentials(request: Request) -> tuple[str, str] | None:
    """``Authorization: Basic`` client credentials (RFC 6749 §2.3.1)."""
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "basic" or not value:
        return None
    try:
        decoded = base64.b64decode(value.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        return None
    return unquote(client_id), unquote(client_secret)


@router.get("/oauth/authorize")
async def authorize(
    request: Request,
    client_id: str = Query(""),
    redirect_uri: str | None = Query(None),
    response_type: str = Query("code"),
    scope: str | None = Query(None),
    state: str = Query(""),
    code_challenge: str | None = Query(None),
    code_challenge_method: str | None = Query(None),
    services: Services = Depends(get_services),
):
    """Authorization endpoint for the authorization-code grant.

    Errors about the client or its redirect URI are answered here (never
    redirected); every other outcome is a redirect to the verified URI.
    """
    issuer = services.issuer
    # Store lookups are blocking
    target, error = await asyncio.to_thread(issuer.resolve_redirect_uri, client_id, redirect_uri)
    if error:
        return _oauth_error(error)

    params: dict[str, str] = {"state": state} if state else {}

    if response_type != "code":
        return _redirect(target, {"error": OAuthError.UNSUPPORTED_RESPONSE_TYPE.value, **params})

    identity = get_identity(request)
    user_id = identity.user_id if identity.kind is IdentityKind.SESSION else None

    grant, error = await asyncio.to_thread(
        issuer.authorize,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        user_id=user_id,
    )
    if error is OAuthError.LOGIN_REQUIRED:
        return _redirect(services.settings.login_url, {"next": str(request.url)})
    if error:
        return _redirect(target, {"error": error.value, **params})

    return _redirect(grant.redirect_uri, {"code": grant.code, **params})


@router.post("/oauth/token", response_model=TokenResponse, responses=_ERROR_RESPONSES)
async def token_exchange(request: Request, services: Services = Depends(get_services)):
    """Exchange an authorization code, refresh token or client credentials for tokens."""
    try:
        body = TokenRequest.model_validate(await _read_params(request))
    except ValidationError:
        return _oauth_error(OAuthError.INVALID_REQUEST, headers=_NO_STORE)

    client_id, client_secret = body.client_id, body.client_secret
    basic = _basic_credentials(request)
    if basic is not None:
        client_id, client_secret = basic

    # bcrypt is blocking
    result, error = await asyncio.to_thread(
        services.oauth_server.token,
        grant_type=body.grant_type,
        client_id=client_id,
        client_secret=client_secret,
        code=body.code,
        redirect_uri=body.redirect_uri,
        code_verifier=body.code_verifier,
        refresh_token=body.refresh_token,
        scope=body.scope,
    )
    if error:
        headers = dict(_NO_STORE)
        if error is OAuthError.INVALID_CLIENT and basic is not None:
            headers["WWW-Authenticate"] = 'Basic realm="oauth"'
        return _oauth_error(error, headers=headers)

    return JSONResponse(content=result, headers=_NO_STORE)


@router.post("/oauth/revoke")
async def revoke_token(request: Request, services: Services = Depends(get_services)):
    """Revoke an access or refresh token. Unknown tokens are not an error."""
    try:
        body = RevokeRequest.model_validate(await _read_params(request))
    except ValidationError:
        return _oauth_error(OAuthError.INVALID_REQUEST)

    revoked = await asyncio.to_thread(
        services.oauth_server.revoke, body.token, body.token_type_hint
    )
    return {"revoked": revoked}


@router.post(
    "/oauth/introspect", response_model=IntrospectResponse, response_model_exclude_none=True
)
async def introspect_token(request: Request, services: Services = Depends(get_services)):
    """Describe a token; anything unknown or expired is ``{"active": false}``."""
    try:
        body = IntrospectRequest.model_validate(await _read_params(request))
    except ValidationError:
        return _oauth_error(OAuthError.INVALID_REQUEST)

    return await asyncio.to_thread(
        services.oauth_server.introspect, body.token, body.token_type_hint
    )
