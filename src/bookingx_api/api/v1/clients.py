# OAuth2 client router — register, list, rotate secret, enable/disable.
# Created: 2026-02-20
#
# Only session users manage clients, and only their own.

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from bookingx_api.api.deps import get_services, require_user
from bookingx_api.api.v1.schemas.clients import (
    ClientCreatedResponse,
    ClientInfo,
    ClientSecretResponse,
    CreateClientRequest,
)
from bookingx_api.auth_pipeline import Identity
from bookingx_api.services import Services
from bookingx_api.store.models import OAuthClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2 Clients"])


def _info(client: OAuthClient) -> dict:
    return {
        "client_id": client.client_id,
        "name": client.name,
        "description": client.description or "",
        "redirect_uris": list(client.redirect_uris),
        "grant_types": list(client.grant_types),
        "scope": client.scope or "",
        "is_active": client.is_active,
        "created_at": client.created_at,
        "updated_at": client.updated_at,
    }


def _owned_client(services: Services, identity: Identity, client_id: str) -> OAuthClient:
    client = services.clients.get(client_id)
    if client is None or client.user_id != identity.user_id:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.post("/oauth/clients", response_model=ClientCreatedResponse)
def create_client(
    body: CreateClientRequest,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Register a client. The client secret is returned only once."""
    try:
        client, secret = services.clients.create_client(
            name=body.name,
            redirect_uris=body.redirect_uris,
            user_id=identity.user_id,
            grant_types=body.grant_types,
            scope=body.scope,
            description=body.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ClientCreatedResponse(**_info(client), client_secret=secret)


@router.get("/oauth/clients", response_model=list[ClientInfo])
def list_clients(
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """List the caller's clients (no secrets exposed)."""
    return [ClientInfo(**_info(c)) for c in services.clients.list_clients(identity.user_id)]


@router.post("/oauth/clients/{client_id}/rotate-secret", response_model=ClientSecretResponse)
def rotate_client_secret(
    client_id: str,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Issue a new client secret; the old one stops working immediately."""
    _owned_client(services, identity, client_id)
    secret = services.clients.rotate_secret(client_id)
    if secret is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return ClientSecretResponse(client_id=client_id, client_secret=secret)


@router.post("/oauth/clients/{client_id}/disable", response_model=ClientInfo)
def disable_client(
    client_id: str,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    _owned_client(services, identity, client_id)
    client = services.clients.set_active(client_id, False)
    return ClientInfo(**_info(client))


@router.post("/oauth/clients/{client_id}/enable", response_model=ClientInfo)
def enable_client(
    client_id: str,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    _owned_client(services, identity, client_id)
    client = services.clients.set_active(client_id, True)
    return ClientInfo(**_info(client))
