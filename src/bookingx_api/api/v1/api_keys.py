# API keys router — CRUD endpoints for long-lived API keys.
# Created: 2026-02-20

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from bookingx_api.api.deps import get_services, require_user
from bookingx_api.api.v1.schemas.api_keys import (
    APIKeyCreatedResponse,
    APIKeyInfo,
    CreateKeyRequest,
)
from bookingx_api.auth_pipeline import Identity
from bookingx_api.services import Services
from bookingx_api.store.models import APIKey

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API Keys"])


def _info(key: APIKey) -> dict:
    return {
        "key_id": key.key_id,
        "name": key.name,
        "description": key.description or "",
        "permissions": list(key.permissions),
        "rate_limit": key.rate_limit,
        "created_at": key.created_at,
        "last_used": key.last_used,
        "last_ip": key.last_ip,
        "expires_at": key.expires_at,
        "is_active": key.is_active,
    }


def _owned_key(services: Services, identity: Identity, key_id: str) -> APIKey:
    key = services.api_keys.get(key_id)
    if key is None or key.user_id != identity.user_id:
        raise HTTPException(status_code=404, detail="API key not found")
    return key


@router.post("/auth/api-keys", response_model=APIKeyCreatedResponse)
def create_api_key(
    body: CreateKeyRequest,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Create a new API key. The plaintext key is returned only once."""
    try:
        record, plaintext = services.api_keys.create(
            name=body.name,
            user_id=identity.user_id,
            permissions=body.permissions,
            rate_limit=body.rate_limit,
            expires_at=body.expires_at,
            description=body.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return APIKeyCreatedResponse(**_info(record), key=plaintext)


@router.get("/auth/api-keys", response_model=list[APIKeyInfo])
def list_api_keys(
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """List the caller's API keys (no secrets exposed)."""
    return [APIKeyInfo(**_info(k)) for k in services.api_keys.list_keys(identity.user_id)]


@router.get("/auth/api-keys/{key_id}", response_model=APIKeyInfo)
def get_api_key(
    key_id: str,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    return APIKeyInfo(**_info(_owned_key(services, identity, key_id)))


@router.delete("/auth/api-keys/{key_id}")
def revoke_api_key(
    key_id: str,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Revoke an API key."""
    _owned_key(services, identity, key_id)
    if not services.api_keys.revoke(key_id):
        raise HTTPException(status_code=404, detail="API key not found or already revoked")
    return {"status": "ok"}


@router.post("/auth/api-keys/{key_id}/rotate", response_model=APIKeyCreatedResponse)
def rotate_api_key(
    key_id: str,
    identity: Identity = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Rotate an API key: revoke old + create new with the same settings."""
    _owned_key(services, identity, key_id)
    result = services.api_keys.rotate(key_id)
    if result is None:
        raise HTTPException(status_code=404, detail="API key not found or already revoked")

    record, plaintext = result
    return APIKeyCreatedResponse(**_info(record), key=plaintext)
