# Shared FastAPI dependencies for the API layer.
# Created: 2026-02-20

from __future__ import annotations

from fastapi import HTTPException, Request

from bookingx_api.auth_pipeline import Identity, IdentityKind, has_permission
from bookingx_api.services import Services


def get_services(request: Request) -> Services:
    """The Services bundle the app was built with."""
    return request.app.state.services


def get_identity(request: Request) -> Identity:
    """Identity resolved by auth_middleware; anonymous outside the protected prefix."""
    return getattr(request.state, "identity", None) or Identity.anonymous()


def require_permission(*permissions: str):
    """FastAPI dependency that checks the caller's permissions.

    Usage::

        @router.get("/bookings", dependencies=[Depends(require_permission("bookings:read"))])
        async def list_bookings(...): ...

    The caller needs at least one of *permissions*. Session users hold ``*``
    and always pass; API keys and OAuth2 tokens are checked against what they
    were granted.
    """

    async def _check(request: Request) -> Identity:
        identity = get_identity(request)
        if not identity.is_authenticated:
            raise HTTPException(status_code=401, detail="Authentication required")
        if not any(has_permission(identity, p) for p in permissions):
            raise HTTPException(
                status_code=403,
                detail=f"Missing required permission: {' or '.join(sorted(permissions))}",
            )
        return identity

    return _check


async def require_user(request: Request) -> Identity:
    """Only a logged-in (session) user may manage credentials."""
    identity = get_identity(request)
    if not identity.is_authenticated:
        raise HTTPException(status_code=401, detail="Authentication required")
    if identity.kind is not IdentityKind.SESSION:
        raise HTTPException(status_code=403, detail="A user session is required")
    return identity
