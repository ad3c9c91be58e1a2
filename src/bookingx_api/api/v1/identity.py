# Identity router — who the pipeline resolved the caller as.
# Created: 2026-02-20

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from bookingx_api.api.deps import get_identity
from bookingx_api.api.v1.schemas.identity import IdentityResponse, RateLimitStatus
from bookingx_api.auth_pipeline import Identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Identity"])


@router.get("/identity", response_model=IdentityResponse)
async def get_caller_identity(request: Request, identity: Identity = Depends(get_identity)):
    """Resolved identity of the caller plus its current rate-limit budget."""
    rl_info = getattr(request.state, "rate_limit", None)
    return IdentityResponse(
        kind=identity.kind.value,
        user_id=identity.user_id,
        key_id=identity.key_id,
        client_id=identity.client_id,
        permissions=sorted(identity.permissions),
        rate_limit=(
            RateLimitStatus(
                limit=rl_info.limit, remaining=rl_info.remaining, reset=rl_info.reset_at
            )
            if rl_info is not None
            else None
        ),
    )
