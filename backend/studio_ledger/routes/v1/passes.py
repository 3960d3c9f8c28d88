# backend/studio_ledger/routes/v1/passes.py
"""
Pass routes - API v1

Endpoints:
    GET / - The caller's passes, most recent first, with eligibility
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends

from ...api.dependencies import get_current_user_id, get_pass_service
from ...core.exceptions import DomainException
from ...domain.pass_rules import is_eligible
from ...models.types import utcnow
from ...schemas.passes import PassResponse
from ...services.pass_service import PassService
from .bookings import handle_domain_exception

router = APIRouter(tags=["passes-v1"])


@router.get("", response_model=List[PassResponse])
async def list_my_passes(
    user_id: str = Depends(get_current_user_id),
    pass_service: PassService = Depends(get_pass_service),
) -> List[PassResponse]:
    try:
        passes = await asyncio.to_thread(pass_service.get_passes_for_user, user_id)
    except DomainException as e:
        handle_domain_exception(e)

    now = utcnow()
    return [
        PassResponse(
            id=p.id,
            pass_type=p.pass_type,
            kind=p.kind,
            remaining_credits=p.remaining_credits,
            expires_at=p.expires_at,
            is_active=p.is_active,
            eligible=is_eligible(p, now),
            created_at=p.created_at,
        )
        for p in passes
    ]
