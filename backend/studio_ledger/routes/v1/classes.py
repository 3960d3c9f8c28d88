# backend/studio_ledger/routes/v1/classes.py
"""
Class schedule routes - API v1

Endpoints:
    GET / - Upcoming classes with remaining seats
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_class_catalog_service, get_current_user_id
from ...core.exceptions import DomainException
from ...schemas.classes import ClassResponse
from ...services.class_catalog_service import ClassCatalogService
from .bookings import handle_domain_exception

router = APIRouter(tags=["classes-v1"])


@router.get("", response_model=List[ClassResponse])
async def list_upcoming_classes(
    limit: int = Query(50, ge=1, le=200),
    _user_id: str = Depends(get_current_user_id),
    catalog_service: ClassCatalogService = Depends(get_class_catalog_service),
) -> List[ClassResponse]:
    try:
        rows = await asyncio.to_thread(catalog_service.list_upcoming_classes, limit=limit)
    except DomainException as e:
        handle_domain_exception(e)

    return [
        ClassResponse(
            id=row.class_instance.id,
            title=row.class_instance.title,
            instructor_id=row.class_instance.instructor_id,
            starts_at=row.class_instance.starts_at,
            ends_at=row.class_instance.ends_at,
            capacity=row.class_instance.capacity,
            booked_seats=row.booked_seats,
            remaining_seats=row.remaining_seats,
        )
        for row in rows
    ]
