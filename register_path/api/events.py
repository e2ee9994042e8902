"""
Public event browsing endpoints.
"""

import math
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ..schemas.event import EventListResponse, EventResponse
from ..services.event_service import EventService
from ..utils.dependencies import get_event_service


router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=EventListResponse)
async def list_events(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Page size"),
    upcoming_only: bool = Query(False, description="Hide events that already ended"),
    event_service: EventService = Depends(get_event_service)
):
    """List published events by start time."""
    events, total = await event_service.list_events(
        published_only=True,
        upcoming_only=upcoming_only,
        page=page,
        size=size,
    )
    return EventListResponse(
        events=[EventResponse.model_validate(event) for event in events],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if total else 0,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: UUID,
    event_service: EventService = Depends(get_event_service)
):
    """Get a published event; drafts are reported as not found."""
    event = await event_service.get_event(event_id, published_only=True)
    return EventResponse.model_validate(event)
