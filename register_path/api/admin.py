"""
Organizer endpoints: admin login, event management, registrations and stats.
"""

import math
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, status

from ..config import get_settings
from ..schemas.admin import AdminLoginRequest, EventStatsResponse, TokenResponse
from ..schemas.common import SuccessResponse
from ..schemas.event import EventCopyRequest, EventCreate, EventListResponse, EventResponse, EventUpdate
from ..schemas.registration import RefundRequest, RegistrationResponse, RegistrationWithTicketsResponse
from ..services.event_service import EventService
from ..services.payment_reconciliation import PaymentReconciliationService
from ..services.registration_service import RegistrationService
from ..utils.auth import create_access_token, verify_admin_password
from ..utils.dependencies import (
    get_current_admin,
    get_event_service,
    get_reconciliation_service,
    get_registration_service,
)
from ..utils.exceptions import AuthenticationError
from ..utils.logging_config import log_security_event


router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/login", response_model=TokenResponse)
async def admin_login(login_data: AdminLoginRequest, request: Request):
    """Exchange the admin password for a bearer token."""
    if not verify_admin_password(login_data.password):
        log_security_event("admin_login_failed", {
            "client_ip": request.client.host if request.client else None,
        })
        raise AuthenticationError("Invalid admin password")

    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.get("/stats", response_model=EventStatsResponse)
async def event_stats(
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    return EventStatsResponse(**await event_service.get_stats())


@router.get("/events", response_model=EventListResponse)
async def list_all_events(
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    """List every event, drafts included."""
    events, total = await event_service.list_events(published_only=False, page=page, size=size)
    return EventListResponse(
        events=[EventResponse.model_validate(event) for event in events],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if total else 0,
    )


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    event = await event_service.create_event(event_data)
    return EventResponse.model_validate(event)


@router.put("/events/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: UUID,
    event_data: EventUpdate,
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    """Edit an event. Lowering capacity below the seats already taken answers 409."""
    event = await event_service.update_event(event_id, event_data)
    return EventResponse.model_validate(event)


@router.delete("/events/{event_id}", response_model=SuccessResponse)
async def delete_event(
    event_id: UUID,
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    """Delete an event and everything registered against it."""
    await event_service.delete_event(event_id)
    return SuccessResponse(message="Event deleted", data={"event_id": str(event_id)})


@router.post("/events/{event_id}/copy", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def copy_event(
    event_id: UUID,
    overrides: Optional[EventCopyRequest] = Body(None),
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    """Duplicate an event as a draft; body fields override the copied values."""
    event = await event_service.copy_event(event_id, overrides)
    return EventResponse.model_validate(event)


@router.get("/events/{event_id}/registrations", response_model=List[RegistrationWithTicketsResponse])
async def list_event_registrations(
    event_id: UUID,
    admin: str = Depends(get_current_admin),
    event_service: EventService = Depends(get_event_service)
):
    registrations = await event_service.list_registrations(event_id)
    return [RegistrationWithTicketsResponse.model_validate(registration) for registration in registrations]


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_registration(
    registration_id: UUID,
    admin: str = Depends(get_current_admin),
    registration_service: RegistrationService = Depends(get_registration_service)
):
    """Cancel a registration, refunding it first when it was paid."""
    registration = await registration_service.cancel_registration(registration_id)
    return RegistrationResponse.model_validate(registration)


@router.post("/registrations/{registration_id}/refund", response_model=RegistrationResponse)
async def refund_registration(
    registration_id: UUID,
    refund: Optional[RefundRequest] = Body(None),
    admin: str = Depends(get_current_admin),
    reconciliation: PaymentReconciliationService = Depends(get_reconciliation_service),
    registration_service: RegistrationService = Depends(get_registration_service)
):
    await reconciliation.refund_registration(registration_id, refund.amount if refund else None)
    registration = await registration_service.get_registration(registration_id)
    return RegistrationResponse.model_validate(registration)
