"""
Ticket verification and check-in endpoints used by door scanners.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ..schemas.common import ErrorResponse
from ..schemas.ticket import CheckInResponse, TicketEventInfo, TicketVerificationResponse
from ..services.checkin_service import CheckInService
from ..services.ticket_codes import TicketCodeGenerator
from ..utils.dependencies import get_checkin_service, get_ticket_generator
from ..utils.exceptions import ValidationError


router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("/{code}/verify", response_model=TicketVerificationResponse)
async def verify_ticket(
    code: str,
    request: Request,
    sig: Optional[str] = Query(None, description="Signature from the QR payload"),
    checkin_service: CheckInService = Depends(get_checkin_service),
    ticket_generator: TicketCodeGenerator = Depends(get_ticket_generator),
):
    """Report whether a ticket admits its holder, without checking it in."""
    if sig is not None and ticket_generator.verify_payload(str(request.url)) != code:
        raise ValidationError("Ticket signature does not match", field_errors={"sig": ["invalid signature"]})

    ticket_status = await checkin_service.verify(code)
    ticket, registration, event = ticket_status.ticket, ticket_status.registration, ticket_status.event

    return TicketVerificationResponse(
        valid=ticket_status.valid,
        already_checked_in=ticket_status.already_checked_in,
        ticket_code=ticket.ticket_code,
        checked_in_at=ticket.checked_in_at,
        attendee_name=registration.full_name,
        seats=registration.seats,
        registration_status=registration.status,
        payment_status=registration.payment_status,
        event=TicketEventInfo(
            id=event.id,
            title=event.title,
            location=event.location,
            start_time=event.start_time,
        ),
    )


@router.post(
    "/{code}/check-in",
    response_model=CheckInResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def check_in_ticket(
    code: str,
    checkin_service: CheckInService = Depends(get_checkin_service),
):
    """Admit the ticket holder. A second scan of the same ticket answers 409."""
    result = await checkin_service.check_in(code)
    return CheckInResponse(
        ticket_code=result.ticket.ticket_code,
        checked_in_at=result.ticket.checked_in_at,
        attendee_name=result.registration.full_name,
        event_title=result.event.title,
    )
