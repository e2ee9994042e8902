"""
Attendee registration endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from ..schemas.common import ErrorResponse
from ..schemas.registration import (
    RegistrationCreate,
    RegistrationOutcomeResponse,
    RegistrationResponse,
    TicketResponse,
)
from ..services.registration_service import AttendeeInfo, RegistrationOutcome, RegistrationService
from ..utils.dependencies import get_registration_service


router = APIRouter(prefix="/registrations", tags=["registrations"])


def outcome_response(outcome: RegistrationOutcome) -> RegistrationOutcomeResponse:
    return RegistrationOutcomeResponse(
        outcome=outcome.kind.value,
        registration=RegistrationResponse.model_validate(outcome.registration),
        tickets=[TicketResponse.model_validate(ticket) for ticket in outcome.tickets],
        client_secret=outcome.client_secret,
    )


@router.post(
    "",
    response_model=RegistrationOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def create_registration(
    registration_data: RegistrationCreate,
    registration_service: RegistrationService = Depends(get_registration_service)
):
    """
    Register for an event.

    The outcome is ``confirmed`` (tickets included) for free events with
    room, ``payment_required`` (with a client secret) for paid events, or
    ``waitlist`` when the event is full and keeps a waitlist.
    """
    outcome = await registration_service.register(
        registration_data.event_id,
        AttendeeInfo(
            first_name=registration_data.first_name,
            last_name=registration_data.last_name,
            email=registration_data.email,
            phone=registration_data.phone,
        ),
        registration_data.seats,
    )
    return outcome_response(outcome)


@router.post("/{registration_id}/complete", response_model=RegistrationOutcomeResponse)
async def complete_registration(
    registration_id: UUID,
    registration_service: RegistrationService = Depends(get_registration_service)
):
    """Confirm a paid registration once the client has seen its payment succeed."""
    outcome = await registration_service.complete_pending_registration(registration_id)
    return outcome_response(outcome)
