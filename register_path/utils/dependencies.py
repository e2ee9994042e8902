"""
FastAPI dependencies: admin gate and service wiring.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..services.checkin_service import CheckInService
from ..services.event_service import EventService
from ..services.notification_service import NotificationService
from ..services.payment_provider import PaymentProvider
from ..services.payment_reconciliation import PaymentReconciliationService
from ..services.registration_service import RegistrationService
from ..services.ticket_codes import TicketCodeGenerator
from ..utils.auth import verify_token
from ..utils.exceptions import AuthenticationError

# HTTP Bearer token scheme; missing credentials are reported as AuthenticationError
security = HTTPBearer(auto_error=False)


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Require a valid admin session token.

    Raises:
        AuthenticationError: missing, expired or forged token
    """
    if credentials is None:
        raise AuthenticationError()

    subject = verify_token(credentials.credentials)
    if subject is None:
        raise AuthenticationError("Invalid or expired admin token")
    return subject


# App-level collaborators are created in the lifespan and kept on app.state

def get_payment_provider(request: Request) -> PaymentProvider:
    return request.app.state.payment_provider


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def get_ticket_generator(request: Request) -> TicketCodeGenerator:
    return request.app.state.ticket_generator


def get_registration_service(
    db: AsyncSession = Depends(get_db),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    notification_service: NotificationService = Depends(get_notification_service),
    ticket_generator: TicketCodeGenerator = Depends(get_ticket_generator),
) -> RegistrationService:
    return RegistrationService(db, payment_provider, notification_service, ticket_generator)


def get_reconciliation_service(
    db: AsyncSession = Depends(get_db),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    notification_service: NotificationService = Depends(get_notification_service),
    ticket_generator: TicketCodeGenerator = Depends(get_ticket_generator),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(db, payment_provider, notification_service, ticket_generator)


def get_checkin_service(db: AsyncSession = Depends(get_db)) -> CheckInService:
    return CheckInService(db)


def get_event_service(db: AsyncSession = Depends(get_db)) -> EventService:
    return EventService(db)
