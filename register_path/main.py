"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from register_path.config import settings
from register_path.api import api_router
from register_path.database import init_database, close_database, get_session_factory
from register_path.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from register_path.services.notification_service import NotificationService, build_notification_sender
from register_path.services.payment_provider import StripePaymentProvider
from register_path.services.reminder_scheduler import ReminderScheduler, ReminderSweep
from register_path.services.ticket_codes import TicketCodeGenerator
from register_path.utils.circuit_breaker import get_all_circuit_stats
from register_path.utils.logging_config import setup_logging

setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file="logs/register_path.log" if settings.environment == "production" else None,
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Register Path")
    await init_database()

    app.state.payment_provider = StripePaymentProvider()
    app.state.notification_service = NotificationService(build_notification_sender(settings))
    app.state.ticket_generator = TicketCodeGenerator()

    scheduler = None
    if settings.enable_reminder_scheduler:
        sweep = ReminderSweep(get_session_factory(), app.state.notification_service)
        scheduler = ReminderScheduler(sweep, interval_seconds=settings.reminder_interval_seconds)
        scheduler.start()

    yield

    logger.info("Shutting down Register Path")
    if scheduler:
        await scheduler.stop()
    await close_database()


app = FastAPI(
    title="Register Path API",
    description="""
    ## Register Path

    Event registration with capacity-safe ticketing.

    * **Events**: organizers publish events with a seat capacity and a price
    * **Registration**: attendees register 1-4 seats; free events confirm at once,
      paid events confirm once the payment settles, full events waitlist
    * **Tickets**: one QR-coded ticket per seat, checked in exactly once at the door
    * **Reminders**: attendees get an email the day before the event

    ### Authentication

    Admin endpoints need `Authorization: Bearer <token>` from `POST /api/v1/admin/login`.

    ### Errors

    ```json
    {
      "error": {"error_code": "CAPACITY_EXCEEDED", "message": "...", "details": {}},
      "error_id": "...",
      "timestamp": "..."
    }
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "events", "description": "Published events"},
        {"name": "registrations", "description": "Attendee registration and payment completion"},
        {"name": "tickets", "description": "Ticket verification and check-in"},
        {"name": "payments", "description": "Payment provider webhook"},
        {"name": "admin", "description": "Organizer operations"},
        {"name": "health", "description": "Service health"},
    ],
    lifespan=lifespan,
)

# Innermost first: errors become JSON responses before the logging middleware sees them
app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)
app.add_middleware(LoggingMiddleware, log_requests=settings.enable_request_logging)

if settings.debug:
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

app.include_router(api_router)


@app.get("/", tags=["health"])
async def root():
    return {
        "message": "Register Path API",
        "version": "1.0.0",
        "docs_url": "/docs",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Liveness plus the state of the external-service circuit breakers."""
    return {
        "status": "healthy",
        "service": "register-path",
        "circuit_breakers": get_all_circuit_stats(),
    }
