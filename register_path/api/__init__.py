"""API endpoints for the Register Path service."""

from fastapi import APIRouter
from .events import router as events_router
from .registrations import router as registrations_router
from .tickets import router as tickets_router
from .payments import router as payments_router
from .admin import router as admin_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(events_router)
api_router.include_router(registrations_router)
api_router.include_router(tickets_router)
api_router.include_router(payments_router)
api_router.include_router(admin_router)

__all__ = ["api_router"]
