"""
Admin authentication and dashboard schemas.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class AdminLoginRequest(BaseModel):
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Schema for the admin session token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")


class EventStatsResponse(BaseModel):
    """Dashboard counters."""

    total_events: int
    published_events: int
    total_registrations: int
    revenue: Decimal = Field(..., description="Sum of completed registration payments")


class WebhookAck(BaseModel):
    received: bool = True
    action: str
