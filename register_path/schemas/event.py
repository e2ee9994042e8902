"""
Event schemas for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, model_validator

from ..models.event import EventStatus


class EventFields(BaseModel):
    """Fields shared by event requests and responses."""

    title: str = Field(..., min_length=1, max_length=255, description="Event title")
    description: str = Field(default="", description="Event description")
    location: str = Field(..., min_length=1, max_length=255, description="Where the event takes place")
    start_time: datetime = Field(..., description="Event start")
    end_time: datetime = Field(..., description="Event end")
    hero_image: Optional[str] = Field(None, max_length=1024, description="Banner image URL")
    capacity: int = Field(..., gt=0, description="Total seats")
    price: Decimal = Field(default=Decimal("0.00"), ge=0, description="Price per seat")
    allow_waitlist: bool = Field(default=True, description="Waitlist attendees when the event is full")


class EventCreate(EventFields):
    """Schema for creating a new event."""

    status: EventStatus = Field(default=EventStatus.DRAFT)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class EventUpdate(BaseModel):
    """Schema for updating an existing event; omitted fields are left unchanged."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    hero_image: Optional[str] = Field(None, max_length=1024)
    capacity: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=0)
    allow_waitlist: Optional[bool] = None
    status: Optional[EventStatus] = None


class EventCopyRequest(BaseModel):
    """Overrides applied to the copy; everything else comes from the source event."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    hero_image: Optional[str] = Field(None, max_length=1024)
    capacity: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=0)
    allow_waitlist: Optional[bool] = None
    status: Optional[EventStatus] = None


class EventResponse(EventFields):
    """Schema for event response."""

    id: UUID
    remaining: int
    status: EventStatus
    is_sold_out: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EventListResponse(BaseModel):
    """Schema for paginated event list response."""

    events: list[EventResponse]
    total: int
    page: int
    size: int
    pages: int
