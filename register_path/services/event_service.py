"""
Event service for organizer-side event management.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Event, EventStatus, Registration, PaymentStatus
from ..schemas.event import EventCopyRequest, EventCreate, EventUpdate
from ..utils.exceptions import ConflictingStateError, EventNotFoundError, ValidationError
from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EventService:
    """Service class for event management operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_event(self, event_data: EventCreate) -> Event:
        """
        Create a new event with all of its seats available.

        Args:
            event_data: Event creation data

        Returns:
            Created event instance
        """
        event = Event(
            title=event_data.title,
            description=event_data.description,
            location=event_data.location,
            hero_image=event_data.hero_image,
            start_time=as_utc(event_data.start_time),
            end_time=as_utc(event_data.end_time),
            capacity=event_data.capacity,
            remaining=event_data.capacity,
            price=event_data.price,
            allow_waitlist=event_data.allow_waitlist,
            status=event_data.status,
        )
        self.db.add(event)
        await self.db.commit()

        log_business_event("event_created", {"event_id": str(event.id), "capacity": event.capacity}, actor="admin")
        return event

    async def get_event(self, event_id: UUID, published_only: bool = False) -> Event:
        """
        Raises:
            EventNotFoundError: missing, or a draft when ``published_only`` is set
        """
        result = await self.db.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if not event or (published_only and event.status != EventStatus.PUBLISHED):
            raise EventNotFoundError(str(event_id))
        return event

    async def list_events(
        self,
        published_only: bool = True,
        upcoming_only: bool = False,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Event], int]:
        """
        Get events ordered by start time.

        Returns:
            Tuple of (events on the page, total matching events)
        """
        conditions = []
        if published_only:
            conditions.append(Event.status == EventStatus.PUBLISHED)
        if upcoming_only:
            conditions.append(Event.end_time >= datetime.now(timezone.utc))

        total = await self.db.scalar(select(func.count(Event.id)).where(*conditions))
        result = await self.db.execute(
            select(Event)
            .where(*conditions)
            .order_by(Event.start_time.asc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def update_event(self, event_id: UUID, event_data: EventUpdate) -> Event:
        """
        Apply an admin edit.

        A capacity change moves ``remaining`` by the same delta in one
        conditional update, and is refused if more seats are already taken
        than the new capacity allows.
        """
        event = await self.get_event(event_id)
        changes = event_data.model_dump(exclude_unset=True)

        start_time = as_utc(changes["start_time"]) if changes.get("start_time") else as_utc(event.start_time)
        end_time = as_utc(changes["end_time"]) if changes.get("end_time") else as_utc(event.end_time)
        if end_time <= start_time:
            raise ValidationError(
                "end_time must be after start_time",
                field_errors={"end_time": ["must be after start_time"]},
            )

        new_capacity = changes.pop("capacity", None)
        if new_capacity is not None and new_capacity != event.capacity:
            delta = new_capacity - Event.capacity
            result = await self.db.execute(
                update(Event)
                .where(Event.id == event.id, Event.remaining + delta >= 0)
                .values(capacity=new_capacity, remaining=Event.remaining + delta)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictingStateError(
                    f"Capacity {new_capacity} is below the {event.seats_taken} seats already taken",
                    details={"seats_taken": event.seats_taken, "requested_capacity": new_capacity},
                )

        for field, value in changes.items():
            if value is None and field not in ("hero_image",):
                continue
            if field in ("start_time", "end_time"):
                value = as_utc(value)
            setattr(event, field, value)

        await self.db.commit()
        return await self.get_event(event_id)

    async def delete_event(self, event_id: UUID) -> None:
        """Delete an event together with its registrations, tickets and payments."""
        result = await self.db.execute(delete(Event).where(Event.id == event_id))
        if result.rowcount == 0:
            raise EventNotFoundError(str(event_id))
        await self.db.commit()

        log_business_event("event_deleted", {"event_id": str(event_id)}, actor="admin")

    async def copy_event(self, event_id: UUID, overrides: Optional[EventCopyRequest] = None) -> Event:
        """
        Duplicate an event as a new draft with every seat available.

        Registrations are not copied.
        """
        source = await self.get_event(event_id)
        values: Dict[str, Any] = {
            "title": f"{source.title} (Copy)",
            "description": source.description,
            "location": source.location,
            "hero_image": source.hero_image,
            "start_time": source.start_time,
            "end_time": source.end_time,
            "capacity": source.capacity,
            "price": source.price,
            "allow_waitlist": source.allow_waitlist,
            "status": EventStatus.DRAFT,
        }
        if overrides:
            values.update({key: value for key, value in overrides.model_dump(exclude_unset=True).items() if value is not None})

        values["start_time"] = as_utc(values["start_time"])
        values["end_time"] = as_utc(values["end_time"])
        if values["end_time"] <= values["start_time"]:
            raise ValidationError(
                "end_time must be after start_time",
                field_errors={"end_time": ["must be after start_time"]},
            )

        copy = Event(remaining=values["capacity"], **values)
        self.db.add(copy)
        await self.db.commit()

        log_business_event("event_copied", {"source_event_id": str(event_id), "event_id": str(copy.id)}, actor="admin")
        return copy

    async def get_stats(self) -> Dict[str, Any]:
        """Dashboard counters across all events."""
        total_events = await self.db.scalar(select(func.count(Event.id)))
        published_events = await self.db.scalar(
            select(func.count(Event.id)).where(Event.status == EventStatus.PUBLISHED)
        )
        total_registrations = await self.db.scalar(select(func.count(Registration.id)))
        revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Registration.total_amount), 0))
            .where(Registration.payment_status == PaymentStatus.COMPLETED)
        )

        return {
            "total_events": total_events or 0,
            "published_events": published_events or 0,
            "total_registrations": total_registrations or 0,
            "revenue": Decimal(str(revenue or 0)).quantize(Decimal("0.01")),
        }

    async def list_registrations(self, event_id: UUID) -> List[Registration]:
        await self.get_event(event_id)
        result = await self.db.execute(
            select(Registration)
            .where(Registration.event_id == event_id)
            .options(selectinload(Registration.tickets))
            .order_by(Registration.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
