"""
Capacity ledger: the only code that moves an event's ``remaining`` seat count.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.event import Event
from ..utils.exceptions import ConflictingStateError, EventNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    granted: bool
    remaining_after: int


class CapacityLedger:
    """
    Seat accounting through single conditional UPDATE statements.

    Both operations run inside the caller's transaction and never commit;
    the caller decides whether the seat movement becomes durable together
    with the rows that depend on it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def try_reserve(self, event_id: UUID, seats: int) -> ReservationResult:
        """
        Take ``seats`` from the event if, and only if, that many are left.

        Raises:
            ConflictingStateError: seats is not positive
            EventNotFoundError: no such event
        """
        self._check_seats(seats)

        result = await self.session.execute(
            update(Event)
            .where(Event.id == event_id, Event.remaining >= seats)
            .values(remaining=Event.remaining - seats)
            .execution_options(synchronize_session=False)
        )
        remaining = await self._remaining(event_id)
        granted = result.rowcount == 1

        logger.debug(
            f"Reserve {seats} seats on event {event_id}: "
            f"{'granted' if granted else 'refused'}, {remaining} left"
        )
        return ReservationResult(granted=granted, remaining_after=remaining)

    async def release(self, event_id: UUID, seats: int) -> int:
        """Give ``seats`` back to the event, never exceeding its capacity."""
        self._check_seats(seats)

        restored = Event.remaining + seats
        result = await self.session.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(remaining=case((restored > Event.capacity, Event.capacity), else_=restored))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise EventNotFoundError(str(event_id))

        remaining = await self._remaining(event_id)
        logger.debug(f"Released {seats} seats on event {event_id}, {remaining} left")
        return remaining

    async def _remaining(self, event_id: UUID) -> int:
        remaining = await self.session.scalar(select(Event.remaining).where(Event.id == event_id))
        if remaining is None:
            raise EventNotFoundError(str(event_id))
        return remaining

    @staticmethod
    def _check_seats(seats: int) -> None:
        if seats <= 0:
            raise ConflictingStateError(
                f"Seat count must be positive, got {seats}",
                details={"seats": seats}
            )
