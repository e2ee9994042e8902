"""
Persists tickets for a registration.
"""

import logging
from typing import List, Set
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.ticket import Ticket
from .ticket_codes import TicketCodeGenerator

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5


class TicketIssuer:
    """Adds ticket rows to the caller's transaction; never commits."""

    def __init__(self, session: AsyncSession, generator: TicketCodeGenerator):
        self.session = session
        self.generator = generator

    async def list_for_registration(self, registration_id: UUID) -> List[Ticket]:
        result = await self.session.execute(
            select(Ticket)
            .where(Ticket.registration_id == registration_id)
            .order_by(Ticket.created_at, Ticket.ticket_code)
        )
        return list(result.scalars().all())

    async def count_for_registration(self, registration_id: UUID) -> int:
        return await self.session.scalar(
            select(func.count(Ticket.id)).where(Ticket.registration_id == registration_id)
        )

    async def issue(self, registration_id: UUID, count: int) -> List[Ticket]:
        """Mint ``count`` tickets with fresh codes."""
        if count <= 0:
            return []

        codes = await self._unique_codes(count)
        tickets = [
            Ticket(
                registration_id=registration_id,
                ticket_code=code,
                qr_data=self.generator.generate_verification_payload(code),
                checked_in=False,
            )
            for code in codes
        ]
        self.session.add_all(tickets)
        await self.session.flush()

        logger.debug(f"Issued {count} tickets for registration {registration_id}")
        return tickets

    async def _unique_codes(self, count: int) -> List[str]:
        codes: Set[str] = set()
        for _ in range(MAX_CODE_ATTEMPTS):
            while len(codes) < count:
                codes.add(self.generator.generate_code())

            taken = await self.session.scalars(select(Ticket.ticket_code).where(Ticket.ticket_code.in_(codes)))
            codes -= set(taken.all())
            if len(codes) == count:
                return sorted(codes)

        raise RuntimeError(f"Could not generate {count} unique ticket codes")
