"""Event store — append-only audit log.

Learn: Services append an event in the same transaction as the change it
describes, so the log never claims a link that was rolled back.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.db.models import Event


class EventStore:
    """Append-only event store backed by the main database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, stream_id: str, event_type: str, data: dict) -> Event:
        """Stage an event; it is written by the caller's next flush/commit."""
        event = Event(stream_id=stream_id, type=event_type, data=data)
        self.db.add(event)
        return event

    async def read_stream(
        self,
        stream_id: str,
        after_id: int = 0,
        limit: int = 100,
    ) -> list[Event]:
        """Read events for a specific stream, optionally after a given position."""
        result = await self.db.execute(
            select(Event)
            .where(Event.stream_id == stream_id, Event.id > after_id)
            .order_by(Event.id)
            .limit(limit)
        )
        return list(result.scalars().all())
