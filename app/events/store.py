"""
Record store access for the outbox table.

The writer only appends (inside the caller's transaction); the relay only
reads pending rows and updates single rows by id. Every relay update is
conditional on the row still being PENDING, so replays never regress a
SENT or FAILED record.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from tortoise.exceptions import BaseORMException
from tortoise.expressions import F
from tortoise.functions import Count

from app.core.exceptions import StoreError
from app.models.outbox import OutboxEvent, OutboxStatus

log = logging.getLogger("outbox_store")

MAX_ERROR_LENGTH = 4000


class OutboxStore(Protocol):
    """What the writer, the relay and the stats endpoint need from the outbox table."""

    async def insert(self, event: OutboxEvent, conn: Any = None) -> int: ...

    async def select_pending_batch(self, limit: int) -> List[Any]: ...

    async def mark_sent(self, event_id: int, processed_at: datetime) -> bool: ...

    async def mark_retry(self, event_id: int, error: str) -> int: ...

    async def mark_failed(self, event_id: int, error: str) -> bool: ...

    async def count_by_status(self) -> Dict[str, int]: ...


class TortoiseOutboxStore:
    """OutboxStore backed by the Tortoise `OutboxEvent` model."""

    async def insert(self, event: OutboxEvent, conn: Any = None) -> int:
        """
        Persists a new event using the caller's connection.

        CRITICAL: 'conn' must be the connection of the business transaction,
        so the row commits or rolls back together with the business change.
        """
        try:
            await event.save(using_db=conn)
        except BaseORMException as exc:
            raise StoreError(f"Failed to insert outbox event: {exc}") from exc
        return event.id

    async def select_pending_batch(self, limit: int) -> List[OutboxEvent]:
        try:
            return await (
                OutboxEvent.filter(status=OutboxStatus.PENDING)
                .order_by("created_at", "id")
                .limit(limit)
            )
        except BaseORMException as exc:
            raise StoreError(f"Failed to select pending outbox events: {exc}") from exc

    async def mark_sent(self, event_id: int, processed_at: datetime) -> bool:
        try:
            updated = await OutboxEvent.filter(id=event_id, status=OutboxStatus.PENDING).update(
                status=OutboxStatus.SENT,
                processed_at=processed_at,
                last_error=None,
            )
        except BaseORMException as exc:
            raise StoreError(f"Failed to mark outbox event {event_id} as sent: {exc}") from exc
        return updated > 0

    async def mark_retry(self, event_id: int, error: str) -> int:
        """Increments the attempt counter and returns its new value."""
        try:
            await OutboxEvent.filter(id=event_id, status=OutboxStatus.PENDING).update(
                retry_count=F("retry_count") + 1,
                last_error=error[:MAX_ERROR_LENGTH],
            )
            event = await OutboxEvent.get_or_none(id=event_id)
        except BaseORMException as exc:
            raise StoreError(f"Failed to record retry for outbox event {event_id}: {exc}") from exc
        return event.retry_count if event else 0

    async def mark_failed(self, event_id: int, error: str) -> bool:
        try:
            updated = await OutboxEvent.filter(id=event_id, status=OutboxStatus.PENDING).update(
                status=OutboxStatus.FAILED,
                last_error=error[:MAX_ERROR_LENGTH],
            )
        except BaseORMException as exc:
            raise StoreError(f"Failed to mark outbox event {event_id} as failed: {exc}") from exc
        return updated > 0

    async def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in OutboxStatus}
        try:
            rows = await (
                OutboxEvent.annotate(count=Count("id"))
                .group_by("status")
                .values("status", "count")
            )
        except BaseORMException as exc:
            raise StoreError(f"Failed to count outbox events: {exc}") from exc
        for row in rows:
            counts[OutboxStatus(row["status"]).value] = row["count"]
        return counts

    async def get(self, event_id: int) -> Optional[OutboxEvent]:
        return await OutboxEvent.get_or_none(id=event_id)
