import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from app.core.db import close_db, init_db
from app.core.exceptions import PublishError, StoreError
from app.models.outbox import OutboxStatus


# Mocked Tortoise transaction manager
class in_transaction:
    """Mock for tortoise.transactions.in_transaction to bypass real DB context."""
    async def __aenter__(self):
        return object()
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


@dataclass
class FakeOutboxRecord:
    """Plain stand-in for an OutboxEvent row."""
    id: int
    aggregate_id: str
    event_type: str
    payload: str
    created_at: datetime
    status: OutboxStatus = OutboxStatus.PENDING
    retry_count: int = 0
    last_error: Optional[str] = None
    processed_at: Optional[datetime] = None


class InMemoryOutboxStore:
    """
    OutboxStore kept in a dict. Mirrors the conditional updates of the real
    store: only PENDING rows move, nothing ever regresses from SENT.
    """

    def __init__(self):
        self.records: Dict[int, FakeOutboxRecord] = {}
        self.fail_select = False
        self._next_id = 1
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def add(self, aggregate_id: str, event_type: str = "CUSTOMER_REGISTERED", payload: str = "{}") -> FakeOutboxRecord:
        self._clock += timedelta(seconds=1)
        record = FakeOutboxRecord(
            id=self._next_id,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            created_at=self._clock,
        )
        self.records[record.id] = record
        self._next_id += 1
        return record

    async def insert(self, event, conn=None) -> int:
        record = self.add(event.aggregate_id, event.event_type, event.payload)
        event.id = record.id
        return record.id

    async def select_pending_batch(self, limit: int) -> List[FakeOutboxRecord]:
        if self.fail_select:
            raise StoreError("database unavailable")
        pending = [r for r in self.records.values() if r.status == OutboxStatus.PENDING]
        pending.sort(key=lambda r: (r.created_at, r.id))
        # Hand out copies, like rows freshly read from the database
        return [FakeOutboxRecord(**vars(r)) for r in pending[:limit]]

    async def mark_sent(self, event_id: int, processed_at: datetime) -> bool:
        record = self.records[event_id]
        if record.status != OutboxStatus.PENDING:
            return False
        record.status = OutboxStatus.SENT
        record.processed_at = processed_at
        record.last_error = None
        return True

    async def mark_retry(self, event_id: int, error: str) -> int:
        record = self.records[event_id]
        if record.status == OutboxStatus.PENDING:
            record.retry_count += 1
            record.last_error = error
        return record.retry_count

    async def mark_failed(self, event_id: int, error: str) -> bool:
        record = self.records[event_id]
        if record.status != OutboxStatus.PENDING:
            return False
        record.status = OutboxStatus.FAILED
        record.last_error = error
        return True

    async def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in OutboxStatus}
        for record in self.records.values():
            counts[record.status.value] += 1
        return counts


@dataclass
class FakeBroker:
    """
    Records every publish call. `fail_keys` / `fail_payloads` make matching
    messages fail; `delay` makes every publish hang for that many seconds.
    """
    published: List[Tuple[str, str, bytes]] = field(default_factory=list)
    attempts: List[Tuple[str, str, bytes]] = field(default_factory=list)
    fail_keys: Set[str] = field(default_factory=set)
    fail_payloads: Set[str] = field(default_factory=set)
    delay: float = 0.0
    on_publish: Optional[Callable[[str, str, bytes], None]] = None
    closed: bool = False

    async def publish(self, topic: str, key: str, body: bytes) -> None:
        self.attempts.append((topic, key, body))
        if self.on_publish is not None:
            self.on_publish(topic, key, body)
        if self.delay:
            await asyncio.sleep(self.delay)
        if key in self.fail_keys or body.decode("utf-8") in self.fail_payloads:
            raise PublishError(f"broker rejected message for key={key}")
        self.published.append((topic, key, body))

    async def close(self) -> None:
        self.closed = True


@asynccontextmanager
async def sqlite_db():
    """Real Tortoise setup on a throwaway in-memory SQLite database."""
    await init_db(db_url="sqlite://:memory:")
    try:
        yield
    finally:
        await close_db()
