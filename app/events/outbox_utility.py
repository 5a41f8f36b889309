import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from app.core.exceptions import SerializationError
from app.events.store import OutboxStore, TortoiseOutboxStore
from app.models.outbox import OutboxEvent, OutboxStatus

log = logging.getLogger("outbox_writer")

_default_store = TortoiseOutboxStore()


class EventType:
    CUSTOMER_REGISTERED = "CUSTOMER_REGISTERED"
    CUSTOMER_CREATED = "CUSTOMER_CREATED"
    CUSTOMER_UPDATED = "CUSTOMER_UPDATED"
    CUSTOMER_KYC_COMPLETED = "CUSTOMER_KYC_COMPLETED"
    CUSTOMER_STATUS_CHANGED = "CUSTOMER_STATUS_CHANGED"


def _json_default(o):
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    if isinstance(o, UUID):
        return str(o)
    if isinstance(o, Decimal):
        return str(o)
    if isinstance(o, Enum):
        return o.value
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def serialize_snapshot(snapshot: Any) -> str:
    """Turns an aggregate snapshot into the immutable JSON payload of an event."""
    try:
        if isinstance(snapshot, BaseModel):
            return snapshot.model_dump_json()
        return json.dumps(snapshot, default=_json_default, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize event snapshot: {exc}") from exc


async def record_outbox_event(
    aggregate_id: Any,
    event_type: str,
    snapshot: Any,
    conn: Any = None,
    store: Optional[OutboxStore] = None,
) -> OutboxEvent:
    """
    Creates a new Outbox event record using the provided database connection (transaction).

    CRITICAL: Passing 'conn' ensures the event is created atomically with the business data.
    Any error raised here (SerializationError, StoreError) must be left to propagate out of
    the caller's transaction block so the business change is rolled back as well.
    """
    payload = serialize_snapshot(snapshot)

    event = OutboxEvent(
        aggregate_id=str(aggregate_id),
        event_type=event_type,
        payload=payload,
        status=OutboxStatus.PENDING,
        retry_count=0,
    )
    await (store or _default_store).insert(event, conn)

    log.info(f"Outbox event saved | id={event.id} | type={event_type} | aggregate={aggregate_id}")
    return event
