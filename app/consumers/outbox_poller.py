"""
Outbox relay: moves PENDING outbox events to the message broker.

Each cycle selects a bounded batch of PENDING events oldest-first and
publishes them one by one. Every event is its own unit of work: a successful
publish is marked SENT immediately, a failed one is left PENDING with its
retry counter bumped, and one bad event never stops the rest of the batch.

Delivery is at-least-once. A crash between the broker ack and mark_sent means
the event is published again on a later cycle, so downstream consumers must
de-duplicate (e.g. on aggregate id + event type + payload).

Only one cycle runs at a time per relay instance. Running several relay
processes against the same table is not supported and would publish
duplicates.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Set

from app.core.config import (
    BATCH_SIZE,
    MAX_RETRIES,
    OUTBOX_TOPIC,
    PUBLISH_TIMEOUT,
    RELAY_INTERVAL,
)
from app.core.db import close_db, init_db
from app.core.exceptions import PublishError, StoreError
from app.events.broker import BrokerPublisher, build_broker
from app.events.store import OutboxStore, TortoiseOutboxStore

log = logging.getLogger("outbox_relay")


@dataclass
class RelayCycleResult:
    selected: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0


class OutboxRelay:

    def __init__(
        self,
        store: OutboxStore,
        broker: BrokerPublisher,
        topic: str = OUTBOX_TOPIC,
        batch_size: int = BATCH_SIZE,
        max_retries: int = MAX_RETRIES,
        publish_timeout: float = PUBLISH_TIMEOUT,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._store = store
        self._broker = broker
        self._topic = topic
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._publish_timeout = publish_timeout
        self._cycle_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_cycle(self) -> RelayCycleResult:
        """
        Runs one select/dispatch cycle.

        Overlapping calls do not wait: if a cycle is already in flight the
        call returns an empty result, so the same batch is never published twice.
        Raises StoreError when the store cannot be read or updated; updates made
        earlier in the cycle stay committed.
        """
        if self._cycle_lock.locked():
            log.warning("Previous relay cycle still running, skipping this one.")
            return RelayCycleResult()

        async with self._cycle_lock:
            return await self._process_batch()

    async def _process_batch(self) -> RelayCycleResult:
        result = RelayCycleResult()
        events = await self._store.select_pending_batch(self._batch_size)
        result.selected = len(events)

        # Aggregates with a failed event in this cycle; their later events wait
        # for the next cycle so per-aggregate order is kept.
        blocked: Set[str] = set()

        for event in events:
            if event.aggregate_id in blocked:
                log.info(f"Deferring event id={event.id} | aggregate={event.aggregate_id} | earlier event failed")
                result.skipped += 1
                continue

            error = await self._publish(event)
            if error is None:
                if await self._store.mark_sent(event.id, datetime.now(timezone.utc)):
                    result.sent += 1
                    log.info(f"Event sent to broker | id={event.id} | type={event.event_type} | aggregate={event.aggregate_id}")
                else:
                    # Already moved out of PENDING (e.g. replayed batch); nothing to do
                    result.skipped += 1
                    log.warning(f"Event id={event.id} was no longer PENDING after publish")
                continue

            blocked.add(event.aggregate_id)
            retry_count = await self._store.mark_retry(event.id, error)
            if retry_count >= self._max_retries:
                await self._store.mark_failed(event.id, error)
                result.failed += 1
                log.error(
                    f"ALERT: Outbox event moved to FAILED | id={event.id} | type={event.event_type} "
                    f"| aggregate={event.aggregate_id} | attempts={retry_count} | error={error}"
                )
            else:
                result.retried += 1

        return result

    async def _publish(self, event) -> Optional[str]:
        """Publishes one event. Returns None on success, the error text on failure."""
        body = event.payload.encode("utf-8")
        try:
            await asyncio.wait_for(
                self._broker.publish(self._topic, event.aggregate_id, body),
                timeout=self._publish_timeout,
            )
        except asyncio.TimeoutError:
            error = f"Publish timed out after {self._publish_timeout}s"
        except PublishError as exc:
            error = str(exc)
        except Exception as exc:
            # A misbehaving client must not take the rest of the batch down with it
            error = f"{type(exc).__name__}: {exc}"
        else:
            return None

        log.error(
            f"Broker publish failed | id={event.id} | aggregate={event.aggregate_id} "
            f"| attempt={event.retry_count + 1} | will retry | error={error}"
        )
        return error

    async def run_forever(self, interval: float = RELAY_INTERVAL):
        """Main loop for the relay. Returns once stop() is called."""
        self._stopping.clear()
        log.info(f"--- Outbox Relay Started | topic={self._topic} | batch={self._batch_size} | interval={interval}s ---")

        while not self._stopping.is_set():
            try:
                result = await self.run_cycle()
                if result.selected:
                    log.info(
                        f"Relay cycle done | selected={result.selected} | sent={result.sent} "
                        f"| retried={result.retried} | failed={result.failed} | skipped={result.skipped}"
                    )
            except StoreError as e:
                log.error(f"Relay cycle aborted by a store error, will retry next interval: {e}")
            except Exception:
                log.exception("Relay cycle crashed, will retry next interval.")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        log.info("--- Outbox Relay Stopped ---")

    def start(self, interval: float = RELAY_INTERVAL) -> asyncio.Task:
        """Runs the relay as a background task on the current event loop."""
        if self.running:
            raise RuntimeError("Outbox relay is already running")
        self._stopping.clear()
        self._task = asyncio.create_task(self.run_forever(interval), name="outbox-relay")
        return self._task

    async def stop(self, timeout: Optional[float] = None):
        """
        Asks the loop to exit and waits for it. The in-flight cycle is allowed
        to finish; past `timeout` the task is cancelled, and an event interrupted
        mid-publish stays PENDING and goes out again later.
        """
        self._stopping.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("Outbox relay did not stop in time, cancelled.")
        finally:
            self._task = None


async def start_outbox_poller():
    """Entry point for running the relay as its own process."""
    await init_db()
    broker = build_broker()
    relay = OutboxRelay(TortoiseOutboxStore(), broker)
    try:
        await relay.run_forever(RELAY_INTERVAL)
    finally:
        await broker.close()
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
