"""
Broker Publish Port.

The relay only needs "send this message, tell me if it was accepted".
Implementations raise PublishError on any failure; returning normally means
the broker acknowledged the message.
"""
import asyncio
import logging
from typing import Optional, Protocol

from kafka import KafkaProducer
from kafka.errors import KafkaError

from app.core.config import BROKER_BACKEND, KAFKA_BOOTSTRAP_SERVERS, PUBLISH_TIMEOUT
from app.core.exceptions import PublishError

log = logging.getLogger("broker")


class BrokerPublisher(Protocol):

    async def publish(self, topic: str, key: str, body: bytes) -> None: ...

    async def close(self) -> None: ...


class KafkaBrokerPublisher:
    """Publishes through kafka-python, waiting for the broker ack in a worker thread."""

    def __init__(self, bootstrap_servers: str = KAFKA_BOOTSTRAP_SERVERS, ack_timeout: float = PUBLISH_TIMEOUT,
                 producer: Optional[KafkaProducer] = None):
        self._bootstrap_servers = bootstrap_servers
        self._ack_timeout = ack_timeout
        self._producer = producer

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                acks="all",
                retries=3,
                linger_ms=10,
            )
        return self._producer

    def _send_sync(self, topic: str, key: str, body: bytes) -> None:
        future = self._get_producer().send(topic, key=key.encode("utf-8"), value=body)
        # Block until the broker acks (or the timeout expires)
        future.get(timeout=self._ack_timeout)

    async def publish(self, topic: str, key: str, body: bytes) -> None:
        try:
            await asyncio.to_thread(self._send_sync, topic, key, body)
        except KafkaError as exc:
            raise PublishError(f"Kafka publish to {topic} failed: {type(exc).__name__}: {exc}") from exc

    async def close(self) -> None:
        if self._producer is not None:
            await asyncio.to_thread(self._producer.close, self._ack_timeout)
            self._producer = None


class LoggingBrokerPublisher:
    """Stands in for a broker in local runs: every message is logged and accepted."""

    async def publish(self, topic: str, key: str, body: bytes) -> None:
        log.info(f"EXTERNAL NOTIFICATION: topic={topic} key={key} body={body.decode('utf-8')[:200]}")

    async def close(self) -> None:
        pass


def build_broker(backend: str = BROKER_BACKEND) -> BrokerPublisher:
    if backend == "kafka":
        return KafkaBrokerPublisher()
    if backend == "log":
        return LoggingBrokerPublisher()
    raise ValueError(f"Unknown broker backend: {backend}")
