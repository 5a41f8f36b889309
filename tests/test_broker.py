import pytest
from unittest.mock import MagicMock
from kafka.errors import KafkaTimeoutError

from app.core.exceptions import PublishError
from app.events.broker import (
    KafkaBrokerPublisher,
    LoggingBrokerPublisher,
    build_broker,
)


class TestBuildBroker:

    def test_known_backends(self):
        assert isinstance(build_broker("log"), LoggingBrokerPublisher)
        assert isinstance(build_broker("kafka"), KafkaBrokerPublisher)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            build_broker("carrier-pigeon")


class TestKafkaBrokerPublisher:

    @pytest.mark.asyncio
    async def test_publish_waits_for_ack(self):
        producer = MagicMock()
        publisher = KafkaBrokerPublisher(ack_timeout=2.0, producer=producer)

        await publisher.publish("customer-topic", "cust-1", b'{"n": 1}')

        producer.send.assert_called_once_with("customer-topic", key=b"cust-1", value=b'{"n": 1}')
        producer.send.return_value.get.assert_called_once_with(timeout=2.0)

    @pytest.mark.asyncio
    async def test_missing_ack_raises_publish_error(self):
        producer = MagicMock()
        producer.send.return_value.get.side_effect = KafkaTimeoutError("no ack")
        publisher = KafkaBrokerPublisher(producer=producer)

        with pytest.raises(PublishError) as excinfo:
            await publisher.publish("customer-topic", "cust-1", b"{}")
        assert "KafkaTimeoutError" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_close_releases_producer(self):
        producer = MagicMock()
        publisher = KafkaBrokerPublisher(ack_timeout=1.0, producer=producer)

        await publisher.close()

        producer.close.assert_called_once_with(1.0)


@pytest.mark.asyncio
async def test_logging_broker_accepts_everything(caplog):
    caplog.set_level("INFO", logger="broker")
    await LoggingBrokerPublisher().publish("customer-topic", "cust-9", b'{"ok": true}')
    assert "key=cust-9" in caplog.text

