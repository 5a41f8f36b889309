from enum import Enum

from tortoise import fields, models


class OutboxStatus(str, Enum):
    PENDING = "PENDING"  # Written with the business change, waiting for the relay
    SENT = "SENT"        # Accepted by the broker
    FAILED = "FAILED"    # Gave up after too many attempts, needs manual attention


class OutboxEvent(models.Model):
    """
    The Outbox table stores events atomically with the database transaction.
    This is the core of the Transactional Outbox Pattern.

    Rows are only ever inserted by the outbox writer; the relay updates
    status, retry bookkeeping and processed_at. The payload is never updated.
    """
    id = fields.BigIntField(primary_key=True)  # Monotonic, storage addressing only
    aggregate_id = fields.CharField(max_length=36)  # Customer UUID, used as the broker key
    event_type = fields.CharField(max_length=64)  # e.g., 'CUSTOMER_REGISTERED'
    payload = fields.TextField()  # Full JSON snapshot of the aggregate
    status = fields.CharEnumField(OutboxStatus, max_length=16, default=OutboxStatus.PENDING)
    retry_count = fields.IntField(default=0)
    last_error = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    processed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "customer_outbox_event"
        indexes = [
            ("status", "created_at"),  # Relay polling: pending rows oldest-first
            ("aggregate_id",),
        ]

    def __str__(self):
        return f"OutboxEvent(id={self.id}, type={self.event_type}, aggregate={self.aggregate_id}, status={self.status})"
