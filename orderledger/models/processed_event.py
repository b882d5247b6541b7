from tortoise import fields, models
import uuid


class ProcessedEvent(models.Model):
    """
    Consumer idempotency: stores the id of every OutboxEvent a consumer has
    fully handled so redelivery is a no-op.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_id = fields.CharField(max_length=128, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
