from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Events written in the same transaction as the ledger change that caused
    them (or, for best-effort signals, right after it). The poller delivers
    them to their consumers.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=64) # e.g., 'order', 'inventory_item'
    aggregate_id = fields.UUIDField(null=True) # ID of the document that generated the event
    event_type = fields.CharField(max_length=128) # e.g., 'order.paid.v1'
    payload = fields.JSONField()
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("published", "created_at"),
        ]
