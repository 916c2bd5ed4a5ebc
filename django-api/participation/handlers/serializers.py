"""Serializers for transforming domain models to API responses.

Output serializers read frozen domain objects; input serializers only check
the shape of request bodies.
"""

from rest_framework import serializers

WEBHOOK_EVENT_TYPES = ("payment.completed", "payment.failed", "payment.refunded")


class EventSerializer(serializers.Serializer):
    """Serializer for the participation summary of an Event."""

    id = serializers.CharField()
    host_id = serializers.IntegerField(source="host_id.value")
    name = serializers.CharField()
    status = serializers.CharField(source="status.value")
    starts_at = serializers.DateTimeField(allow_null=True)
    min_participants = serializers.IntegerField()
    max_participants = serializers.IntegerField(source="max_participants.value")
    current_participants = serializers.IntegerField()
    held_seats = serializers.IntegerField()
    free_seats = serializers.IntegerField()
    participants = serializers.SerializerMethodField()
    joining_fee = serializers.DecimalField(
        max_digits=10, decimal_places=2, source="joining_fee.amount"
    )
    currency = serializers.CharField(source="joining_fee.currency")
    waitlist_enabled = serializers.BooleanField()

    def get_participants(self, event) -> list[int]:
        return [user_id.value for user_id in event.ledger]


class WaitlistEntrySerializer(serializers.Serializer):
    """Serializer for a WaitlistEntry with its derived position."""

    id = serializers.CharField()
    user_id = serializers.IntegerField(source="user_id.value")
    status = serializers.CharField(source="status.value")
    position = serializers.IntegerField(allow_null=True)
    joined_at = serializers.DateTimeField()
    offer_expires_at = serializers.DateTimeField(allow_null=True)


class WaitlistSerializer(serializers.Serializer):
    """Serializer for the WaitlistView read model."""

    event_id = serializers.CharField()
    total_waiting = serializers.IntegerField()
    entries = WaitlistEntrySerializer(many=True)


class PaymentSerializer(serializers.Serializer):
    id = serializers.CharField()
    event_id = serializers.CharField()
    user_id = serializers.IntegerField(source="user_id.value")
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, source="amount.amount")
    currency = serializers.CharField(source="amount.currency")
    status = serializers.CharField(source="status.value")
    redirect_url = serializers.CharField()


class RefundRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class PaymentWebhookSerializer(serializers.Serializer):
    """Body of a payment provider webhook."""

    type = serializers.ChoiceField(choices=WEBHOOK_EVENT_TYPES)
    payment_id = serializers.UUIDField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")
