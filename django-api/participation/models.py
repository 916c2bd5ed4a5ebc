"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/.
"""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from participation.conf import waitlist_enabled_default


class Event(models.Model):
    """Persistence model for events and their capacity counters."""

    class Status(models.TextChoices):
        OPEN = "open"
        FULL = "full"
        CANCELLED = "cancelled"
        COMPLETED = "completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    host = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="hosted_events"
    )
    name = models.CharField(max_length=100)
    event_type = models.CharField(max_length=50, blank=True)
    description = models.TextField(max_length=2000, blank=True)
    location = models.CharField(max_length=255, blank=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    min_participants = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    max_participants = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    current_participants = models.PositiveIntegerField(default=0, editable=False)
    held_seats = models.PositiveIntegerField(default=0, editable=False)
    joining_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.OPEN)
    waitlist_enabled = models.BooleanField(default=waitlist_enabled_default)
    waitlist_sequence = models.PositiveIntegerField(default=0, editable=False)
    participants = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through="Participation",
        related_name="joined_events",
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="event_status_idx"),
            models.Index(fields=["host"], name="event_host_idx"),
            models.Index(fields=["-created_at"], name="event_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(max_participants__gte=1),
                name="event_max_participants_positive",
            ),
            models.CheckConstraint(
                condition=Q(current_participants__lte=F("max_participants")),
                name="event_not_overbooked",
            ),
            models.CheckConstraint(
                condition=Q(current_participants__lte=F("max_participants") - F("held_seats")),
                name="event_held_seats_within_capacity",
            ),
            models.CheckConstraint(
                condition=Q(joining_fee__gte=0),
                name="event_joining_fee_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        """Keep the maximum above the seats already taken or held."""
        super().clean()
        if self.max_participants is None:
            return
        occupied = self.current_participants + self.held_seats
        if self.max_participants < occupied:
            raise DjangoValidationError(
                {"max_participants": f"{occupied} seats are already taken or held."}
            )
        if self.min_participants and self.min_participants > self.max_participants:
            raise DjangoValidationError(
                {"min_participants": "Minimum participants cannot exceed the maximum."}
            )


class Participation(models.Model):
    """One seat in one event; a user holds at most one seat per event."""

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="participations")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="participations"
    )
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["joined_at"]
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="participation_unique_seat"),
        ]

    def __str__(self) -> str:
        return f"{self.user} @ {self.event}"


class WaitlistEntry(models.Model):
    """A user's place in an event's waitlist, ordered by ``sequence``."""

    class Status(models.TextChoices):
        WAITING = "waiting"
        OFFERED = "offered"
        ACCEPTED = "accepted"
        DECLINED = "declined"
        EXPIRED = "expired"

    ACTIVE_STATUSES = (Status.WAITING, Status.OFFERED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="waitlist_entries")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="waitlist_entries"
    )
    sequence = models.PositiveIntegerField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.WAITING)
    joined_at = models.DateTimeField()
    offered_at = models.DateTimeField(null=True, blank=True)
    offer_expires_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["event", "sequence"]
        indexes = [
            models.Index(fields=["event", "status", "sequence"], name="waitlist_queue_idx"),
            models.Index(fields=["status", "offer_expires_at"], name="waitlist_offer_expiry_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["event", "sequence"], name="waitlist_unique_sequence"
            ),
            models.UniqueConstraint(
                fields=["event", "user"],
                condition=Q(status__in=["waiting", "offered"]),
                name="waitlist_one_active_entry",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user} #{self.sequence} ({self.status})"


class Payment(models.Model):
    """Joining-fee payment; the seat follows a completed payment."""

    class Status(models.TextChoices):
        PENDING = "pending"
        COMPLETED = "completed"
        FAILED = "failed"
        REFUNDED = "refunded"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="payments")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="payments"
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    provider_reference = models.CharField(max_length=255, blank=True, db_index=True)
    redirect_url = models.URLField(max_length=500, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "-created_at"], name="payment_user_created_idx"),
            models.Index(fields=["event", "status"], name="payment_event_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.amount} {self.currency} ({self.status})"


class FeedRecord(models.Model):
    """Activity-feed entry or notification; append-only apart from ``is_read``."""

    class Kind(models.TextChoices):
        ACTIVITY = "activity"
        NOTIFICATION = "notification"

    kind = models.CharField(max_length=12, choices=Kind.choices)
    type = models.CharField(max_length=40)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="feed_records"
    )
    related_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    related_event = models.ForeignKey(
        Event, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    title = models.CharField(max_length=200, blank=True)
    message = models.CharField(max_length=1000)
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "kind", "-created_at"], name="feed_user_kind_idx"),
            models.Index(fields=["user", "is_read"], name="feed_user_unread_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.kind}:{self.type} -> {self.user}"
