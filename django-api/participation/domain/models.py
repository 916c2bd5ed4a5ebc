"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in participation/models.py (persistence layer).
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from participation.domain.errors import InvalidCapacityError
from participation.domain.ledger import ParticipationLedger
from participation.domain.value_objects import (
    Capacity,
    EventId,
    Money,
    PaymentId,
    UserId,
    WaitlistEntryId,
)


class EventStatus(Enum):
    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (EventStatus.CANCELLED, EventStatus.COMPLETED)


class WaitlistStatus(Enum):
    WAITING = "waiting"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"

    @property
    def is_active(self) -> bool:
        return self in (WaitlistStatus.WAITING, WaitlistStatus.OFFERED)


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class FeedKind(Enum):
    ACTIVITY = "activity"
    NOTIFICATION = "notification"


class ActivityType(Enum):
    EVENT_JOINED = "event_joined"
    EVENT_LEFT = "event_left"
    EVENT_CANCELLED = "event_cancelled"
    WAITLIST_JOINED = "waitlist_joined"


class NotificationType(Enum):
    FRIEND_JOINED_EVENT = "friend_joined_event"
    PARTICIPANT_LEFT = "participant_left"
    EVENT_CANCELLED = "event_cancelled"
    EVENT_REOPENED = "event_reopened"
    EVENT_COMPLETED = "event_completed"
    SPOT_AVAILABLE = "spot_available"
    OFFER_EXPIRED = "offer_expired"
    PAYMENT_REFUNDED = "payment_refunded"


@dataclass(frozen=True)
class Event:
    """Domain representation of an Event and its capacity counters."""

    id: EventId
    host_id: UserId
    name: str
    min_participants: int
    max_participants: Capacity
    joining_fee: Money
    status: EventStatus
    ledger: ParticipationLedger = field(default_factory=ParticipationLedger)
    held_seats: int = 0
    waitlist_enabled: bool = True
    starts_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.max_participants.value < 1:
            raise InvalidCapacityError("Maximum participants must be at least 1")
        if not 1 <= self.min_participants <= self.max_participants.value:
            raise InvalidCapacityError(
                "Minimum participants must be between 1 and the maximum"
            )
        if self.ledger.count() > self.max_participants.value:
            raise InvalidCapacityError("Participants exceed maximum capacity")
        if self.held_seats < 0 or self.ledger.count() + self.held_seats > self.max_participants.value:
            raise InvalidCapacityError("Held seats exceed remaining capacity")

    @property
    def current_participants(self) -> int:
        return self.ledger.count()

    @property
    def participants(self) -> frozenset[UserId]:
        return self.ledger.members

    @property
    def free_seats(self) -> int:
        """Seats neither taken nor held for a waitlist offer."""
        return self.max_participants.value - self.ledger.count() - self.held_seats

    @property
    def is_paid(self) -> bool:
        return not self.joining_fee.is_free


@dataclass(frozen=True)
class WaitlistEntry:
    """Domain representation of a WaitlistEntry.

    ``position`` is derived by the store: the 1-based rank of ``sequence``
    among the event's active entries, or ``None`` once the entry is resolved.
    """

    id: WaitlistEntryId
    event_id: EventId
    user_id: UserId
    sequence: int
    status: WaitlistStatus
    joined_at: datetime
    offered_at: datetime | None = None
    offer_expires_at: datetime | None = None
    resolved_at: datetime | None = None
    position: int | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def holds_live_offer(self, now: datetime) -> bool:
        return (
            self.status is WaitlistStatus.OFFERED
            and self.offer_expires_at is not None
            and self.offer_expires_at > now
        )


@dataclass(frozen=True)
class Payment:
    """Domain representation of a Payment for a paid event."""

    id: PaymentId
    event_id: EventId
    user_id: UserId
    amount: Money
    status: PaymentStatus
    provider_reference: str = ""
    redirect_url: str = ""
    refund_reason: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class FeedEntry:
    """An Activity or Notification record, append-only once written."""

    kind: FeedKind
    type: str
    user_id: UserId
    message: str
    title: str = ""
    related_user_id: UserId | None = None
    related_event_id: EventId | None = None
    data: Mapping[str, object] = field(default_factory=dict)
    is_read: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class UserProfile:
    """What the participation core needs to know about a user."""

    id: UserId
    display_name: str
    email: str = ""
    is_admin: bool = False


@dataclass(frozen=True)
class Joined:
    """Join outcome: the user now holds a seat."""

    event: Event


@dataclass(frozen=True)
class Waitlisted:
    """Join outcome: the event was full and the user was queued."""

    event: Event
    entry: WaitlistEntry


@dataclass(frozen=True)
class PaymentPending:
    """Join outcome: a checkout was started; the seat follows confirmation."""

    event: Event
    payment: Payment


JoinOutcome = Joined | Waitlisted | PaymentPending


@dataclass(frozen=True)
class WaitlistView:
    """Read model for an event's waitlist."""

    event_id: EventId
    entries: tuple[WaitlistEntry, ...]
    viewer_entry: WaitlistEntry | None = None

    @property
    def total_waiting(self) -> int:
        return sum(1 for entry in self.entries if entry.status is WaitlistStatus.WAITING)
