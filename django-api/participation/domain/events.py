"""Domain events emitted after a participation transition has been stored.

The dispatcher turns these into activity and notification records.
"""

from dataclasses import dataclass

from participation.domain.models import Event, Payment, WaitlistEntry
from participation.domain.value_objects import UserId


@dataclass(frozen=True)
class ParticipantJoined:
    event: Event
    user_id: UserId


@dataclass(frozen=True)
class ParticipantLeft:
    event: Event
    user_id: UserId
    refunded: bool = False


@dataclass(frozen=True)
class UserWaitlisted:
    event: Event
    entry: WaitlistEntry


@dataclass(frozen=True)
class EventCancelled:
    event: Event
    actor_id: UserId
    waitlisted: tuple[UserId, ...] = ()


@dataclass(frozen=True)
class EventReopened:
    event: Event
    actor_id: UserId


@dataclass(frozen=True)
class EventCompleted:
    event: Event
    actor_id: UserId


@dataclass(frozen=True)
class CapacityChanged:
    event: Event
    actor_id: UserId
    previous_max: int


@dataclass(frozen=True)
class WaitlistOfferMade:
    event: Event
    entry: WaitlistEntry


@dataclass(frozen=True)
class WaitlistOfferExpired:
    event: Event
    entry: WaitlistEntry


@dataclass(frozen=True)
class PaymentRefunded:
    event: Event
    payment: Payment
    reason: str = ""


@dataclass(frozen=True)
class WaitlistWithdrawn:
    event: Event
    entry: WaitlistEntry


DomainEvent = (
    ParticipantJoined
    | ParticipantLeft
    | UserWaitlisted
    | EventCancelled
    | EventReopened
    | EventCompleted
    | WaitlistOfferMade
    | WaitlistOfferExpired
    | PaymentRefunded
    | WaitlistWithdrawn
    | CapacityChanged
)

__all__ = [
    "CapacityChanged",
    "DomainEvent",
    "EventCancelled",
    "EventCompleted",
    "EventReopened",
    "ParticipantJoined",
    "ParticipantLeft",
    "PaymentRefunded",
    "UserWaitlisted",
    "WaitlistOfferExpired",
    "WaitlistOfferMade",
    "WaitlistWithdrawn",
]

