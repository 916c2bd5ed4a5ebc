from participation.domain.ledger import ParticipationLedger
from participation.domain.models import (
    Event,
    EventStatus,
    FeedEntry,
    FeedKind,
    Joined,
    JoinOutcome,
    Payment,
    PaymentPending,
    PaymentStatus,
    UserProfile,
    WaitlistEntry,
    WaitlistStatus,
    WaitlistView,
    Waitlisted,
)
from participation.domain.value_objects import (
    Capacity,
    EventId,
    Money,
    PaymentId,
    UserId,
    WaitlistEntryId,
)
from participation.domain.waitlist import WaitlistPolicy

__all__ = [
    "Event",
    "EventStatus",
    "FeedEntry",
    "FeedKind",
    "Joined",
    "JoinOutcome",
    "Payment",
    "PaymentPending",
    "PaymentStatus",
    "ParticipationLedger",
    "UserProfile",
    "WaitlistEntry",
    "WaitlistStatus",
    "WaitlistView",
    "Waitlisted",
    "WaitlistPolicy",
    "EventId",
    "UserId",
    "PaymentId",
    "WaitlistEntryId",
    "Money",
    "Capacity",
]
