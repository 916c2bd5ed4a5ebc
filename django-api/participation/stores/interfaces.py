"""Store interfaces (repository pattern).

Stores must be swappable and return domain models.

Every method of ``ParticipationStore`` that changes seats or the waitlist is
atomic per event: the store re-validates the transition against the state it
holds at write time, so two callers racing for the last seat can never both
win. Callers may pre-check with the domain rules to fail fast, but the store
has the final word.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from participation.domain import (
    Event,
    EventId,
    FeedEntry,
    FeedKind,
    Money,
    Payment,
    PaymentId,
    PaymentStatus,
    UserId,
    UserProfile,
    WaitlistEntry,
    WaitlistEntryId,
    WaitlistStatus,
)

EventTransition = Callable[[Event], Event]


class ParticipationStore(ABC):
    """Interface for events, their participant ledger and their waitlist."""

    @abstractmethod
    def add_event(self, event: Event) -> Event:
        """Persist a new event and return it as stored."""
        ...

    @abstractmethod
    def get_event(self, event_id: EventId) -> Event | None:
        """Return an event by ID, or None if not found."""
        ...

    @abstractmethod
    def seat_participant(
        self,
        event_id: EventId,
        user_id: UserId,
        now: datetime,
        offer_id: WaitlistEntryId | None = None,
    ) -> Event | None:
        """Atomically add ``user_id`` to the ledger if a seat is available.

        When ``offer_id`` names a live offer of this user, the seat held for
        it is consumed and the entry becomes ``accepted``.

        Returns the updated event, or None if no seat was available.

        Raises:
            EventNotFoundError: If the event does not exist.
            EventNotOpenError, IsHostError, AlreadyJoinedError: As in the
                state machine, evaluated at write time.
        """
        ...

    @abstractmethod
    def unseat_participant(self, event_id: EventId, user_id: UserId) -> Event:
        """Atomically remove ``user_id`` from the ledger.

        Raises:
            EventNotFoundError: If the event does not exist.
            EventNotOpenError: If the event is cancelled or completed.
            NotAParticipantError: If the user holds no seat.
        """
        ...

    @abstractmethod
    def apply_transition(
        self, event_id: EventId, transition: EventTransition, now: datetime
    ) -> tuple[Event, list[WaitlistEntry]]:
        """Atomically apply a status or capacity change computed by ``transition``.

        When the resulting status is terminal, every active waitlist entry of
        the event is expired in the same unit of work.

        Returns the updated event and the waitlist entries that were active
        before the transition and are now expired.
        """
        ...

    @abstractmethod
    def enqueue(self, event_id: EventId, user_id: UserId, now: datetime) -> WaitlistEntry:
        """Append ``user_id`` to the event's waitlist with the next sequence.

        Raises:
            EventNotFoundError: If the event does not exist.
            AlreadyWaitlistedError: If the user already has an active entry.
            EventNotOpenError, IsHostError, AlreadyJoinedError: As for joins.
        """
        ...

    @abstractmethod
    def get_active_entry(self, event_id: EventId, user_id: UserId) -> WaitlistEntry | None:
        """Return the user's waiting or offered entry with its position."""
        ...

    @abstractmethod
    def list_active_entries(self, event_id: EventId) -> list[WaitlistEntry]:
        """Return waiting and offered entries in queue order with positions."""
        ...

    @abstractmethod
    def offer_next(
        self, event_id: EventId, now: datetime, expires_at: datetime
    ) -> WaitlistEntry | None:
        """Atomically offer a free seat to the first waiting entry.

        Only happens while the event is open and has a seat that is neither
        taken nor held; the offered seat becomes held.

        Returns the offered entry, or None if nothing was offered.
        """
        ...

    @abstractmethod
    def resolve_entry(
        self,
        entry_id: WaitlistEntryId,
        expected: frozenset[WaitlistStatus],
        target: WaitlistStatus,
        now: datetime,
    ) -> WaitlistEntry | None:
        """Compare-and-set an entry's status.

        Moves the entry to ``target`` only if its current status is in
        ``expected``. Resolving an ``offered`` entry releases its held seat.

        Returns the updated entry, or None if the status did not match.
        """
        ...

    @abstractmethod
    def list_expired_offers(
        self, now: datetime, event_id: EventId | None = None
    ) -> list[WaitlistEntry]:
        """Return offered entries whose deadline is at or before ``now``."""
        ...


class PaymentStore(ABC):
    """Interface for payment records of paid joins."""

    @abstractmethod
    def create_payment(self, event_id: EventId, user_id: UserId, amount: Money) -> Payment:
        """Create a pending payment."""
        ...

    @abstractmethod
    def get_payment(self, payment_id: PaymentId) -> Payment | None:
        ...

    @abstractmethod
    def find_pending(self, event_id: EventId, user_id: UserId) -> Payment | None:
        """Return the user's pending payment for the event, if any."""
        ...

    @abstractmethod
    def attach_checkout(
        self, payment_id: PaymentId, provider_reference: str, redirect_url: str
    ) -> Payment:
        ...

    @abstractmethod
    def transition_payment(
        self,
        payment_id: PaymentId,
        expected: PaymentStatus,
        target: PaymentStatus,
        refund_reason: str | None = None,
    ) -> Payment | None:
        """Compare-and-set a payment's status; None if it did not match."""
        ...


class ActivityStore(ABC):
    """Append-only store for activity and notification records."""

    @abstractmethod
    def append(self, entry: FeedEntry) -> FeedEntry:
        ...

    @abstractmethod
    def list_for_user(self, user_id: UserId, kind: FeedKind | None = None) -> list[FeedEntry]:
        """Return a user's records, newest first."""
        ...


class UserDirectory(ABC):
    """Read-only view of the user directory."""

    @abstractmethod
    def get_user(self, user_id: UserId) -> UserProfile | None:
        ...
