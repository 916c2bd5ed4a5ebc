"""Participation service - all participation business logic lives here.

Services:
- Depend only on interfaces (stores, processor, dispatcher)
- Validate domain invariants before anything is written
- Let the store re-check seat availability atomically
- Dispatch side effects only after a transition has been stored
- Return domain models or raise domain errors
"""

import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from django.utils import timezone

from participation.dispatch import SideEffectDispatcher
from participation.domain import (
    Event,
    EventId,
    Joined,
    JoinOutcome,
    UserId,
    UserProfile,
    WaitlistEntry,
    WaitlistPolicy,
    WaitlistStatus,
    WaitlistView,
    Waitlisted,
)
from participation.domain import state_machine
from participation.domain.errors import (
    AlreadyWaitlistedError,
    EventFullError,
    EventNotFoundError,
    UserNotFoundError,
    WaitlistEntryNotFoundError,
)
from participation.domain.events import (
    CapacityChanged,
    DomainEvent,
    EventCancelled,
    EventCompleted,
    EventReopened,
    ParticipantJoined,
    ParticipantLeft,
    UserWaitlisted,
    WaitlistOfferExpired,
    WaitlistOfferMade,
    WaitlistWithdrawn,
)
from participation.services.ids import parse_event_id, parse_user_id
from participation.services.payment_gateway import PaymentGateway
from participation.services.processors import PaymentProcessor
from participation.stores.interfaces import ParticipationStore, PaymentStore, UserDirectory

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({WaitlistStatus.WAITING, WaitlistStatus.OFFERED})
OFFERED = frozenset({WaitlistStatus.OFFERED})

RawEventId = EventId | UUID | str
RawUserId = UserId | int | str


class ParticipationService:
    """Join, leave and lifecycle operations for events.

    Paid joins are delegated to ``self.gateway``, which shares this
    service's store and dispatcher.
    """

    def __init__(
        self,
        store: ParticipationStore,
        users: UserDirectory,
        dispatcher: SideEffectDispatcher,
        payments: PaymentStore,
        processor: PaymentProcessor,
        policy: WaitlistPolicy | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._users = users
        self._dispatcher = dispatcher
        self._policy = policy or WaitlistPolicy()
        self._clock = clock
        self.gateway = PaymentGateway(self, payments, processor)

    def now(self) -> datetime:
        return self._clock()

    def dispatch(self, domain_event: DomainEvent) -> None:
        self._dispatcher.dispatch(domain_event)

    def get_event(self, event_id: RawEventId) -> Event:
        """Return an event by ID.

        Raises:
            InvalidIdError: If the event_id is not a valid UUID.
            EventNotFoundError: If the event does not exist.
        """
        event_id = parse_event_id(event_id)
        event = self._store.get_event(event_id)
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    def get_user(self, user_id: RawUserId) -> UserProfile:
        user_id = parse_user_id(user_id)
        user = self._users.get_user(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    # Joining and leaving

    def join_event(self, event_id: RawEventId, user_id: RawUserId) -> JoinOutcome:
        """Join an event, queue on its waitlist, or start a checkout.

        Free events seat the user at once. Paid events return a pending
        payment; the seat follows its confirmation. A full event queues the
        user when its waitlist is enabled.

        Raises:
            InvalidIdError, EventNotFoundError, UserNotFoundError
            EventNotOpenError: If the event is cancelled or completed.
            IsHostError: If the user hosts the event.
            AlreadyJoinedError: If the user already holds a seat.
            AlreadyWaitlistedError: If the event is full and the user is queued.
            EventFullError: If the event is full and has no waitlist.
            PaymentProcessorError: If a checkout cannot be started.
        """
        event_id = parse_event_id(event_id)
        user = self.get_user(user_id)
        now = self.now()
        self._expire_offers(now, event_id)
        event = self.get_event(event_id)
        state_machine.ensure_can_join(event, user.id)

        entry = self._store.get_active_entry(event_id, user.id)
        if not state_machine.has_seat_for(event, entry, now):
            return self._queue(event, user.id, entry, now)
        if event.is_paid:
            return self.gateway.start_checkout(event, user.id)

        seated = self._seat(event_id, user.id, entry, now)
        if seated is None:
            logger.info("Lost the last seat of event %s; queueing user %s", event_id, user.id)
            event = self.get_event(event_id)
            return self._queue(event, user.id, self._store.get_active_entry(event_id, user.id), now)
        return Joined(seated)

    def seat_paid_participant(self, event_id: EventId, user_id: UserId) -> Event:
        """Seat the payer of a completed payment.

        Raises:
            EventNotOpenError, IsHostError, AlreadyJoinedError
            EventFullError: If no seat is left for the payer.
        """
        now = self.now()
        self._expire_offers(now, event_id)
        event = self.get_event(event_id)
        state_machine.ensure_can_join(event, user_id)
        entry = self._store.get_active_entry(event_id, user_id)
        seated = None
        if state_machine.has_seat_for(event, entry, now):
            seated = self._seat(event_id, user_id, entry, now)
        if seated is None:
            raise EventFullError()
        return seated

    def _seat(
        self, event_id: EventId, user_id: UserId, entry: WaitlistEntry | None, now: datetime
    ) -> Event | None:
        offer_id = entry.id if entry and entry.status is WaitlistStatus.OFFERED else None
        seated = self._store.seat_participant(event_id, user_id, now, offer_id=offer_id)
        if seated is None:
            return None
        if entry is not None and entry.status is WaitlistStatus.WAITING:
            self._store.resolve_entry(
                entry.id, frozenset({WaitlistStatus.WAITING}), WaitlistStatus.ACCEPTED, now
            )
        logger.info("User %s joined event %s", user_id, event_id)
        self.dispatch(ParticipantJoined(seated, user_id))
        return seated

    def _queue(
        self, event: Event, user_id: UserId, entry: WaitlistEntry | None, now: datetime
    ) -> Waitlisted:
        if not event.waitlist_enabled:
            raise EventFullError()
        if entry is not None:
            raise AlreadyWaitlistedError(position=entry.position)
        queued = self._store.enqueue(event.id, user_id, now)
        logger.info(
            "User %s waitlisted for event %s at position %s", user_id, event.id, queued.position
        )
        self.dispatch(UserWaitlisted(event, queued))
        return Waitlisted(event, queued)

    def leave_event(
        self, event_id: RawEventId, user_id: RawUserId, refunded: bool = False
    ) -> Event:
        """Give up a seat; the freed seat is offered to the waitlist.

        Raises:
            InvalidIdError, EventNotFoundError
            EventNotOpenError: If the event is cancelled or completed.
            NotAParticipantError: If the user holds no seat.
        """
        event_id = parse_event_id(event_id)
        user_id = parse_user_id(user_id)
        event = self.get_event(event_id)
        state_machine.ensure_can_leave(event, user_id)
        left = self._store.unseat_participant(event_id, user_id)
        logger.info("User %s left event %s", user_id, event_id)
        self.dispatch(ParticipantLeft(left, user_id, refunded=refunded))
        self.promote(event_id)
        return self.get_event(event_id)

    # Lifecycle

    def cancel_event(self, event_id: RawEventId, acting_user_id: RawUserId) -> Event:
        """Cancel an event; participants are kept, the waitlist is closed.

        Raises:
            NotAuthorizedError: If the actor is neither host nor admin.
            AlreadyCancelledError: If the event is already cancelled.
            EventNotOpenError: If the event is completed.
        """
        event = self.get_event(event_id)
        actor = self.get_user(acting_user_id)
        state_machine.ensure_can_cancel(event, actor)
        cancelled, expired = self._store.apply_transition(
            event.id, lambda current: state_machine.apply_cancel(current, actor), self.now()
        )
        logger.info(
            "Event %s cancelled by user %s; %d waitlist entries closed",
            event.id,
            actor.id,
            len(expired),
        )
        self.dispatch(
            EventCancelled(cancelled, actor.id, waitlisted=tuple(e.user_id for e in expired))
        )
        return cancelled

    def reopen_event(self, event_id: RawEventId, acting_user_id: RawUserId) -> Event:
        """Admin override bringing a cancelled event back.

        Raises:
            NotAuthorizedError: If the actor is not an admin.
            EventNotCancelledError: If the event is not cancelled.
        """
        event = self.get_event(event_id)
        actor = self.get_user(acting_user_id)
        state_machine.ensure_can_reopen(event, actor)
        reopened, _ = self._store.apply_transition(
            event.id, lambda current: state_machine.apply_reopen(current, actor), self.now()
        )
        logger.info("Event %s reopened by user %s as %s", event.id, actor.id, reopened.status.value)
        self.dispatch(EventReopened(reopened, actor.id))
        self.promote(event.id)
        return self.get_event(event.id)

    def complete_event(self, event_id: RawEventId, acting_user_id: RawUserId) -> Event:
        """Mark an event as held.

        Raises:
            NotAuthorizedError: If the actor is not an admin.
            EventNotOpenError: If the event is cancelled or completed.
        """
        event = self.get_event(event_id)
        actor = self.get_user(acting_user_id)
        state_machine.ensure_can_complete(event, actor)
        completed, expired = self._store.apply_transition(
            event.id, lambda current: state_machine.apply_complete(current, actor), self.now()
        )
        logger.info("Event %s completed; %d waitlist entries closed", event.id, len(expired))
        self.dispatch(EventCompleted(completed, actor.id))
        return completed

    def change_capacity(
        self, event_id: RawEventId, acting_user_id: RawUserId, max_participants: int
    ) -> Event:
        """Resize an event; new free seats are offered to the waitlist.

        Raises:
            NotAuthorizedError: If the actor is neither host nor admin.
            EventNotOpenError: If the event is cancelled or completed.
            InvalidCapacityError: If the new maximum is below the seats
                taken or held.
        """
        event = self.get_event(event_id)
        actor = self.get_user(acting_user_id)
        state_machine.ensure_can_resize(event, actor, max_participants)
        resized, _ = self._store.apply_transition(
            event.id,
            lambda current: state_machine.apply_resize(current, actor, max_participants),
            self.now(),
        )
        logger.info(
            "Event %s resized from %d to %d by user %s",
            event.id,
            event.max_participants.value,
            max_participants,
            actor.id,
        )
        self.dispatch(CapacityChanged(resized, actor.id, event.max_participants.value))
        self.promote(event.id)
        return self.get_event(event.id)

    # Waitlist

    def get_waitlist(
        self, event_id: RawEventId, viewer_id: RawUserId | None = None
    ) -> WaitlistView:
        """Return the active waitlist in queue order."""
        event = self.get_event(event_id)
        self._expire_offers(self.now(), event.id)
        entries = self._store.list_active_entries(event.id)
        viewer_entry = None
        if viewer_id is not None:
            viewer = parse_user_id(viewer_id)
            viewer_entry = next((e for e in entries if e.user_id == viewer), None)
        return WaitlistView(event_id=event.id, entries=tuple(entries), viewer_entry=viewer_entry)

    def withdraw_from_waitlist(self, event_id: RawEventId, user_id: RawUserId) -> WaitlistEntry:
        """Leave the waitlist, declining any outstanding offer.

        Raises:
            WaitlistEntryNotFoundError: If the user is not queued.
        """
        event = self.get_event(event_id)
        user_id = parse_user_id(user_id)
        now = self.now()
        entry = self._store.get_active_entry(event.id, user_id)
        if entry is None:
            raise WaitlistEntryNotFoundError(str(event.id))
        declined = self._store.resolve_entry(entry.id, ACTIVE_STATUSES, WaitlistStatus.DECLINED, now)
        if declined is None:
            raise WaitlistEntryNotFoundError(str(event.id))
        logger.info("User %s withdrew from the waitlist of event %s", user_id, event.id)
        self.dispatch(WaitlistWithdrawn(self.get_event(event.id), declined))
        if entry.status is WaitlistStatus.OFFERED:
            self.promote(event.id, now)
        return declined

    def promote(self, event_id: EventId, now: datetime | None = None) -> list[WaitlistEntry]:
        """Offer every free seat to the next waiting users, in order."""
        now = now or self.now()
        offers: list[WaitlistEntry] = []
        while True:
            offered = self._store.offer_next(event_id, now, self._policy.offer_deadline(now))
            if offered is None:
                break
            logger.info(
                "Offered a seat of event %s to user %s until %s",
                event_id,
                offered.user_id,
                offered.offer_expires_at,
            )
            offers.append(offered)
            self.dispatch(WaitlistOfferMade(self.get_event(event_id), offered))
        return offers

    def expire_waitlist_offers(self, now: datetime | None = None) -> list[Event]:
        """Expire overdue offers everywhere and pass their seats on.

        Safe to run repeatedly and concurrently: each offer is expired by
        exactly one caller.

        Returns the events whose waitlist changed.
        """
        return self._expire_offers(now or self.now())

    def _expire_offers(self, now: datetime, event_id: EventId | None = None) -> list[Event]:
        touched: dict[EventId, Event] = {}
        for entry in self._store.list_expired_offers(now, event_id):
            expired = self._store.resolve_entry(entry.id, OFFERED, WaitlistStatus.EXPIRED, now)
            if expired is None:
                continue
            logger.info(
                "Offer to user %s for event %s expired", expired.user_id, expired.event_id
            )
            self.dispatch(WaitlistOfferExpired(self.get_event(expired.event_id), expired))
            self.promote(expired.event_id, now)
            touched[expired.event_id] = self.get_event(expired.event_id)
        return list(touched.values())
