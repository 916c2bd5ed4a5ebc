"""In-process implementation of the store interfaces.

Mutations of one event are serialized with a lock per event id, which makes
the read-check-write sequence of a join atomic for that event. Used by the
service unit tests and the concurrency tests; it holds no data across
processes.
"""

import itertools
import threading
import uuid
from collections import defaultdict
from dataclasses import replace
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
from participation.domain import state_machine, waitlist
from participation.domain.errors import EventNotFoundError
from participation.stores.interfaces import (
    ActivityStore,
    EventTransition,
    ParticipationStore,
    PaymentStore,
    UserDirectory,
)


class InMemoryParticipationStore(ParticipationStore):
    """Dictionary-backed participation store with per-event locks."""

    def __init__(self) -> None:
        self._events: dict[EventId, Event] = {}
        self._entries: dict[WaitlistEntryId, WaitlistEntry] = {}
        self._sequences: dict[EventId, itertools.count] = {}
        self._locks: defaultdict[EventId, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()

    def _lock(self, event_id: EventId) -> threading.Lock:
        with self._registry_lock:
            return self._locks[event_id]

    def _require(self, event_id: EventId) -> Event:
        event = self._events.get(event_id)
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    def _event_entries(self, event_id: EventId) -> list[WaitlistEntry]:
        return [e for e in self._entries.values() if e.event_id == event_id]

    def _with_position(self, entry: WaitlistEntry) -> WaitlistEntry:
        if not entry.is_active:
            return replace(entry, position=None)
        position = waitlist.position_of(self._event_entries(entry.event_id), entry)
        return replace(entry, position=position)

    def add_event(self, event: Event) -> Event:
        with self._lock(event.id):
            self._events[event.id] = event
            self._sequences[event.id] = itertools.count(1)
        return event

    def get_event(self, event_id: EventId) -> Event | None:
        return self._events.get(event_id)

    def seat_participant(
        self,
        event_id: EventId,
        user_id: UserId,
        now: datetime,
        offer_id: WaitlistEntryId | None = None,
    ) -> Event | None:
        with self._lock(event_id):
            event = self._require(event_id)
            state_machine.ensure_can_join(event, user_id)
            offer = self._entries.get(offer_id) if offer_id else None
            if offer is not None and offer.user_id != user_id:
                offer = None
            if not state_machine.has_seat_for(event, offer, now):
                return None
            consume = offer is not None and offer.holds_live_offer(now)
            updated = state_machine.apply_join(event, user_id, consume_hold=consume)
            if consume:
                self._entries[offer.id] = waitlist.resolve(offer, WaitlistStatus.ACCEPTED, now)
            self._events[event_id] = updated
            return updated

    def unseat_participant(self, event_id: EventId, user_id: UserId) -> Event:
        with self._lock(event_id):
            event = self._require(event_id)
            updated = state_machine.apply_leave(event, user_id)
            self._events[event_id] = updated
            return updated

    def apply_transition(
        self, event_id: EventId, transition: EventTransition, now: datetime
    ) -> tuple[Event, list[WaitlistEntry]]:
        with self._lock(event_id):
            event = self._require(event_id)
            updated = transition(event)
            expired: list[WaitlistEntry] = []
            if updated.status.is_terminal:
                for entry in self._event_entries(event_id):
                    if entry.is_active:
                        resolved = waitlist.resolve(entry, WaitlistStatus.EXPIRED, now)
                        self._entries[entry.id] = resolved
                        expired.append(resolved)
                updated = replace(updated, held_seats=0)
            self._events[event_id] = updated
            return updated, sorted(expired, key=lambda e: e.sequence)

    def enqueue(self, event_id: EventId, user_id: UserId, now: datetime) -> WaitlistEntry:
        with self._lock(event_id):
            event = self._require(event_id)
            active = self._find_active(event_id, user_id)
            waitlist.ensure_can_enqueue(
                event, user_id, self._with_position(active) if active else None
            )
            entry = WaitlistEntry(
                id=WaitlistEntryId(uuid.uuid4()),
                event_id=event_id,
                user_id=user_id,
                sequence=next(self._sequences[event_id]),
                status=WaitlistStatus.WAITING,
                joined_at=now,
            )
            self._entries[entry.id] = entry
            return self._with_position(entry)

    def _find_active(self, event_id: EventId, user_id: UserId) -> WaitlistEntry | None:
        for entry in self._event_entries(event_id):
            if entry.user_id == user_id and entry.is_active:
                return entry
        return None

    def get_active_entry(self, event_id: EventId, user_id: UserId) -> WaitlistEntry | None:
        entry = self._find_active(event_id, user_id)
        return self._with_position(entry) if entry else None

    def list_active_entries(self, event_id: EventId) -> list[WaitlistEntry]:
        return waitlist.rank(self._event_entries(event_id))

    def offer_next(
        self, event_id: EventId, now: datetime, expires_at: datetime
    ) -> WaitlistEntry | None:
        with self._lock(event_id):
            event = self._require(event_id)
            if not state_machine.has_seat_for(event, None, now):
                return None
            candidate = waitlist.next_waiting(self._event_entries(event_id))
            if candidate is None:
                return None
            offered = replace(
                candidate,
                status=WaitlistStatus.OFFERED,
                offered_at=now,
                offer_expires_at=expires_at,
            )
            self._entries[offered.id] = offered
            self._events[event_id] = replace(event, held_seats=event.held_seats + 1)
            return self._with_position(offered)

    def resolve_entry(
        self,
        entry_id: WaitlistEntryId,
        expected: frozenset[WaitlistStatus],
        target: WaitlistStatus,
        now: datetime,
    ) -> WaitlistEntry | None:
        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        with self._lock(entry.event_id):
            entry = self._entries[entry_id]
            if entry.status not in expected or not waitlist.can_transition(entry.status, target):
                return None
            if entry.status is WaitlistStatus.OFFERED:
                event = self._events[entry.event_id]
                if event.held_seats > 0:
                    self._events[entry.event_id] = replace(event, held_seats=event.held_seats - 1)
            resolved = waitlist.resolve(entry, target, now)
            self._entries[entry_id] = resolved
            return resolved

    def list_expired_offers(
        self, now: datetime, event_id: EventId | None = None
    ) -> list[WaitlistEntry]:
        expired = [
            e
            for e in self._entries.values()
            if waitlist.offer_expired(e, now) and (event_id is None or e.event_id == event_id)
        ]
        return sorted(expired, key=lambda e: (e.offer_expires_at, e.sequence))


class InMemoryPaymentStore(PaymentStore):
    """Dictionary-backed payment store."""

    def __init__(self) -> None:
        self._payments: dict[PaymentId, Payment] = {}
        self._lock = threading.Lock()

    def create_payment(self, event_id: EventId, user_id: UserId, amount: Money) -> Payment:
        payment = Payment(
            id=PaymentId(uuid.uuid4()),
            event_id=event_id,
            user_id=user_id,
            amount=amount,
            status=PaymentStatus.PENDING,
        )
        with self._lock:
            self._payments[payment.id] = payment
        return payment

    def get_payment(self, payment_id: PaymentId) -> Payment | None:
        return self._payments.get(payment_id)

    def find_pending(self, event_id: EventId, user_id: UserId) -> Payment | None:
        for payment in self._payments.values():
            if (
                payment.event_id == event_id
                and payment.user_id == user_id
                and payment.status is PaymentStatus.PENDING
            ):
                return payment
        return None

    def attach_checkout(
        self, payment_id: PaymentId, provider_reference: str, redirect_url: str
    ) -> Payment:
        with self._lock:
            payment = replace(
                self._payments[payment_id],
                provider_reference=provider_reference,
                redirect_url=redirect_url,
            )
            self._payments[payment_id] = payment
            return payment

    def transition_payment(
        self,
        payment_id: PaymentId,
        expected: PaymentStatus,
        target: PaymentStatus,
        refund_reason: str | None = None,
    ) -> Payment | None:
        with self._lock:
            payment = self._payments.get(payment_id)
            if payment is None or payment.status is not expected:
                return None
            payment = replace(
                payment, status=target, refund_reason=refund_reason or payment.refund_reason
            )
            self._payments[payment_id] = payment
            return payment


class InMemoryActivityStore(ActivityStore):
    """List-backed activity store."""

    def __init__(self) -> None:
        self.entries: list[FeedEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: FeedEntry) -> FeedEntry:
        with self._lock:
            self.entries.append(entry)
        return entry

    def list_for_user(self, user_id: UserId, kind: FeedKind | None = None) -> list[FeedEntry]:
        return [
            e
            for e in reversed(self.entries)
            if e.user_id == user_id and (kind is None or e.kind is kind)
        ]


class InMemoryUserDirectory(UserDirectory):
    """User directory seeded by the caller."""

    def __init__(self, users: list[UserProfile] | None = None) -> None:
        self._users = {user.id: user for user in users or []}

    def add(self, user: UserProfile) -> UserProfile:
        self._users[user.id] = user
        return user

    def get_user(self, user_id: UserId) -> UserProfile | None:
        return self._users.get(user_id)
