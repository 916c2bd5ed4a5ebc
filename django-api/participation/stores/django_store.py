"""Django ORM implementation of the store interfaces.

Seat and waitlist mutations run inside ``transaction.atomic()`` with the
event row locked by ``select_for_update()``. The write that consumes a seat
is additionally a single conditional ``UPDATE`` (increment only while
``current_participants`` is below the free capacity), so a stale read can
never overbook the event, even on backends where row locks are a no-op.
"""

import logging
from datetime import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from participation import models
from participation.domain import (
    Capacity,
    Event,
    EventId,
    EventStatus,
    FeedEntry,
    FeedKind,
    Money,
    ParticipationLedger,
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
from participation.domain.errors import (
    AlreadyJoinedError,
    AlreadyWaitlistedError,
    EventNotFoundError,
    NotAParticipantError,
)
from participation.stores.interfaces import (
    ActivityStore,
    EventTransition,
    ParticipationStore,
    PaymentStore,
    UserDirectory,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [s.value for s in WaitlistStatus if s.is_active]


def _event_to_domain(row: models.Event) -> Event:
    members = frozenset(
        UserId(pk) for pk in row.participations.values_list("user_id", flat=True)
    )
    return Event(
        id=EventId(row.pk),
        host_id=UserId(row.host_id),
        name=row.name,
        min_participants=row.min_participants,
        max_participants=Capacity(row.max_participants),
        joining_fee=Money(Decimal(row.joining_fee), row.currency),
        status=EventStatus(row.status),
        ledger=ParticipationLedger(members=members, current=row.current_participants),
        held_seats=row.held_seats,
        waitlist_enabled=row.waitlist_enabled,
        starts_at=row.starts_at,
    )


def _entry_to_domain(row: models.WaitlistEntry, position: int | None = None) -> WaitlistEntry:
    return WaitlistEntry(
        id=WaitlistEntryId(row.pk),
        event_id=EventId(row.event_id),
        user_id=UserId(row.user_id),
        sequence=row.sequence,
        status=WaitlistStatus(row.status),
        joined_at=row.joined_at,
        offered_at=row.offered_at,
        offer_expires_at=row.offer_expires_at,
        resolved_at=row.resolved_at,
        position=position,
    )


def _payment_to_domain(row: models.Payment) -> Payment:
    return Payment(
        id=PaymentId(row.pk),
        event_id=EventId(row.event_id),
        user_id=UserId(row.user_id),
        amount=Money(Decimal(row.amount), row.currency),
        status=PaymentStatus(row.status),
        provider_reference=row.provider_reference,
        redirect_url=row.redirect_url,
        refund_reason=row.refund_reason or None,
        created_at=row.created_at,
    )


def _feed_to_domain(row: models.FeedRecord) -> FeedEntry:
    return FeedEntry(
        kind=FeedKind(row.kind),
        type=row.type,
        user_id=UserId(row.user_id),
        message=row.message,
        title=row.title,
        related_user_id=UserId(row.related_user_id) if row.related_user_id else None,
        related_event_id=EventId(row.related_event_id) if row.related_event_id else None,
        data=row.data,
        is_read=row.is_read,
        created_at=row.created_at,
    )


class DjangoParticipationStore(ParticipationStore):
    """Relational participation store using Django ORM."""

    def _locked_row(self, event_id: EventId) -> models.Event:
        row = models.Event.objects.select_for_update().filter(pk=event_id.value).first()
        if row is None:
            raise EventNotFoundError(str(event_id))
        return row

    def _load(self, pk) -> Event:
        return _event_to_domain(models.Event.objects.get(pk=pk))

    def _sync_status(self, pk) -> None:
        models.Event.objects.filter(
            pk=pk,
            status=models.Event.Status.OPEN,
            current_participants__gte=F("max_participants"),
        ).update(status=models.Event.Status.FULL)
        models.Event.objects.filter(
            pk=pk,
            status=models.Event.Status.FULL,
            current_participants__lt=F("max_participants"),
        ).update(status=models.Event.Status.OPEN)

    def _position(self, row: models.WaitlistEntry) -> int | None:
        if row.status not in ACTIVE_STATUSES:
            return None
        return models.WaitlistEntry.objects.filter(
            event_id=row.event_id,
            status__in=ACTIVE_STATUSES,
            sequence__lte=row.sequence,
        ).count()

    def add_event(self, event: Event) -> Event:
        with transaction.atomic():
            row = models.Event.objects.create(
                id=event.id.value,
                host_id=event.host_id.value,
                name=event.name,
                min_participants=event.min_participants,
                max_participants=event.max_participants.value,
                joining_fee=event.joining_fee.amount,
                currency=event.joining_fee.currency,
                status=event.status.value,
                waitlist_enabled=event.waitlist_enabled,
                starts_at=event.starts_at,
                current_participants=event.current_participants,
            )
            models.Participation.objects.bulk_create(
                models.Participation(event=row, user_id=user_id.value)
                for user_id in event.participants
            )
        return self._load(row.pk)

    def get_event(self, event_id: EventId) -> Event | None:
        row = models.Event.objects.filter(pk=event_id.value).first()
        if row is None:
            return None
        return _event_to_domain(row)

    def seat_participant(
        self,
        event_id: EventId,
        user_id: UserId,
        now: datetime,
        offer_id: WaitlistEntryId | None = None,
    ) -> Event | None:
        with transaction.atomic():
            row = self._locked_row(event_id)
            event = _event_to_domain(row)
            state_machine.ensure_can_join(event, user_id)

            offer = None
            if offer_id is not None:
                offer_row = models.WaitlistEntry.objects.filter(
                    pk=offer_id.value, event_id=row.pk, user_id=user_id.value
                ).first()
                offer = _entry_to_domain(offer_row) if offer_row else None
            if not state_machine.has_seat_for(event, offer, now):
                return None

            consume = offer is not None and offer.holds_live_offer(now)
            capacity = F("max_participants") if consume else F("max_participants") - F("held_seats")
            seated = models.Event.objects.filter(
                pk=row.pk,
                status=models.Event.Status.OPEN,
                current_participants__lt=capacity,
            ).update(
                current_participants=F("current_participants") + 1,
                held_seats=F("held_seats") - 1 if consume else F("held_seats"),
                updated_at=now,
            )
            if not seated:
                logger.info("Lost the race for the last seat of event %s", event_id)
                return None

            try:
                with transaction.atomic():
                    models.Participation.objects.create(event_id=row.pk, user_id=user_id.value)
            except IntegrityError as exc:
                raise AlreadyJoinedError() from exc

            if consume:
                models.WaitlistEntry.objects.filter(
                    pk=offer.id.value, status=models.WaitlistEntry.Status.OFFERED
                ).update(status=models.WaitlistEntry.Status.ACCEPTED, resolved_at=now)
            self._sync_status(row.pk)
            return self._load(row.pk)

    def unseat_participant(self, event_id: EventId, user_id: UserId) -> Event:
        with transaction.atomic():
            row = self._locked_row(event_id)
            state_machine.ensure_can_leave(_event_to_domain(row), user_id)
            deleted, _ = models.Participation.objects.filter(
                event_id=row.pk, user_id=user_id.value
            ).delete()
            if not deleted:
                raise NotAParticipantError()
            models.Event.objects.filter(pk=row.pk, current_participants__gt=0).update(
                current_participants=F("current_participants") - 1,
                updated_at=timezone.now(),
            )
            self._sync_status(row.pk)
            return self._load(row.pk)

    def apply_transition(
        self, event_id: EventId, transition: EventTransition, now: datetime
    ) -> tuple[Event, list[WaitlistEntry]]:
        with transaction.atomic():
            row = self._locked_row(event_id)
            updated = transition(_event_to_domain(row))
            expired: list[WaitlistEntry] = []
            held_seats = updated.held_seats
            if updated.status.is_terminal:
                active = list(
                    models.WaitlistEntry.objects.select_for_update()
                    .filter(event_id=row.pk, status__in=ACTIVE_STATUSES)
                    .order_by("sequence")
                )
                models.WaitlistEntry.objects.filter(pk__in=[e.pk for e in active]).update(
                    status=models.WaitlistEntry.Status.EXPIRED, resolved_at=now
                )
                for entry_row in active:
                    entry_row.refresh_from_db()
                    expired.append(_entry_to_domain(entry_row))
                held_seats = 0
            models.Event.objects.filter(pk=row.pk).update(
                status=updated.status.value,
                max_participants=updated.max_participants.value,
                held_seats=held_seats,
                updated_at=now,
            )
            return self._load(row.pk), expired

    def enqueue(self, event_id: EventId, user_id: UserId, now: datetime) -> WaitlistEntry:
        with transaction.atomic():
            row = self._locked_row(event_id)
            waitlist.ensure_can_enqueue(
                _event_to_domain(row), user_id, self.get_active_entry(event_id, user_id)
            )
            models.Event.objects.filter(pk=row.pk).update(
                waitlist_sequence=F("waitlist_sequence") + 1
            )
            row.refresh_from_db(fields=["waitlist_sequence"])
            try:
                with transaction.atomic():
                    entry_row = models.WaitlistEntry.objects.create(
                        event_id=row.pk,
                        user_id=user_id.value,
                        sequence=row.waitlist_sequence,
                        status=models.WaitlistEntry.Status.WAITING,
                        joined_at=now,
                    )
            except IntegrityError as exc:
                raise AlreadyWaitlistedError() from exc
            return _entry_to_domain(entry_row, self._position(entry_row))

    def get_active_entry(self, event_id: EventId, user_id: UserId) -> WaitlistEntry | None:
        row = models.WaitlistEntry.objects.filter(
            event_id=event_id.value, user_id=user_id.value, status__in=ACTIVE_STATUSES
        ).first()
        if row is None:
            return None
        return _entry_to_domain(row, self._position(row))

    def list_active_entries(self, event_id: EventId) -> list[WaitlistEntry]:
        rows = models.WaitlistEntry.objects.filter(
            event_id=event_id.value, status__in=ACTIVE_STATUSES
        ).order_by("sequence")
        return [_entry_to_domain(row, position) for position, row in enumerate(rows, start=1)]

    def offer_next(
        self, event_id: EventId, now: datetime, expires_at: datetime
    ) -> WaitlistEntry | None:
        with transaction.atomic():
            row = self._locked_row(event_id)
            if not state_machine.has_seat_for(_event_to_domain(row), None, now):
                return None
            candidate = (
                models.WaitlistEntry.objects.filter(
                    event_id=row.pk, status=models.WaitlistEntry.Status.WAITING
                )
                .order_by("sequence")
                .first()
            )
            if candidate is None:
                return None
            models.WaitlistEntry.objects.filter(
                pk=candidate.pk, status=models.WaitlistEntry.Status.WAITING
            ).update(
                status=models.WaitlistEntry.Status.OFFERED,
                offered_at=now,
                offer_expires_at=expires_at,
            )
            held = models.Event.objects.filter(
                pk=row.pk,
                status=models.Event.Status.OPEN,
                current_participants__lt=F("max_participants") - F("held_seats"),
            ).update(held_seats=F("held_seats") + 1)
            if not held:
                transaction.set_rollback(True)
                return None
            candidate.refresh_from_db()
            return _entry_to_domain(candidate, self._position(candidate))

    def resolve_entry(
        self,
        entry_id: WaitlistEntryId,
        expected: frozenset[WaitlistStatus],
        target: WaitlistStatus,
        now: datetime,
    ) -> WaitlistEntry | None:
        event_pk = (
            models.WaitlistEntry.objects.filter(pk=entry_id.value)
            .values_list("event_id", flat=True)
            .first()
        )
        if event_pk is None:
            return None
        with transaction.atomic():
            self._locked_row(EventId(event_pk))
            row = models.WaitlistEntry.objects.select_for_update().get(pk=entry_id.value)
            current = WaitlistStatus(row.status)
            if current not in expected or not waitlist.can_transition(current, target):
                return None
            updated = models.WaitlistEntry.objects.filter(pk=row.pk, status=row.status).update(
                status=target.value, resolved_at=now
            )
            if not updated:
                return None
            if current is WaitlistStatus.OFFERED:
                models.Event.objects.filter(pk=event_pk, held_seats__gt=0).update(
                    held_seats=F("held_seats") - 1
                )
            row.refresh_from_db()
            return _entry_to_domain(row)

    def list_expired_offers(
        self, now: datetime, event_id: EventId | None = None
    ) -> list[WaitlistEntry]:
        rows = models.WaitlistEntry.objects.filter(
            status=models.WaitlistEntry.Status.OFFERED, offer_expires_at__lte=now
        )
        if event_id is not None:
            rows = rows.filter(event_id=event_id.value)
        return [_entry_to_domain(row) for row in rows.order_by("offer_expires_at", "sequence")]


class DjangoPaymentStore(PaymentStore):
    """Payment store using Django ORM."""

    def create_payment(self, event_id: EventId, user_id: UserId, amount: Money) -> Payment:
        row = models.Payment.objects.create(
            event_id=event_id.value,
            user_id=user_id.value,
            amount=amount.amount,
            currency=amount.currency,
        )
        return _payment_to_domain(row)

    def get_payment(self, payment_id: PaymentId) -> Payment | None:
        row = models.Payment.objects.filter(pk=payment_id.value).first()
        return _payment_to_domain(row) if row else None

    def find_pending(self, event_id: EventId, user_id: UserId) -> Payment | None:
        row = (
            models.Payment.objects.filter(
                event_id=event_id.value,
                user_id=user_id.value,
                status=models.Payment.Status.PENDING,
            )
            .order_by("-created_at")
            .first()
        )
        return _payment_to_domain(row) if row else None

    def attach_checkout(
        self, payment_id: PaymentId, provider_reference: str, redirect_url: str
    ) -> Payment:
        models.Payment.objects.filter(pk=payment_id.value).update(
            provider_reference=provider_reference,
            redirect_url=redirect_url,
            updated_at=timezone.now(),
        )
        return _payment_to_domain(models.Payment.objects.get(pk=payment_id.value))

    def transition_payment(
        self,
        payment_id: PaymentId,
        expected: PaymentStatus,
        target: PaymentStatus,
        refund_reason: str | None = None,
    ) -> Payment | None:
        changes = {"status": target.value, "updated_at": timezone.now()}
        if refund_reason:
            changes["refund_reason"] = refund_reason
        updated = models.Payment.objects.filter(
            pk=payment_id.value, status=expected.value
        ).update(**changes)
        if not updated:
            return None
        return _payment_to_domain(models.Payment.objects.get(pk=payment_id.value))


class DjangoActivityStore(ActivityStore):
    """Activity and notification records using Django ORM."""

    def append(self, entry: FeedEntry) -> FeedEntry:
        # Own savepoint: a failed insert must not poison the caller's transaction.
        with transaction.atomic():
            row = models.FeedRecord.objects.create(
                kind=entry.kind.value,
                type=entry.type,
                user_id=entry.user_id.value,
                related_user_id=entry.related_user_id.value if entry.related_user_id else None,
                related_event_id=entry.related_event_id.value if entry.related_event_id else None,
                title=entry.title,
                message=entry.message,
                data=dict(entry.data),
            )
        return _feed_to_domain(row)

    def list_for_user(self, user_id: UserId, kind: FeedKind | None = None) -> list[FeedEntry]:
        rows = models.FeedRecord.objects.filter(user_id=user_id.value)
        if kind is not None:
            rows = rows.filter(kind=kind.value)
        return [_feed_to_domain(row) for row in rows.order_by("-created_at", "-id")]


class DjangoUserDirectory(UserDirectory):
    """User directory backed by ``django.contrib.auth``."""

    def get_user(self, user_id: UserId) -> UserProfile | None:
        user = get_user_model().objects.filter(pk=user_id.value).first()
        if user is None:
            return None
        return UserProfile(
            id=UserId(user.pk),
            display_name=user.get_full_name() or user.get_username(),
            email=user.email or "",
            is_admin=user.is_staff or user.is_superuser,
        )
