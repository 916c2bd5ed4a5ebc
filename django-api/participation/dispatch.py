"""Side-effect dispatcher.

Runs after a participation transition has been stored. Each domain event is
turned into activity and notification records, and then broadcast on the
``participation_changed`` signal for other listeners (cache invalidation,
e-mail). Nothing here can fail the operation that produced the event: the
ledger is the source of truth, feed records are best-effort.
"""

import logging
from functools import singledispatchmethod

from django.dispatch import Signal

from participation.domain import Event, FeedEntry, FeedKind, UserId
from participation.domain.events import (
    DomainEvent,
    EventCancelled,
    EventCompleted,
    EventReopened,
    ParticipantJoined,
    ParticipantLeft,
    PaymentRefunded,
    UserWaitlisted,
    WaitlistOfferExpired,
    WaitlistOfferMade,
    WaitlistWithdrawn,
)
from participation.domain.models import ActivityType, NotificationType
from participation.stores.interfaces import ActivityStore, UserDirectory

logger = logging.getLogger(__name__)

# Sent with ``domain_event=<DomainEvent>`` after feed records are written.
participation_changed = Signal()


def _activity(
    type_: ActivityType, user_id: UserId, event: Event, message: str, **data
) -> FeedEntry:
    return FeedEntry(
        kind=FeedKind.ACTIVITY,
        type=type_.value,
        user_id=user_id,
        message=message,
        related_event_id=event.id,
        data=data,
    )


def _notification(
    type_: NotificationType,
    user_id: UserId,
    event: Event,
    title: str,
    message: str,
    related_user_id: UserId | None = None,
    **data,
) -> FeedEntry:
    return FeedEntry(
        kind=FeedKind.NOTIFICATION,
        type=type_.value,
        user_id=user_id,
        title=title,
        message=message,
        related_user_id=related_user_id,
        related_event_id=event.id,
        data=data,
    )


class SideEffectDispatcher:
    """Translates domain events into feed records, best-effort."""

    def __init__(self, feed: ActivityStore, users: UserDirectory) -> None:
        self._feed = feed
        self._users = users

    def dispatch(self, domain_event: DomainEvent) -> None:
        try:
            entries = self._entries_for(domain_event)
        except Exception:
            logger.exception("Could not build feed records for %s", type(domain_event).__name__)
            entries = []
        for entry in entries:
            self._write(entry)
        self._broadcast(domain_event)

    def _write(self, entry: FeedEntry) -> None:
        try:
            self._feed.append(entry)
        except Exception:
            logger.exception(
                "Dropped %s %s for user %s", entry.kind.value, entry.type, entry.user_id
            )

    def _broadcast(self, domain_event: DomainEvent) -> None:
        responses = participation_changed.send_robust(
            sender=type(domain_event), domain_event=domain_event
        )
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    "Receiver %s failed on %s: %s",
                    getattr(receiver, "__name__", receiver),
                    type(domain_event).__name__,
                    response,
                )

    def _name(self, user_id: UserId) -> str:
        user = self._users.get_user(user_id)
        return user.display_name if user else "Someone"

    @singledispatchmethod
    def _entries_for(self, domain_event) -> list[FeedEntry]:
        return []

    @_entries_for.register
    def _(self, domain_event: ParticipantJoined) -> list[FeedEntry]:
        event, joiner = domain_event.event, domain_event.user_id
        name = self._name(joiner)
        return [
            _activity(ActivityType.EVENT_JOINED, joiner, event, f"{name} joined {event.name}"),
            _notification(
                NotificationType.FRIEND_JOINED_EVENT,
                event.host_id,
                event,
                "New Participant",
                f"{name} joined your event: {event.name}",
                related_user_id=joiner,
            ),
        ]

    @_entries_for.register
    def _(self, domain_event: ParticipantLeft) -> list[FeedEntry]:
        event, leaver = domain_event.event, domain_event.user_id
        name = self._name(leaver)
        return [
            _activity(
                ActivityType.EVENT_LEFT,
                leaver,
                event,
                f"{name} left {event.name}",
                refunded=domain_event.refunded,
            ),
            _notification(
                NotificationType.PARTICIPANT_LEFT,
                event.host_id,
                event,
                "Participant Left",
                f"{name} left your event: {event.name}",
                related_user_id=leaver,
            ),
        ]

    @_entries_for.register
    def _(self, domain_event: UserWaitlisted) -> list[FeedEntry]:
        event, entry = domain_event.event, domain_event.entry
        return [
            _activity(
                ActivityType.WAITLIST_JOINED,
                entry.user_id,
                event,
                f"{self._name(entry.user_id)} joined the waitlist for {event.name}",
                position=entry.position,
            )
        ]

    @_entries_for.register
    def _(self, domain_event: EventCancelled) -> list[FeedEntry]:
        event = domain_event.event
        entries = [
            _activity(
                ActivityType.EVENT_CANCELLED,
                domain_event.actor_id,
                event,
                f"{event.name} was cancelled",
            )
        ]
        recipients = list(event.ledger) + [
            user_id for user_id in domain_event.waitlisted if user_id not in event.participants
        ]
        for user_id in recipients:
            entries.append(
                _notification(
                    NotificationType.EVENT_CANCELLED,
                    user_id,
                    event,
                    "Event Cancelled",
                    f"{event.name} has been cancelled",
                    related_user_id=domain_event.actor_id,
                )
            )
        return entries

    @_entries_for.register
    def _(self, domain_event: EventReopened) -> list[FeedEntry]:
        event = domain_event.event
        return [
            _notification(
                NotificationType.EVENT_REOPENED,
                user_id,
                event,
                "Event Reopened",
                f"{event.name} is back on",
            )
            for user_id in event.ledger
        ]

    @_entries_for.register
    def _(self, domain_event: EventCompleted) -> list[FeedEntry]:
        event = domain_event.event
        return [
            _notification(
                NotificationType.EVENT_COMPLETED,
                user_id,
                event,
                "Event Completed",
                f"{event.name} has ended. Thanks for joining!",
            )
            for user_id in event.ledger
        ]

    @_entries_for.register
    def _(self, domain_event: WaitlistOfferMade) -> list[FeedEntry]:
        event, entry = domain_event.event, domain_event.entry
        deadline = entry.offer_expires_at
        return [
            _notification(
                NotificationType.SPOT_AVAILABLE,
                entry.user_id,
                event,
                "Spot Available",
                f"A spot opened up in {event.name}. Claim it before {deadline:%Y-%m-%d %H:%M}.",
                offer_expires_at=deadline.isoformat(),
                waitlist_entry_id=str(entry.id),
            )
        ]

    @_entries_for.register
    def _(self, domain_event: WaitlistOfferExpired) -> list[FeedEntry]:
        event, entry = domain_event.event, domain_event.entry
        return [
            _notification(
                NotificationType.OFFER_EXPIRED,
                entry.user_id,
                event,
                "Offer Expired",
                f"Your spot offer for {event.name} has expired",
            )
        ]

    @_entries_for.register
    def _(self, domain_event: PaymentRefunded) -> list[FeedEntry]:
        event, payment = domain_event.event, domain_event.payment
        return [
            _notification(
                NotificationType.PAYMENT_REFUNDED,
                payment.user_id,
                event,
                "Payment Refunded",
                f"Your payment of {payment.amount} {payment.amount.currency} "
                f"for {event.name} was refunded",
                payment_id=str(payment.id),
                reason=domain_event.reason,
            )
        ]

    @_entries_for.register
    def _(self, domain_event: WaitlistWithdrawn) -> list[FeedEntry]:
        return []
