"""Capacity state machine.

Owns the mapping from participant counts and host/admin actions to
``Event.status``. Every function here is pure: it validates preconditions
against a snapshot, raising a domain error before anything is written, and
returns the next snapshot.

    open --(count reaches max)--> full
    full --(a seat frees)-------> open
    open|full --(host/admin)----> cancelled   (terminal for joins/leaves)
    open|full --(admin/time)----> completed
    cancelled --(admin reopen)--> open|full
    open|full --(resize)--------> open|full
"""

from dataclasses import replace
from datetime import datetime

from participation.domain.errors import (
    AlreadyCancelledError,
    AlreadyJoinedError,
    EventNotCancelledError,
    EventNotOpenError,
    InvalidCapacityError,
    IsHostError,
    NotAParticipantError,
    NotAuthorizedError,
)
from participation.domain.models import Event, EventStatus, UserProfile, WaitlistEntry
from participation.domain.value_objects import Capacity, UserId


def derive_status(event: Event) -> EventStatus:
    """Status implied by the counters for a non-terminal event."""
    if event.status.is_terminal:
        return event.status
    if event.current_participants >= event.max_participants.value:
        return EventStatus.FULL
    return EventStatus.OPEN


def ensure_active(event: Event) -> None:
    """Raises EventNotOpenError for cancelled or completed events."""
    if event.status.is_terminal:
        raise EventNotOpenError(event.status.value)


def ensure_can_join(event: Event, user_id: UserId) -> None:
    """Check everything about a join except seat availability.

    Raises:
        EventNotOpenError: If the event is cancelled or completed.
        IsHostError: If the user hosts the event.
        AlreadyJoinedError: If the user already holds a seat.
    """
    ensure_active(event)
    if event.host_id == user_id:
        raise IsHostError()
    if event.ledger.contains(user_id):
        raise AlreadyJoinedError()


def has_seat_for(event: Event, offer: WaitlistEntry | None, now: datetime) -> bool:
    """Whether a join by the owner of ``offer`` (or anyone, if None) fits.

    Seats held for outstanding waitlist offers are only available to the
    users holding those offers.
    """
    if event.status is not EventStatus.OPEN:
        return False
    if offer is not None and offer.holds_live_offer(now):
        return event.current_participants < event.max_participants.value
    return event.free_seats > 0


def apply_join(event: Event, user_id: UserId, consume_hold: bool = False) -> Event:
    """Seat ``user_id`` and recompute the status."""
    ensure_can_join(event, user_id)
    held = event.held_seats - 1 if consume_hold else event.held_seats
    joined = replace(event, ledger=event.ledger.add(user_id), held_seats=held)
    return replace(joined, status=derive_status(joined))


def ensure_can_leave(event: Event, user_id: UserId) -> None:
    """Raises EventNotOpenError or NotAParticipantError."""
    ensure_active(event)
    if not event.ledger.contains(user_id):
        raise NotAParticipantError()


def apply_leave(event: Event, user_id: UserId) -> Event:
    """Free the seat held by ``user_id``; ``full`` drops back to ``open``."""
    ensure_can_leave(event, user_id)
    left = replace(event, ledger=event.ledger.remove(user_id))
    return replace(left, status=derive_status(left))


def is_host_or_admin(event: Event, actor: UserProfile) -> bool:
    return actor.is_admin or actor.id == event.host_id


def ensure_can_cancel(event: Event, actor: UserProfile) -> None:
    """Raises NotAuthorizedError, AlreadyCancelledError or EventNotOpenError."""
    if not is_host_or_admin(event, actor):
        raise NotAuthorizedError()
    if event.status is EventStatus.CANCELLED:
        raise AlreadyCancelledError()
    if event.status is EventStatus.COMPLETED:
        raise EventNotOpenError(event.status.value)


def apply_cancel(event: Event, actor: UserProfile) -> Event:
    """Cancel the event. Participants and the counter are preserved for audit;
    seats held for waitlist offers are released."""
    ensure_can_cancel(event, actor)
    return replace(event, status=EventStatus.CANCELLED, held_seats=0)


def ensure_can_reopen(event: Event, actor: UserProfile) -> None:
    if not actor.is_admin:
        raise NotAuthorizedError("Admin access required")
    if event.status is not EventStatus.CANCELLED:
        raise EventNotCancelledError()


def apply_reopen(event: Event, actor: UserProfile) -> Event:
    """Admin override: a cancelled event becomes open, or full if the
    preserved participant count already reaches the maximum."""
    ensure_can_reopen(event, actor)
    reopened = replace(event, status=EventStatus.OPEN)
    return replace(reopened, status=derive_status(reopened))


def ensure_can_complete(event: Event, actor: UserProfile) -> None:
    if not actor.is_admin:
        raise NotAuthorizedError("Admin access required")
    ensure_active(event)


def apply_complete(event: Event, actor: UserProfile) -> Event:
    ensure_can_complete(event, actor)
    return replace(event, status=EventStatus.COMPLETED, held_seats=0)


def ensure_can_resize(event: Event, actor: UserProfile, max_participants: int) -> None:
    """Check a change of ``max_participants``.

    Raises:
        NotAuthorizedError: If the actor is neither host nor admin.
        EventNotOpenError: If the event is cancelled or completed.
        InvalidCapacityError: If the new maximum is below the seats taken or
            held, or below the event's minimum.
    """
    if not is_host_or_admin(event, actor):
        raise NotAuthorizedError()
    ensure_active(event)
    occupied = event.current_participants + event.held_seats
    if max_participants < max(occupied, 1):
        raise InvalidCapacityError(
            f"Maximum participants cannot be below the {occupied} seats taken or held"
        )
    if max_participants < event.min_participants:
        raise InvalidCapacityError("Maximum participants cannot be below the minimum")


def apply_resize(event: Event, actor: UserProfile, max_participants: int) -> Event:
    """Set a new maximum; ``open`` and ``full`` follow the counter."""
    ensure_can_resize(event, actor, max_participants)
    resized = replace(event, max_participants=Capacity(max_participants))
    return replace(resized, status=derive_status(resized))
