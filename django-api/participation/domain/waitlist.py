"""Waitlist queue rules.

Positions are never stored. Each entry carries a per-event ``sequence``
assigned once, atomically, when the user queues; the position shown to users
is the entry's rank among the event's active (waiting or offered) entries.
Resolving an entry (accepted, declined, expired) removes it from the active
set, so later entries move up without any renumbering.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from participation.domain.errors import AlreadyWaitlistedError
from participation.domain.models import Event, WaitlistEntry, WaitlistStatus
from participation.domain.state_machine import ensure_can_join
from participation.domain.value_objects import UserId

ALLOWED_TRANSITIONS: dict[WaitlistStatus, frozenset[WaitlistStatus]] = {
    WaitlistStatus.WAITING: frozenset(
        {
            WaitlistStatus.OFFERED,
            WaitlistStatus.ACCEPTED,
            WaitlistStatus.DECLINED,
            WaitlistStatus.EXPIRED,
        }
    ),
    WaitlistStatus.OFFERED: frozenset(
        {WaitlistStatus.ACCEPTED, WaitlistStatus.DECLINED, WaitlistStatus.EXPIRED}
    ),
    WaitlistStatus.ACCEPTED: frozenset(),
    WaitlistStatus.DECLINED: frozenset(),
    WaitlistStatus.EXPIRED: frozenset(),
}


@dataclass(frozen=True)
class WaitlistPolicy:
    """How long a waitlist offer stays open."""

    offer_ttl: timedelta = timedelta(hours=24)

    def offer_deadline(self, now: datetime) -> datetime:
        return now + self.offer_ttl


def can_transition(current: WaitlistStatus, target: WaitlistStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def rank(entries: Iterable[WaitlistEntry]) -> list[WaitlistEntry]:
    """Active entries in queue order with their 1-based positions filled in."""
    active = sorted((e for e in entries if e.is_active), key=lambda e: e.sequence)
    return [replace(entry, position=index) for index, entry in enumerate(active, start=1)]


def position_of(entries: Iterable[WaitlistEntry], entry: WaitlistEntry) -> int | None:
    for ranked in rank(entries):
        if ranked.id == entry.id:
            return ranked.position
    return None


def next_waiting(entries: Iterable[WaitlistEntry]) -> WaitlistEntry | None:
    """Lowest-sequence entry still waiting for an offer."""
    waiting = [e for e in entries if e.status is WaitlistStatus.WAITING]
    return min(waiting, key=lambda e: e.sequence, default=None)


def ensure_can_enqueue(
    event: Event, user_id: UserId, active_entry: WaitlistEntry | None
) -> None:
    """Raises the join errors, or AlreadyWaitlistedError for a queued user."""
    ensure_can_join(event, user_id)
    if active_entry is not None:
        raise AlreadyWaitlistedError(position=active_entry.position)


def make_offer(entry: WaitlistEntry, now: datetime, policy: WaitlistPolicy) -> WaitlistEntry:
    return replace(
        entry,
        status=WaitlistStatus.OFFERED,
        offered_at=now,
        offer_expires_at=policy.offer_deadline(now),
    )


def resolve(entry: WaitlistEntry, target: WaitlistStatus, now: datetime) -> WaitlistEntry:
    """Move an entry to a terminal status.

    Raises:
        ValueError: If the transition is not allowed from the current status.
    """
    if not can_transition(entry.status, target):
        raise ValueError(f"Cannot move waitlist entry from {entry.status.value} to {target.value}")
    return replace(entry, status=target, resolved_at=now, position=None)


def offer_expired(entry: WaitlistEntry, now: datetime) -> bool:
    return (
        entry.status is WaitlistStatus.OFFERED
        and entry.offer_expires_at is not None
        and entry.offer_expires_at <= now
    )
