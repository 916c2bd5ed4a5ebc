"""Unit tests for domain primitives and the capacity state machine.

These test invariants that must hold at construction time and the pure
transition rules.
Run with: pytest tests/test_domain.py -v
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from participation.domain import (
    Capacity,
    Event,
    EventId,
    EventStatus,
    Money,
    ParticipationLedger,
    UserId,
    UserProfile,
    WaitlistEntry,
    WaitlistEntryId,
    WaitlistStatus,
)
from participation.domain import state_machine
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

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
HOST = UserProfile(id=UserId(1), display_name="Host")
ADMIN = UserProfile(id=UserId(99), display_name="Admin", is_admin=True)
STRANGER = UserProfile(id=UserId(5), display_name="Stranger")


def make_event(max_participants: int = 2, members: tuple[int, ...] = (), **overrides) -> Event:
    fields = {
        "id": EventId(uuid.uuid4()),
        "host_id": HOST.id,
        "name": "Board Games",
        "min_participants": 1,
        "max_participants": Capacity(max_participants),
        "joining_fee": Money(Decimal("0")),
        "status": EventStatus.OPEN,
        "ledger": ParticipationLedger.of([UserId(pk) for pk in members]),
    }
    fields.update(overrides)
    return Event(**fields)


class TestMoney:
    """Tests for Money value object."""

    def test_money_accepts_positive_amount(self):
        """Money can be created with positive amount."""
        assert Money(Decimal("12.50")).amount == Decimal("12.50")

    def test_money_accepts_zero(self):
        """Money can be created with zero and is free."""
        assert Money(Decimal("0")).is_free

    def test_money_rejects_negative_amount(self):
        """Money raises ValueError for negative amount."""
        with pytest.raises(ValueError):
            Money(Decimal("-1"))

    def test_money_str_format(self):
        """Money string representation is formatted to 2 decimal places."""
        assert str(Money(Decimal("5"))) == "5.00"

    def test_currency_is_normalised(self):
        assert Money(Decimal("5"), "eur").currency == "EUR"

    def test_invalid_currency_raises_error(self):
        with pytest.raises(ValueError):
            Money(Decimal("5"), "euro")


class TestCapacity:
    """Tests for Capacity value object."""

    def test_capacity_accepts_zero(self):
        assert Capacity(0).value == 0

    def test_capacity_rejects_negative_value(self):
        """Capacity raises ValueError for negative value."""
        with pytest.raises(ValueError):
            Capacity(-1)


class TestEventId:
    """Tests for EventId value object."""

    def test_from_string_valid_uuid(self):
        """EventId.from_string parses valid UUID."""
        raw = uuid.uuid4()
        assert EventId.from_string(str(raw)).value == raw

    def test_from_string_invalid_uuid(self):
        """EventId.from_string raises ValueError for invalid UUID."""
        with pytest.raises(ValueError):
            EventId.from_string("not-a-uuid")


class TestEventInvariants:
    """Construction-time capacity rules."""

    def test_rejects_zero_maximum(self):
        with pytest.raises(InvalidCapacityError):
            make_event(max_participants=0)

    def test_rejects_minimum_above_maximum(self):
        with pytest.raises(InvalidCapacityError):
            make_event(max_participants=2, min_participants=3)

    def test_rejects_more_participants_than_seats(self):
        with pytest.raises(InvalidCapacityError):
            make_event(max_participants=1, members=(2, 3))

    def test_free_seats_excludes_held_seats(self):
        event = make_event(max_participants=3, members=(2,), held_seats=1)
        assert event.free_seats == 1


class TestParticipationLedger:
    """Tests for the member set and its counter."""

    def test_add_increments_count(self):
        ledger = ParticipationLedger().add(UserId(2))
        assert ledger.count() == 1
        assert ledger.contains(UserId(2))

    def test_add_twice_raises(self):
        ledger = ParticipationLedger.of([UserId(2)])
        with pytest.raises(AlreadyJoinedError):
            ledger.add(UserId(2))

    def test_remove_decrements_count(self):
        ledger = ParticipationLedger.of([UserId(2), UserId(3)]).remove(UserId(2))
        assert ledger.count() == 1
        assert not ledger.contains(UserId(2))

    def test_remove_non_member_raises(self):
        with pytest.raises(NotAParticipantError):
            ParticipationLedger().remove(UserId(2))

    def test_counter_must_match_members(self):
        with pytest.raises(ValueError):
            ParticipationLedger(members=frozenset({UserId(2)}), current=2)

    def test_iterates_in_user_order(self):
        ledger = ParticipationLedger.of([UserId(7), UserId(3)])
        assert list(ledger) == [UserId(3), UserId(7)]


class TestJoinAndLeave:
    """Join/leave preconditions and status derivation."""

    def test_join_last_seat_marks_event_full(self):
        event = state_machine.apply_join(make_event(max_participants=2, members=(2,)), UserId(3))
        assert event.status is EventStatus.FULL
        assert event.current_participants == 2

    def test_host_cannot_join(self):
        with pytest.raises(IsHostError):
            state_machine.ensure_can_join(make_event(), HOST.id)

    def test_cannot_join_cancelled_event(self):
        event = make_event(status=EventStatus.CANCELLED)
        with pytest.raises(EventNotOpenError):
            state_machine.ensure_can_join(event, UserId(2))

    def test_leave_full_event_reopens_it(self):
        event = make_event(max_participants=2, members=(2, 3), status=EventStatus.FULL)
        left = state_machine.apply_leave(event, UserId(2))
        assert left.status is EventStatus.OPEN
        assert left.participants == frozenset({UserId(3)})

    def test_leave_requires_membership(self):
        with pytest.raises(NotAParticipantError):
            state_machine.apply_leave(make_event(), UserId(2))

    def test_cannot_leave_completed_event(self):
        event = make_event(members=(2,), status=EventStatus.COMPLETED)
        with pytest.raises(EventNotOpenError):
            state_machine.apply_leave(event, UserId(2))

    def test_seat_held_for_offer_is_not_free_for_others(self):
        event = make_event(max_participants=2, members=(2,), held_seats=1)
        offer = WaitlistEntry(
            id=WaitlistEntryId(uuid.uuid4()),
            event_id=event.id,
            user_id=UserId(4),
            sequence=1,
            status=WaitlistStatus.OFFERED,
            joined_at=NOW,
            offered_at=NOW,
            offer_expires_at=NOW + timedelta(hours=1),
        )
        assert not state_machine.has_seat_for(event, None, NOW)
        assert state_machine.has_seat_for(event, offer, NOW)
        assert not state_machine.has_seat_for(event, offer, NOW + timedelta(hours=2))

    def test_joining_with_an_offer_consumes_the_hold(self):
        event = make_event(max_participants=2, members=(2,), held_seats=1)
        joined = state_machine.apply_join(event, UserId(4), consume_hold=True)
        assert joined.held_seats == 0
        assert joined.status is EventStatus.FULL


class TestLifecycle:
    """Cancel, reopen and complete transitions."""

    def test_host_can_cancel_and_participants_are_kept(self):
        event = make_event(members=(2, 3), held_seats=0)
        cancelled = state_machine.apply_cancel(event, HOST)
        assert cancelled.status is EventStatus.CANCELLED
        assert cancelled.current_participants == 2

    def test_cancel_releases_held_seats(self):
        event = make_event(max_participants=3, members=(2,), held_seats=1)
        assert state_machine.apply_cancel(event, ADMIN).held_seats == 0

    def test_stranger_cannot_cancel(self):
        with pytest.raises(NotAuthorizedError):
            state_machine.apply_cancel(make_event(), STRANGER)

    def test_cancel_twice_raises(self):
        event = make_event(status=EventStatus.CANCELLED)
        with pytest.raises(AlreadyCancelledError):
            state_machine.apply_cancel(event, HOST)

    def test_reopen_is_admin_only(self):
        event = make_event(status=EventStatus.CANCELLED)
        with pytest.raises(NotAuthorizedError):
            state_machine.apply_reopen(event, HOST)

    def test_reopen_full_event_comes_back_full(self):
        event = make_event(max_participants=2, members=(2, 3), status=EventStatus.CANCELLED)
        assert state_machine.apply_reopen(event, ADMIN).status is EventStatus.FULL

    def test_reopen_requires_cancelled_event(self):
        with pytest.raises(EventNotCancelledError):
            state_machine.apply_reopen(make_event(), ADMIN)

    def test_complete_is_admin_only(self):
        with pytest.raises(NotAuthorizedError):
            state_machine.apply_complete(make_event(), HOST)

    def test_completed_event_cannot_be_cancelled(self):
        event = replace(make_event(), status=EventStatus.COMPLETED)
        with pytest.raises(EventNotOpenError):
            state_machine.apply_cancel(event, ADMIN)


class TestResize:
    """Changing the maximum keeps status in line with the counter."""

    def test_raising_capacity_of_full_event_opens_it(self):
        event = make_event(max_participants=2, members=(2, 3), status=EventStatus.FULL)

        resized = state_machine.apply_resize(event, HOST, 4)

        assert resized.max_participants == Capacity(4)
        assert resized.status is EventStatus.OPEN
        assert resized.free_seats == 2

    def test_shrinking_to_the_count_fills_event(self):
        event = make_event(max_participants=4, members=(2, 3))
        assert state_machine.apply_resize(event, ADMIN, 2).status is EventStatus.FULL

    def test_cannot_shrink_below_taken_and_held_seats(self):
        event = make_event(max_participants=4, members=(2, 3), held_seats=1)
        with pytest.raises(InvalidCapacityError):
            state_machine.apply_resize(event, HOST, 2)

    def test_cannot_shrink_below_minimum(self):
        event = make_event(max_participants=4, min_participants=3)
        with pytest.raises(InvalidCapacityError):
            state_machine.apply_resize(event, HOST, 2)

    def test_stranger_cannot_resize(self):
        with pytest.raises(NotAuthorizedError):
            state_machine.apply_resize(make_event(), STRANGER, 5)

    def test_cancelled_event_cannot_be_resized(self):
        event = make_event(status=EventStatus.CANCELLED)
        with pytest.raises(EventNotOpenError):
            state_machine.apply_resize(event, ADMIN, 5)
