"""Unit tests for payment-gated joins.

Run with: pytest tests/test_payments.py -v
"""

import pytest

from participation.domain import (
    EventStatus,
    FeedKind,
    Joined,
    PaymentPending,
    PaymentStatus,
    UserId,
    WaitlistStatus,
    Waitlisted,
)
from participation.domain.errors import (
    NotAuthorizedError,
    PaymentNotFoundError,
    PaymentProcessorError,
    PaymentStateError,
)

HOST = UserId(1)
ADMIN = UserId(99)


def paid_seat(service, event, user: int):
    pending = service.join_event(event.id, user)
    service.gateway.confirm_payment(pending.payment.id)
    return pending.payment


class TestCheckout:
    """Starting a paid join."""

    def test_paid_join_creates_pending_payment_without_seat(self, service, make_event, processor):
        event = make_event(fee="25.00")

        outcome = service.join_event(event.id, 2)

        assert isinstance(outcome, PaymentPending)
        assert outcome.payment.status is PaymentStatus.PENDING
        assert str(outcome.payment.amount) == "25.00"
        assert outcome.payment.redirect_url.startswith("https://pay.example.com/")
        assert service.get_event(event.id).current_participants == 0
        assert len(processor.checkouts) == 1

    def test_second_join_reuses_pending_payment(self, service, make_event, processor):
        event = make_event(fee="25.00")

        first = service.join_event(event.id, 2)
        second = service.join_event(event.id, 2)

        assert second.payment.id == first.payment.id
        assert len(processor.checkouts) == 1

    def test_processor_outage_leaves_ledger_untouched(self, service, make_event, processor):
        event = make_event(fee="25.00")
        processor.unavailable = True

        with pytest.raises(PaymentProcessorError):
            service.join_event(event.id, 2)

        assert service.get_event(event.id).current_participants == 0
        processor.unavailable = False
        retried = service.join_event(event.id, 2)
        assert retried.payment.provider_reference.startswith("test_")

    def test_full_paid_event_queues_without_checkout(self, service, make_event, processor):
        event = make_event(max_participants=1, fee="10")
        paid_seat(service, event, 2)

        outcome = service.join_event(event.id, 3)

        assert isinstance(outcome, Waitlisted)
        assert len(processor.checkouts) == 1


class TestConfirmPayment:
    """Completing a payment seats the payer exactly once."""

    def test_confirm_seats_payer(self, service, make_event):
        event = make_event(fee="25.00")
        pending = service.join_event(event.id, 2)

        after = service.gateway.confirm_payment(pending.payment.id)

        assert after.participants == frozenset({UserId(2)})
        assert service.gateway.get_payment(pending.payment.id).status is PaymentStatus.COMPLETED

    def test_duplicate_confirmation_adds_participant_once(self, service, make_event, feed):
        event = make_event(fee="25.00")
        pending = service.join_event(event.id, 2)

        service.gateway.confirm_payment(pending.payment.id)
        after = service.gateway.confirm_payment(str(pending.payment.id))

        assert after.current_participants == 1
        joins = [e for e in feed.list_for_user(UserId(2), FeedKind.ACTIVITY) if e.type == "event_joined"]
        assert len(joins) == 1

    def test_unknown_payment_raises(self, service):
        with pytest.raises(PaymentNotFoundError):
            service.gateway.confirm_payment("0b6c1d2e-3f40-4a5b-8c6d-7e8f90a1b2c3")

    def test_seat_gone_refunds_instead_of_overbooking(self, service, make_event, processor, feed):
        event = make_event(max_participants=1, fee="25.00")
        first = service.join_event(event.id, 2)
        second = service.join_event(event.id, 3)
        service.gateway.confirm_payment(first.payment.id)

        after = service.gateway.confirm_payment(second.payment.id)

        assert after.participants == frozenset({UserId(2)})
        refunded = service.gateway.get_payment(second.payment.id)
        assert refunded.status is PaymentStatus.REFUNDED
        assert refunded.refund_reason == "This event is full"
        assert [p.id for p in processor.refunds] == [second.payment.id]
        notes = feed.list_for_user(UserId(3), FeedKind.NOTIFICATION)
        assert [e.type for e in notes] == ["payment_refunded"]

    def test_failed_compensation_keeps_payment_pending(self, service, make_event, processor):
        event = make_event(max_participants=1, fee="25.00")
        first = service.join_event(event.id, 2)
        second = service.join_event(event.id, 3)
        service.gateway.confirm_payment(first.payment.id)
        processor.unavailable = True

        with pytest.raises(PaymentProcessorError):
            service.gateway.confirm_payment(second.payment.id)

        assert service.gateway.get_payment(second.payment.id).status is PaymentStatus.PENDING

    def test_offered_user_pays_for_held_seat(self, service, make_event, payments):
        event = make_event(max_participants=1, fee="10")
        first = paid_seat(service, event, 2)
        service.join_event(event.id, 3)
        service.gateway.refund_payment(first.id, acting_user_id=HOST.value)

        latecomer = service.join_event(event.id, 4)
        pending = service.join_event(event.id, 3)
        after = service.gateway.confirm_payment(pending.payment.id)

        assert isinstance(latecomer, Waitlisted)
        assert after.participants == frozenset({UserId(3)})
        assert after.status is EventStatus.FULL
        assert after.held_seats == 0


class TestFailPayment:
    def test_fail_pending_payment(self, service, make_event):
        event = make_event(fee="5")
        pending = service.join_event(event.id, 2)

        failed = service.gateway.fail_payment(pending.payment.id)

        assert failed.status is PaymentStatus.FAILED
        assert service.gateway.fail_payment(pending.payment.id).status is PaymentStatus.FAILED
        assert service.get_event(event.id).current_participants == 0

    def test_cannot_fail_completed_payment(self, service, make_event):
        event = make_event(fee="5")
        payment = paid_seat(service, event, 2)

        with pytest.raises(PaymentStateError):
            service.gateway.fail_payment(payment.id)


class TestRefundPayment:
    """Refunds free the seat and promote the waitlist."""

    def test_refund_frees_seat_and_promotes(self, service, make_event, processor, feed):
        event = make_event(max_participants=1, fee="10")
        payment = paid_seat(service, event, 2)
        service.join_event(event.id, 3)

        after = service.gateway.refund_payment(payment.id, acting_user_id=HOST.value)

        assert after.participants == frozenset()
        assert after.held_seats == 1
        view = service.get_waitlist(event.id)
        assert [(e.user_id.value, e.status) for e in view.entries] == [(3, WaitlistStatus.OFFERED)]
        assert [p.id for p in processor.refunds] == [payment.id]
        left = [e for e in feed.list_for_user(UserId(2), FeedKind.ACTIVITY) if e.type == "event_left"]
        assert left[0].data["refunded"] is True

    def test_participant_cannot_refund(self, service, make_event):
        event = make_event(fee="10")
        payment = paid_seat(service, event, 2)

        with pytest.raises(NotAuthorizedError):
            service.gateway.refund_payment(payment.id, acting_user_id=2)

    def test_processor_failure_changes_nothing(self, service, make_event, processor):
        event = make_event(fee="10")
        payment = paid_seat(service, event, 2)
        processor.unavailable = True

        with pytest.raises(PaymentProcessorError):
            service.gateway.refund_payment(payment.id, acting_user_id=ADMIN.value)

        assert service.gateway.get_payment(payment.id).status is PaymentStatus.COMPLETED
        assert service.get_event(event.id).participants == frozenset({UserId(2)})

    def test_refund_twice_is_a_no_op(self, service, make_event, processor):
        event = make_event(fee="10")
        payment = paid_seat(service, event, 2)

        service.gateway.refund_payment(payment.id, acting_user_id=ADMIN.value)
        service.gateway.refund_payment(payment.id, acting_user_id=ADMIN.value)

        assert len(processor.refunds) == 1

    def test_pending_payment_cannot_be_refunded(self, service, make_event):
        event = make_event(fee="10")
        pending = service.join_event(event.id, 2)

        with pytest.raises(PaymentStateError):
            service.gateway.refund_payment(pending.payment.id)

    def test_refund_after_cancellation_keeps_participant_record(self, service, make_event):
        event = make_event(fee="10")
        payment = paid_seat(service, event, 2)
        service.cancel_event(event.id, HOST.value)

        after = service.gateway.refund_payment(payment.id, acting_user_id=HOST.value)

        assert after.status is EventStatus.CANCELLED
        assert after.participants == frozenset({UserId(2)})
        assert service.gateway.get_payment(payment.id).status is PaymentStatus.REFUNDED

    def test_free_join_still_returns_joined(self, service, make_event):
        event = make_event()
        assert isinstance(service.join_event(event.id, 2), Joined)
