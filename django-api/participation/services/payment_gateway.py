"""Payment-gated joins.

A paid join never seats anyone on its own. It creates a pending payment and a
checkout; the seat is taken when the payment is confirmed. Every step is a
compare-and-set on the payment status, so duplicate confirmations and
webhook retries are no-ops:

    pending --confirm--> completed --refund--> refunded
    pending --fail-----> failed

If the seat is gone by the time a payment completes, the payment is refunded
instead of overbooking the event.
"""

import logging
from typing import TYPE_CHECKING

from participation.domain import Event, EventId, Payment, PaymentPending, PaymentStatus, UserId
from participation.domain import state_machine
from participation.domain.errors import (
    AlreadyJoinedError,
    EventFullError,
    EventNotOpenError,
    IsHostError,
    NotAuthorizedError,
    PaymentNotFoundError,
    PaymentProcessorError,
    PaymentStateError,
)
from participation.domain.events import PaymentRefunded
from participation.services.ids import parse_payment_id, parse_user_id
from participation.services.processors import PaymentProcessor
from participation.stores.interfaces import PaymentStore

if TYPE_CHECKING:
    from participation.services.participation_service import ParticipationService

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Payment side of joining a paid event."""

    def __init__(
        self,
        participation: "ParticipationService",
        payments: PaymentStore,
        processor: PaymentProcessor,
    ) -> None:
        self._participation = participation
        self._payments = payments
        self._processor = processor

    def get_payment(self, payment_id) -> Payment:
        """Raises InvalidIdError or PaymentNotFoundError."""
        payment_id = parse_payment_id(payment_id)
        payment = self._payments.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def start_checkout(self, event: Event, user_id: UserId) -> PaymentPending:
        """Create a pending payment for ``user_id`` and its checkout.

        A user with a pending payment for the event gets the same payment
        back instead of a second one.

        Raises:
            PaymentProcessorError: If the checkout cannot be created. The
                pending payment is kept and reused on retry.
        """
        payment = self._payments.find_pending(event.id, user_id)
        if payment is not None and payment.provider_reference:
            logger.info("Reusing pending payment %s for user %s", payment.id, user_id)
            return PaymentPending(event, payment)
        if payment is None:
            payment = self._payments.create_payment(event.id, user_id, event.joining_fee)

        try:
            checkout = self._processor.create_checkout(payment, event)
        except PaymentProcessorError:
            logger.warning("Checkout for payment %s could not be created", payment.id)
            raise
        payment = self._payments.attach_checkout(payment.id, checkout.reference, checkout.redirect_url)
        logger.info(
            "Payment %s of %s %s pending for user %s on event %s",
            payment.id,
            payment.amount,
            payment.amount.currency,
            user_id,
            event.id,
        )
        return PaymentPending(event, payment)

    def confirm_payment(self, payment_id) -> Event:
        """Mark a payment completed and seat its payer.

        Confirming a payment that is no longer pending changes nothing.

        Raises:
            InvalidIdError, PaymentNotFoundError
            PaymentProcessorError: If the seat is gone and the compensating
                refund cannot be issued. The payment is pending again so the
                confirmation can be retried.
        """
        payment = self.get_payment(payment_id)
        if payment.status is not PaymentStatus.PENDING:
            logger.info("Payment %s already %s", payment.id, payment.status.value)
            return self._participation.get_event(payment.event_id)
        completed = self._payments.transition_payment(
            payment.id, PaymentStatus.PENDING, PaymentStatus.COMPLETED
        )
        if completed is None:
            logger.info("Payment %s confirmed concurrently", payment.id)
            return self._participation.get_event(payment.event_id)

        try:
            return self._participation.seat_paid_participant(completed.event_id, completed.user_id)
        except AlreadyJoinedError:
            return self._participation.get_event(completed.event_id)
        except (EventFullError, EventNotOpenError, IsHostError) as exc:
            logger.warning(
                "No seat for completed payment %s (%s); refunding", completed.id, exc.message
            )
            return self._compensate(completed, exc.message)

    def _compensate(self, payment: Payment, reason: str) -> Event:
        try:
            self._processor.refund(payment)
        except PaymentProcessorError:
            logger.error("Compensating refund of payment %s failed", payment.id)
            self._payments.transition_payment(
                payment.id, PaymentStatus.COMPLETED, PaymentStatus.PENDING
            )
            raise
        refunded = self._payments.transition_payment(
            payment.id, PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, refund_reason=reason
        )
        event = self._participation.get_event(payment.event_id)
        if refunded is not None:
            self._participation.dispatch(PaymentRefunded(event, refunded, reason=reason))
        return event

    def fail_payment(self, payment_id) -> Payment:
        """Mark a pending payment failed; failing it twice is a no-op.

        Raises:
            PaymentStateError: If the payment already completed or was refunded.
        """
        payment = self.get_payment(payment_id)
        failed = self._payments.transition_payment(
            payment.id, PaymentStatus.PENDING, PaymentStatus.FAILED
        )
        if failed is not None:
            logger.info("Payment %s failed", payment.id)
            return failed
        current = self.get_payment(payment.id)
        if current.status is PaymentStatus.FAILED:
            return current
        raise PaymentStateError(current.status.value)

    def refund_payment(
        self,
        payment_id,
        acting_user_id=None,
        reason: str = "",
        issue_refund: bool = True,
    ) -> Event:
        """Refund a completed payment and give up the seat it paid for.

        The processor is asked first; local state only changes once the money
        is on its way back. ``issue_refund=False`` records a refund the
        provider already made, e.g. one reported by webhook. Refunding twice
        is a no-op.

        Raises:
            InvalidIdError, PaymentNotFoundError
            NotAuthorizedError: If the actor is neither host nor admin.
            PaymentStateError: If the payment is pending or failed.
            PaymentProcessorError: If the processor cannot refund.
        """
        payment = self.get_payment(payment_id)
        event = self._participation.get_event(payment.event_id)
        if acting_user_id is not None:
            actor = self._participation.get_user(parse_user_id(acting_user_id))
            if not state_machine.is_host_or_admin(event, actor):
                raise NotAuthorizedError()
        if payment.status is PaymentStatus.REFUNDED:
            return event
        if payment.status is not PaymentStatus.COMPLETED:
            raise PaymentStateError(payment.status.value)

        if issue_refund:
            self._processor.refund(payment)
        refunded = self._payments.transition_payment(
            payment.id, PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, refund_reason=reason
        )
        if refunded is None:
            return self._participation.get_event(payment.event_id)
        logger.info("Payment %s refunded", payment.id)

        self._release_seat(event.id, payment.user_id)
        event = self._participation.get_event(event.id)
        self._participation.dispatch(PaymentRefunded(event, refunded, reason=reason))
        return event

    def _release_seat(self, event_id: EventId, user_id: UserId) -> None:
        event = self._participation.get_event(event_id)
        if event.status.is_terminal or not event.ledger.contains(user_id):
            return
        self._participation.leave_event(event_id, user_id, refunded=True)
