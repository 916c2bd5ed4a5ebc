"""Payment processor collaborators.

The participation core never talks to a payment provider directly; it asks a
``PaymentProcessor`` for a checkout and for refunds. Provider errors must be
raised as ``PaymentProcessorError`` so callers can leave local state alone.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from participation.domain import Event, Payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkout:
    """Where the payer completes a payment."""

    reference: str
    redirect_url: str


class PaymentProcessor(ABC):
    """Interface for payment providers."""

    @abstractmethod
    def create_checkout(self, payment: Payment, event: Event) -> Checkout:
        """Start collecting ``payment`` and return its checkout.

        Raises:
            PaymentProcessorError: If the provider cannot be reached.
        """
        ...

    @abstractmethod
    def refund(self, payment: Payment) -> None:
        """Return the money of a completed payment.

        Raises:
            PaymentProcessorError: If the provider cannot be reached.
        """
        ...


class OfflinePaymentProcessor(PaymentProcessor):
    """Payments settled outside the service, e.g. cash or bank transfer.

    Staff confirm them from the admin; the payer is sent back to the event
    page with the payment id so the front end can show instructions.
    """

    def __init__(self, return_url: str) -> None:
        self._return_url = return_url.rstrip("/")

    def create_checkout(self, payment: Payment, event: Event) -> Checkout:
        reference = f"offline_{payment.id.value.hex}"
        redirect_url = f"{self._return_url}/events/{event.id}?payment={payment.id}"
        logger.info("Offline checkout %s for event %s", reference, event.id)
        return Checkout(reference=reference, redirect_url=redirect_url)

    def refund(self, payment: Payment) -> None:
        logger.info(
            "Offline refund of %s %s recorded for payment %s",
            payment.amount,
            payment.amount.currency,
            payment.id,
        )
