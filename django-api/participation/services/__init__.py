from django.utils.module_loading import import_string

from participation.conf import get_setting
from participation.dispatch import SideEffectDispatcher
from participation.domain import WaitlistPolicy
from participation.services.participation_service import ParticipationService
from participation.services.payment_gateway import PaymentGateway
from participation.services.processors import Checkout, OfflinePaymentProcessor, PaymentProcessor
from participation.stores.django_store import (
    DjangoActivityStore,
    DjangoParticipationStore,
    DjangoPaymentStore,
    DjangoUserDirectory,
)


def build_participation_service() -> ParticipationService:
    """Wire the service to the ORM stores and the configured processor."""
    users = DjangoUserDirectory()
    processor_class = import_string(get_setting("PAYMENT_PROCESSOR"))
    return ParticipationService(
        store=DjangoParticipationStore(),
        users=users,
        dispatcher=SideEffectDispatcher(DjangoActivityStore(), users),
        payments=DjangoPaymentStore(),
        processor=processor_class(return_url=get_setting("PAYMENT_RETURN_URL")),
        policy=WaitlistPolicy(offer_ttl=get_setting("WAITLIST_OFFER_TTL")),
    )


__all__ = [
    "Checkout",
    "OfflinePaymentProcessor",
    "ParticipationService",
    "PaymentGateway",
    "PaymentProcessor",
    "build_participation_service",
]
