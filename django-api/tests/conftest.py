"""Pytest configuration and shared fixtures."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from participation.dispatch import SideEffectDispatcher
from participation.domain import (
    Capacity,
    Event,
    EventId,
    EventStatus,
    Money,
    Payment,
    UserId,
    UserProfile,
    WaitlistPolicy,
)
from participation.domain.errors import PaymentProcessorError
from participation.models import Event as EventRow
from participation.services import ParticipationService
from participation.services.processors import Checkout, PaymentProcessor
from participation.stores.memory_store import (
    InMemoryActivityStore,
    InMemoryParticipationStore,
    InMemoryPaymentStore,
    InMemoryUserDirectory,
)

HOST = UserId(1)
ADMIN = UserId(99)


class FakeClock:
    """Settable clock for offer deadlines."""

    def __init__(self) -> None:
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class RecordingProcessor(PaymentProcessor):
    """Payment processor double that records calls and can be made to fail."""

    def __init__(self) -> None:
        self.checkouts: list[Payment] = []
        self.refunds: list[Payment] = []
        self.unavailable = False

    def create_checkout(self, payment: Payment, event: Event) -> Checkout:
        if self.unavailable:
            raise PaymentProcessorError()
        self.checkouts.append(payment)
        return Checkout(
            reference=f"test_{payment.id.value.hex}",
            redirect_url=f"https://pay.example.com/{payment.id}",
        )

    def refund(self, payment: Payment) -> None:
        if self.unavailable:
            raise PaymentProcessorError()
        self.refunds.append(payment)


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def users() -> InMemoryUserDirectory:
    directory = InMemoryUserDirectory(
        [
            UserProfile(id=HOST, display_name="Hannah Host"),
            UserProfile(id=ADMIN, display_name="Ada Admin", is_admin=True),
        ]
    )
    for pk in range(2, 11):
        directory.add(UserProfile(id=UserId(pk), display_name=f"User {pk}"))
    return directory


@pytest.fixture
def store() -> InMemoryParticipationStore:
    return InMemoryParticipationStore()


@pytest.fixture
def payments() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def feed() -> InMemoryActivityStore:
    return InMemoryActivityStore()


@pytest.fixture
def processor() -> RecordingProcessor:
    return RecordingProcessor()


@pytest.fixture
def service(store, users, feed, payments, processor, clock) -> ParticipationService:
    return ParticipationService(
        store=store,
        users=users,
        dispatcher=SideEffectDispatcher(feed, users),
        payments=payments,
        processor=processor,
        policy=WaitlistPolicy(offer_ttl=timedelta(hours=24)),
        clock=clock,
    )


@pytest.fixture
def make_event(store):
    """Factory adding an open event hosted by HOST to the in-memory store."""

    def _make(max_participants: int = 3, fee: str = "0", **overrides) -> Event:
        fields = {
            "id": EventId(uuid.uuid4()),
            "host_id": HOST,
            "name": "Sunday Football",
            "min_participants": 1,
            "max_participants": Capacity(max_participants),
            "joining_fee": Money(Decimal(fee)),
            "status": EventStatus.OPEN,
        }
        fields.update(overrides)
        return store.add_event(Event(**fields))

    return _make


@pytest.fixture
def make_user(django_user_model):
    """Factory for auth users; ``staff=True`` makes an admin."""

    def _make(username: str, staff: bool = False, **fields):
        return django_user_model.objects.create_user(
            username=username, password="secret", is_staff=staff, **fields
        )

    return _make


@pytest.fixture
def host_user(make_user):
    return make_user("hannah", email="hannah@example.com", first_name="Hannah")


@pytest.fixture
def make_db_event(host_user):
    """Factory for persisted events hosted by ``host_user``."""

    def _make(max_participants: int = 3, fee: str = "0", **fields) -> EventRow:
        return EventRow.objects.create(
            host=fields.pop("host", host_user),
            name=fields.pop("name", "Pickup Basketball"),
            max_participants=max_participants,
            joining_fee=Decimal(fee),
            **fields,
        )

    return _make
