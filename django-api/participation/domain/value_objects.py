"""Domain primitives that enforce validity at creation time."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self
from uuid import UUID


@dataclass(frozen=True)
class _UUIDIdentifier:
    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        """Raises ValueError if ``value`` is not a UUID."""
        return cls(value=UUID(str(value)))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class EventId(_UUIDIdentifier):
    """Unique identifier for an Event."""


@dataclass(frozen=True)
class PaymentId(_UUIDIdentifier):
    """Unique identifier for a Payment."""


@dataclass(frozen=True)
class WaitlistEntryId(_UUIDIdentifier):
    """Unique identifier for a WaitlistEntry."""


@dataclass(frozen=True, order=True)
class UserId:
    """Primary key of a user in the user directory."""

    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Money:
    """Non-negative amount in a three-letter currency."""

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("Money amount cannot be negative")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", self.currency.upper())

    @property
    def is_free(self) -> bool:
        return self.amount == 0

    def __str__(self) -> str:
        return f"{self.amount:.2f}"


@dataclass(frozen=True)
class Capacity:
    """Seat count of an event; events themselves require at least one."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError("Capacity cannot be negative")
