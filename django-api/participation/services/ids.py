"""Parsing of raw identifiers coming from handlers and commands."""

from uuid import UUID

from participation.domain import EventId, PaymentId, UserId
from participation.domain.errors import InvalidIdError


def parse_event_id(value: EventId | UUID | str) -> EventId:
    """Raises InvalidIdError for anything that is not a UUID."""
    if isinstance(value, EventId):
        return value
    try:
        return EventId.from_string(str(value))
    except ValueError as exc:
        raise InvalidIdError() from exc


def parse_payment_id(value: PaymentId | UUID | str) -> PaymentId:
    if isinstance(value, PaymentId):
        return value
    try:
        return PaymentId.from_string(str(value))
    except ValueError as exc:
        raise InvalidIdError() from exc


def parse_user_id(value: UserId | int | str) -> UserId:
    if isinstance(value, UserId):
        return value
    try:
        return UserId(int(value))
    except (TypeError, ValueError) as exc:
        raise InvalidIdError() from exc
