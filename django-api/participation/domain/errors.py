"""Domain error codes for the participation module.

Errors are grouped by category so handlers can map a whole family to one
HTTP status:

- NotFoundError: a referenced event, user, payment or entry is missing
- ValidationError: the request itself is invalid (duplicate join, bad id)
- StateConflictError: the event or payment is in the wrong state
- AuthorizationError: the actor may not perform a host/admin action
- ExternalDependencyError: a collaborator (payment processor) failed
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    WAITLIST_ENTRY_NOT_FOUND = "WAITLIST_ENTRY_NOT_FOUND"
    INVALID_ID = "INVALID_ID"
    INVALID_CAPACITY = "INVALID_CAPACITY"
    ALREADY_JOINED = "ALREADY_JOINED"
    ALREADY_WAITLISTED = "ALREADY_WAITLISTED"
    IS_HOST = "IS_HOST"
    EVENT_NOT_OPEN = "EVENT_NOT_OPEN"
    EVENT_FULL = "EVENT_FULL"
    NOT_A_PARTICIPANT = "NOT_A_PARTICIPANT"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    EVENT_NOT_CANCELLED = "EVENT_NOT_CANCELLED"
    PAYMENT_STATE = "PAYMENT_STATE"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    PAYMENT_PROCESSOR = "PAYMENT_PROCESSOR"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """A referenced entity does not exist."""


class ValidationError(DomainError):
    """The request is malformed or duplicates existing state."""


class StateConflictError(DomainError):
    """The entity is in a state that does not allow the operation."""


class AuthorizationError(DomainError):
    """The acting user lacks the required role."""


class ExternalDependencyError(DomainError):
    """A collaborator outside this service failed."""


class EventNotFoundError(NotFoundError):
    """Raised when an event is not found."""

    def __init__(self, event_id: str) -> None:
        super().__init__(
            code=ErrorCode.EVENT_NOT_FOUND,
            message="Event not found",
        )
        self.event_id = event_id


class UserNotFoundError(NotFoundError):
    """Raised when a user is not found."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            code=ErrorCode.USER_NOT_FOUND,
            message="User not found",
        )
        self.user_id = user_id


class PaymentNotFoundError(NotFoundError):
    """Raised when a payment is not found."""

    def __init__(self, payment_id: str) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_NOT_FOUND,
            message="Payment not found",
        )
        self.payment_id = payment_id


class WaitlistEntryNotFoundError(NotFoundError):
    """Raised when a user has no active waitlist entry for an event."""

    def __init__(self, event_id: str) -> None:
        super().__init__(
            code=ErrorCode.WAITLIST_ENTRY_NOT_FOUND,
            message="You are not on the waitlist",
        )
        self.event_id = event_id


class InvalidIdError(ValidationError):
    """Raised when an identifier is malformed."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_ID,
            message="Invalid ID format",
        )


class InvalidCapacityError(ValidationError):
    """Raised when capacity bounds are inconsistent."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.INVALID_CAPACITY, message=message)


class AlreadyJoinedError(ValidationError):
    """Raised when a user already holds a seat in the event."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_JOINED,
            message="You already joined this event",
        )


class AlreadyWaitlistedError(ValidationError):
    """Raised when a user already has an active waitlist entry."""

    def __init__(self, position: int | None = None) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_WAITLISTED,
            message="You are already on the waitlist",
        )
        self.position = position


class IsHostError(ValidationError):
    """Raised when the host tries to join their own event."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.IS_HOST,
            message="Host cannot join their own event",
        )


class EventNotOpenError(StateConflictError):
    """Raised when the event is cancelled or completed."""

    def __init__(self, status: str) -> None:
        super().__init__(
            code=ErrorCode.EVENT_NOT_OPEN,
            message=f"Event is {status}",
        )
        self.status = status


class EventFullError(StateConflictError):
    """Raised when no seat is left and the waitlist is disabled."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.EVENT_FULL,
            message="This event is full",
        )


class NotAParticipantError(StateConflictError):
    """Raised when a non-participant tries to leave."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.NOT_A_PARTICIPANT,
            message="You are not a participant in this event",
        )


class AlreadyCancelledError(StateConflictError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_CANCELLED,
            message="Event is already cancelled",
        )


class EventNotCancelledError(StateConflictError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.EVENT_NOT_CANCELLED,
            message="Only cancelled events can be reopened",
        )


class PaymentStateError(StateConflictError):
    """Raised when a payment cannot move to the requested status."""

    def __init__(self, status: str) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_STATE,
            message=f"Payment is {status}",
        )
        self.status = status


class NotAuthorizedError(AuthorizationError):
    """Raised when the actor is neither host nor admin."""

    def __init__(self, message: str = "Host or admin access required") -> None:
        super().__init__(code=ErrorCode.NOT_AUTHORIZED, message=message)


class PaymentProcessorError(ExternalDependencyError):
    """Raised when the payment processor cannot be reached or rejects a call."""

    def __init__(self, message: str = "Payment processor unavailable") -> None:
        super().__init__(code=ErrorCode.PAYMENT_PROCESSOR, message=message)
