from participation.handlers.views import (
    CancelEventView,
    CompleteEventView,
    EventDetailView,
    EventWaitlistView,
    JoinEventView,
    PaymentWebhookView,
    RefundPaymentView,
    ReopenEventView,
)

__all__ = [
    "CancelEventView",
    "CompleteEventView",
    "EventDetailView",
    "EventWaitlistView",
    "JoinEventView",
    "PaymentWebhookView",
    "RefundPaymentView",
    "ReopenEventView",
]
