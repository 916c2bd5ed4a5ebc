from django.urls import path

from participation.handlers import (
    CancelEventView,
    CompleteEventView,
    EventDetailView,
    EventWaitlistView,
    JoinEventView,
    PaymentWebhookView,
    RefundPaymentView,
    ReopenEventView,
)

urlpatterns = [
    path("events/<str:event_id>", EventDetailView.as_view(), name="event-detail"),
    path("events/<str:event_id>/join", JoinEventView.as_view(), name="event-join"),
    path("events/<str:event_id>/waitlist", EventWaitlistView.as_view(), name="event-waitlist"),
    path("events/<str:event_id>/cancel", CancelEventView.as_view(), name="event-cancel"),
    path("events/<str:event_id>/reopen", ReopenEventView.as_view(), name="event-reopen"),
    path("events/<str:event_id>/complete", CompleteEventView.as_view(), name="event-complete"),
    path("payments/webhook", PaymentWebhookView.as_view(), name="payment-webhook"),
    path("payments/<str:payment_id>/refund", RefundPaymentView.as_view(), name="payment-refund"),
]
