"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Call services for business logic
- Map domain errors to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

import logging

from django.core.cache import cache
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from participation import cache as cache_keys
from participation.conf import get_setting
from participation.domain import Joined, PaymentPending, Waitlisted
from participation.domain.errors import (
    AuthorizationError,
    DomainError,
    ExternalDependencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from participation.handlers.serializers import (
    EventSerializer,
    PaymentSerializer,
    PaymentWebhookSerializer,
    RefundRequestSerializer,
    WaitlistEntrySerializer,
    WaitlistSerializer,
)
from participation.services import ParticipationService, build_participation_service
from participation.services.ids import parse_event_id
from participation.webhooks import SIGNATURE_HEADER, WebhookSignatureError, verify_signature

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[DomainError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ExternalDependencyError, status.HTTP_502_BAD_GATEWAY),
]


def error_response(code: str, message: str, status_code: int) -> Response:
    return Response({"error": {"code": code, "message": message}}, status=status_code)


def domain_error_response(exc: DomainError) -> Response:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    if status_code >= 500:
        logger.error("Upstream failure: %s", exc)
    return error_response(exc.code.value, exc.message, status_code)


class ParticipationView(APIView):
    """Base view: builds the service and renders domain errors."""

    permission_classes = [IsAuthenticated]

    @property
    def service(self) -> ParticipationService:
        if not hasattr(self, "_service"):
            self._service = build_participation_service()
        return self._service

    def handle_exception(self, exc: Exception) -> Response:
        if isinstance(exc, DomainError):
            return domain_error_response(exc)
        return super().handle_exception(exc)


class EventDetailView(ParticipationView):
    """Handler for GET /api/events/{event_id}"""

    permission_classes = [AllowAny]

    def get(self, request: Request, event_id: str) -> Response:
        key = cache_keys.event_key(parse_event_id(event_id))
        data = cache.get(key)
        if data is None:
            data = EventSerializer(self.service.get_event(event_id)).data
            cache.set(key, data, cache_keys.timeout())
        return Response(data)


class JoinEventView(ParticipationView):
    """Handler for POST/DELETE /api/events/{event_id}/join"""

    def post(self, request: Request, event_id: str) -> Response:
        outcome = self.service.join_event(event_id, request.user.pk)
        body = {"event": EventSerializer(outcome.event).data}
        if isinstance(outcome, Joined):
            return Response({"status": "joined", **body}, status=status.HTTP_200_OK)
        if isinstance(outcome, Waitlisted):
            body["waitlist_entry"] = WaitlistEntrySerializer(outcome.entry).data
            return Response({"status": "waitlisted", **body}, status=status.HTTP_202_ACCEPTED)
        if isinstance(outcome, PaymentPending):
            body["payment"] = PaymentSerializer(outcome.payment).data
            body["redirect_url"] = outcome.payment.redirect_url
            return Response({"status": "payment_pending", **body}, status=status.HTTP_202_ACCEPTED)
        raise TypeError(f"Unexpected join outcome {type(outcome).__name__}")

    def delete(self, request: Request, event_id: str) -> Response:
        event = self.service.leave_event(event_id, request.user.pk)
        return Response({"status": "left", "event": EventSerializer(event).data})


class EventWaitlistView(ParticipationView):
    """Handler for GET/DELETE /api/events/{event_id}/waitlist"""

    permission_classes = [IsAuthenticatedOrReadOnly]

    def get(self, request: Request, event_id: str) -> Response:
        key = cache_keys.waitlist_key(parse_event_id(event_id))
        data = cache.get(key)
        if data is None:
            data = WaitlistSerializer(self.service.get_waitlist(event_id)).data
            cache.set(key, data, cache_keys.timeout())
        viewer_position = None
        if request.user.is_authenticated:
            viewer_position = next(
                (e["position"] for e in data["entries"] if e["user_id"] == request.user.pk),
                None,
            )
        return Response({**data, "viewer_position": viewer_position})

    def delete(self, request: Request, event_id: str) -> Response:
        entry = self.service.withdraw_from_waitlist(event_id, request.user.pk)
        return Response({"status": "withdrawn", "waitlist_entry": WaitlistEntrySerializer(entry).data})


class CancelEventView(ParticipationView):
    """Handler for POST /api/events/{event_id}/cancel"""

    def post(self, request: Request, event_id: str) -> Response:
        event = self.service.cancel_event(event_id, request.user.pk)
        return Response({"status": "cancelled", "event": EventSerializer(event).data})


class ReopenEventView(ParticipationView):
    """Handler for POST /api/events/{event_id}/reopen"""

    def post(self, request: Request, event_id: str) -> Response:
        event = self.service.reopen_event(event_id, request.user.pk)
        return Response({"status": "reopened", "event": EventSerializer(event).data})


class CompleteEventView(ParticipationView):
    """Handler for POST /api/events/{event_id}/complete"""

    def post(self, request: Request, event_id: str) -> Response:
        event = self.service.complete_event(event_id, request.user.pk)
        return Response({"status": "completed", "event": EventSerializer(event).data})


class RefundPaymentView(ParticipationView):
    """Handler for POST /api/payments/{payment_id}/refund"""

    def post(self, request: Request, payment_id: str) -> Response:
        serializer = RefundRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response("INVALID_REQUEST", "Invalid refund request", 400)
        event = self.service.gateway.refund_payment(
            payment_id,
            acting_user_id=request.user.pk,
            reason=serializer.validated_data["reason"],
        )
        payment = self.service.gateway.get_payment(payment_id)
        return Response(
            {"payment": PaymentSerializer(payment).data, "event": EventSerializer(event).data}
        )


class PaymentWebhookView(ParticipationView):
    """Handler for POST /api/payments/webhook

    Unauthenticated; trusted only through the body signature.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request: Request) -> Response:
        try:
            verify_signature(
                get_setting("WEBHOOK_SECRET"), request.body, request.headers.get(SIGNATURE_HEADER)
            )
        except WebhookSignatureError as exc:
            return error_response("INVALID_SIGNATURE", str(exc), status.HTTP_400_BAD_REQUEST)

        serializer = PaymentWebhookSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response("INVALID_REQUEST", "Invalid webhook payload", 400)
        payload = serializer.validated_data
        payment_id = str(payload["payment_id"])
        logger.info("Payment webhook %s for payment %s", payload["type"], payment_id)

        gateway = self.service.gateway
        if payload["type"] == "payment.completed":
            gateway.confirm_payment(payment_id)
        elif payload["type"] == "payment.failed":
            gateway.fail_payment(payment_id)
        else:
            gateway.refund_payment(
                payment_id, reason=payload["reason"] or "Refunded by provider", issue_refund=False
            )
        return Response({"received": True})
