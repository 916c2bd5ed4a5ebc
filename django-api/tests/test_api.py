"""API tests for the participation endpoints.

Run with: pytest tests/test_api.py -v
"""

import json
import uuid

import pytest
from django.urls import reverse

from participation.models import Participation, Payment, WaitlistEntry
from participation.services import build_participation_service
from participation.webhooks import compute_signature

SECRET = "whsec_test"


@pytest.fixture
def players(make_user):
    return [make_user(f"player{n}") for n in range(1, 4)]


@pytest.fixture
def webhook_secret(settings):
    settings.PARTICIPATION = {**settings.PARTICIPATION, "WEBHOOK_SECRET": SECRET}
    return SECRET


def post_webhook(api_client, payload: dict, signature: str | None = None):
    body = json.dumps(payload)
    headers = {}
    if signature is None:
        signature = compute_signature(SECRET, body.encode())
    if signature:
        headers["HTTP_X_PARTICIPATION_SIGNATURE"] = signature
    return api_client.post(
        reverse("payment-webhook"), data=body, content_type="application/json", **headers
    )


@pytest.mark.django_db
class TestEventDetail:
    """Tests for GET /api/events/{id}"""

    def test_returns_participation_summary(self, api_client, make_db_event, host_user):
        row = make_db_event(max_participants=4, fee="7.50")

        response = api_client.get(reverse("event-detail", args=[row.pk]))

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(row.pk)
        assert data["host_id"] == host_user.pk
        assert data["status"] == "open"
        assert data["max_participants"] == 4
        assert data["free_seats"] == 4
        assert data["participants"] == []
        assert data["joining_fee"] == "7.50"

    def test_unknown_event_returns_404(self, api_client):
        response = api_client.get(reverse("event-detail", args=[uuid.uuid4()]))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "EVENT_NOT_FOUND"

    def test_invalid_id_returns_400(self, api_client):
        response = api_client.get(reverse("event-detail", args=["not-a-uuid"]))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ID"


@pytest.mark.django_db
class TestJoinAndLeave:
    """Tests for POST/DELETE /api/events/{id}/join"""

    def test_requires_authentication(self, api_client, make_db_event):
        row = make_db_event()

        response = api_client.post(reverse("event-join", args=[row.pk]))

        assert response.status_code in (401, 403)
        assert not Participation.objects.exists()

    def test_free_join_seats_user(self, api_client, make_db_event, players):
        row = make_db_event()
        api_client.force_authenticate(players[0])

        response = api_client.post(reverse("event-join", args=[row.pk]))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "joined"
        assert body["event"]["participants"] == [players[0].pk]

    def test_full_event_queues_with_position(self, api_client, make_db_event, players):
        row = make_db_event(max_participants=1)
        api_client.force_authenticate(players[0])
        api_client.post(reverse("event-join", args=[row.pk]))
        api_client.force_authenticate(players[1])

        response = api_client.post(reverse("event-join", args=[row.pk]))

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "waitlisted"
        assert body["waitlist_entry"]["position"] == 1
        assert body["event"]["status"] == "full"

    def test_join_twice_is_rejected(self, api_client, make_db_event, players):
        row = make_db_event()
        api_client.force_authenticate(players[0])
        api_client.post(reverse("event-join", args=[row.pk]))

        response = api_client.post(reverse("event-join", args=[row.pk]))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ALREADY_JOINED"

    def test_paid_join_returns_redirect(self, api_client, make_db_event, players):
        row = make_db_event(fee="15.00")
        api_client.force_authenticate(players[0])

        response = api_client.post(reverse("event-join", args=[row.pk]))

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "payment_pending"
        assert body["payment"]["status"] == "pending"
        assert body["redirect_url"] == body["payment"]["redirect_url"]
        assert not Participation.objects.exists()

    def test_leave_frees_seat(self, api_client, make_db_event, players):
        row = make_db_event()
        api_client.force_authenticate(players[0])
        api_client.post(reverse("event-join", args=[row.pk]))

        response = api_client.delete(reverse("event-join", args=[row.pk]))

        assert response.status_code == 200
        assert response.json()["event"]["current_participants"] == 0

    def test_leave_without_seat_is_rejected(self, api_client, make_db_event, players):
        row = make_db_event()
        api_client.force_authenticate(players[0])

        response = api_client.delete(reverse("event-join", args=[row.pk]))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "NOT_A_PARTICIPANT"


@pytest.mark.django_db
class TestWaitlistEndpoint:
    """Tests for GET/DELETE /api/events/{id}/waitlist"""

    @pytest.fixture
    def full_event(self, make_db_event, players):
        row = make_db_event(max_participants=1)
        service = build_participation_service()
        for player in players:
            service.join_event(row.pk, player.pk)
        return row

    def test_lists_queue_with_viewer_position(self, api_client, full_event, players):
        api_client.force_authenticate(players[2])

        response = api_client.get(reverse("event-waitlist", args=[full_event.pk]))

        assert response.status_code == 200
        body = response.json()
        assert body["total_waiting"] == 2
        assert [e["user_id"] for e in body["entries"]] == [players[1].pk, players[2].pk]
        assert body["viewer_position"] == 2

    def test_anonymous_viewer_has_no_position(self, api_client, full_event):
        response = api_client.get(reverse("event-waitlist", args=[full_event.pk]))

        assert response.status_code == 200
        assert response.json()["viewer_position"] is None

    def test_withdraw(self, api_client, full_event, players):
        api_client.force_authenticate(players[1])

        response = api_client.delete(reverse("event-waitlist", args=[full_event.pk]))

        assert response.status_code == 200
        assert response.json()["waitlist_entry"]["status"] == "declined"
        remaining = api_client.get(reverse("event-waitlist", args=[full_event.pk])).json()
        assert [e["user_id"] for e in remaining["entries"]] == [players[2].pk]


@pytest.mark.django_db
class TestLifecycleEndpoints:
    """Tests for cancel, reopen and complete."""

    def test_non_host_cannot_cancel(self, api_client, make_db_event, players):
        row = make_db_event()
        api_client.force_authenticate(players[0])

        response = api_client.post(reverse("event-cancel", args=[row.pk]))

        assert response.status_code == 403
        row.refresh_from_db()
        assert row.status == "open"

    def test_host_cancels_and_staff_reopens(self, api_client, make_db_event, host_user, make_user):
        row = make_db_event()
        api_client.force_authenticate(host_user)
        cancelled = api_client.post(reverse("event-cancel", args=[row.pk]))
        api_client.force_authenticate(make_user("staffer", staff=True))

        reopened = api_client.post(reverse("event-reopen", args=[row.pk]))

        assert cancelled.json()["event"]["status"] == "cancelled"
        assert reopened.status_code == 200
        assert reopened.json()["event"]["status"] == "open"

    def test_staff_completes_event(self, api_client, make_db_event, make_user):
        row = make_db_event()
        api_client.force_authenticate(make_user("staffer", staff=True))

        response = api_client.post(reverse("event-complete", args=[row.pk]))

        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_host_cannot_complete(self, api_client, make_db_event, host_user):
        row = make_db_event()
        api_client.force_authenticate(host_user)

        response = api_client.post(reverse("event-complete", args=[row.pk]))

        assert response.status_code == 403


@pytest.mark.django_db
class TestPaymentEndpoints:
    """Tests for the refund endpoint and the provider webhook."""

    @pytest.fixture
    def pending(self, make_db_event, players):
        row = make_db_event(max_participants=1, fee="20.00")
        outcome = build_participation_service().join_event(row.pk, players[0].pk)
        return outcome.payment

    def test_webhook_completion_seats_payer_once(self, api_client, webhook_secret, pending):
        payload = {"type": "payment.completed", "payment_id": str(pending.id)}

        first = post_webhook(api_client, payload)
        second = post_webhook(api_client, payload)

        assert first.status_code == 200
        assert first.json() == {"received": True}
        assert second.status_code == 200
        assert Participation.objects.filter(event_id=pending.event_id.value).count() == 1
        assert Payment.objects.get(pk=pending.id.value).status == "completed"

    def test_webhook_with_bad_signature_changes_nothing(self, api_client, webhook_secret, pending):
        payload = {"type": "payment.completed", "payment_id": str(pending.id)}

        response = post_webhook(api_client, payload, signature="0" * 64)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
        assert not Participation.objects.exists()

    def test_webhook_without_signature_is_rejected(self, api_client, webhook_secret, pending):
        response = post_webhook(
            api_client, {"type": "payment.failed", "payment_id": str(pending.id)}, signature=""
        )

        assert response.status_code == 400
        assert Payment.objects.get(pk=pending.id.value).status == "pending"

    def test_webhook_rejects_unknown_type(self, api_client, webhook_secret, pending):
        response = post_webhook(api_client, {"type": "payment.lost", "payment_id": str(pending.id)})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_webhook_failure_marks_payment_failed(self, api_client, webhook_secret, pending):
        post_webhook(api_client, {"type": "payment.failed", "payment_id": str(pending.id)})

        assert Payment.objects.get(pk=pending.id.value).status == "failed"

    def test_host_refund_frees_seat_and_offers_it(
        self, api_client, webhook_secret, pending, players, host_user
    ):
        post_webhook(api_client, {"type": "payment.completed", "payment_id": str(pending.id)})
        build_participation_service().join_event(pending.event_id.value, players[1].pk)
        api_client.force_authenticate(host_user)

        response = api_client.post(
            reverse("payment-refund", args=[pending.id]), {"reason": "Rained out"}, format="json"
        )

        assert response.status_code == 200
        body = response.json()
        assert body["payment"]["status"] == "refunded"
        assert body["event"]["participants"] == []
        assert body["event"]["held_seats"] == 1
        offered = WaitlistEntry.objects.get(user=players[1])
        assert offered.status == "offered"

    def test_payer_cannot_refund(self, api_client, webhook_secret, pending, players):
        post_webhook(api_client, {"type": "payment.completed", "payment_id": str(pending.id)})
        api_client.force_authenticate(players[0])

        response = api_client.post(reverse("payment-refund", args=[pending.id]), {}, format="json")

        assert response.status_code == 403
        assert Payment.objects.get(pk=pending.id.value).status == "completed"
