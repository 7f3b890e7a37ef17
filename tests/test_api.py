# =============================================================================
# tests/test_api.py - HTTP Layer Tests
# =============================================================================
# Routing, authentication, error mapping and the Stripe webhook through the
# FastAPI app.
#
# Run with: pytest tests/test_api.py -v
# =============================================================================

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.auth import decode_token
from app.config import settings
from app.exceptions import NotAuthenticatedError
from app.main import app
from tests.conftest import BUYER_ID, OTHER_USER_ID, PROVIDER_ID, SELLER_USER_ID


def _token(sub=BUYER_ID, expires_in=3600, secret=None, **claims):
    payload = {
        "sub": sub,
        "aud": "authenticated",
        "email": "bea@example.com",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, secret or settings.SUPABASE_JWT_SECRET, algorithm="HS256")


def _stripe_signature(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestHealth:
    """Health endpoints need no authentication."""

    def test_health(self, api_client):
        response = api_client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["version"] == settings.APP_VERSION

    def test_container_probe_path(self, api_client):
        assert api_client.get("/api/health").status_code == 200

    def test_readiness(self, api_client):
        body = api_client.get("/api/v1/health/ready").json()
        assert body["status"] == "ready"
        assert body["checks"]["database"] == "healthy"

    def test_readiness_degraded(self, api_client, fake_db):
        fake_db.fail("orders", "select")
        body = api_client.get("/api/v1/health/ready").json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"].startswith("unhealthy")

    def test_health_is_rate_limited(self, api_client):
        for _ in range(60):
            api_client.get("/api/v1/health")
        response = api_client.get("/api/v1/health")
        assert response.status_code == 429
        assert "Retry-After" in response.headers


class TestAuthentication:
    def test_missing_token(self, fake_db):
        with TestClient(app) as client:
            response = client.get("/api/v1/notifications")
        assert response.status_code == 401
        assert response.json()["code"] == "NOT_AUTHENTICATED"

    def test_valid_token(self, fake_db):
        with TestClient(app) as client:
            response = client.get(
                "/api/v1/notifications",
                headers={"Authorization": f"Bearer {_token()}"},
            )
        assert response.status_code == 200
        assert response.json() == {"notifications": []}

    def test_decode(self):
        user = decode_token(_token())
        assert user.user_id == BUYER_ID
        assert user.email == "bea@example.com"

    def test_expired(self):
        with pytest.raises(NotAuthenticatedError) as exc_info:
            decode_token(_token(expires_in=-60))
        assert exc_info.value.message == "Token has expired"

    def test_wrong_secret(self):
        with pytest.raises(NotAuthenticatedError):
            decode_token(_token(secret="not-the-secret"))

    def test_subject_must_be_uuid(self):
        with pytest.raises(NotAuthenticatedError):
            decode_token(_token(sub="service-account"))


class TestErrorMapping:
    """Service exceptions become structured JSON errors."""

    def test_not_found(self, api_client, fake_db):
        response = api_client.post("/api/v1/orders/00000000-0000-4000-8000-000000000000/accept")
        assert response.status_code == 404
        assert response.json()["code"] == "ORDER_NOT_FOUND"

    def test_not_authorized(self, api_client, paid_order, stripe_gateway):
        api_client.as_user(OTHER_USER_ID)
        response = api_client.post(f"/api/v1/orders/{paid_order['id']}/refund", json={})
        assert response.status_code == 403
        assert response.json()["code"] == "NOT_AUTHORIZED"

    def test_invalid_transition_details(self, api_client, make_order):
        order = make_order(status="completed")
        api_client.as_user(SELLER_USER_ID)

        response = api_client.post(f"/api/v1/orders/{order['id']}/accept")

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["details"]["current_status"] == "completed"

    def test_malformed_uuid_is_422(self, api_client):
        response = api_client.post("/api/v1/orders/not-a-uuid/accept")
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_refund_amount_validated(self, api_client, paid_order):
        response = api_client.post(f"/api/v1/orders/{paid_order['id']}/refund", json={"amount": 0})
        assert response.status_code == 422


class TestRoutes:
    def test_pay_for_order(self, api_client, make_order, stripe_gateway):
        order = make_order()
        response = api_client.post(f"/api/v1/orders/{order['id']}/payment")
        assert response.status_code == 200
        assert response.json()["payment_intent"]["client_secret"] == "pi_test_123_secret_abc"

    def test_create_retainer(self, api_client, seeded_parties):
        response = api_client.post("/api/v1/retainers", json={"provider_id": PROVIDER_ID, "weekly_hours": 8})
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_notification_inbox(self, api_client, seeded_parties):
        seeded_parties.seed("notifications", {"user_id": BUYER_ID, "title": "Hi", "is_read": False})

        assert len(api_client.get("/api/v1/notifications").json()["notifications"]) == 1
        assert api_client.post("/api/v1/notifications/read-all").json() == {"updated": 1}

    def test_preference_channel_validated(self, api_client, seeded_parties):
        response = api_client.put("/api/v1/notifications/preferences/pigeon", json={"enabled": True})
        assert response.status_code == 422


class TestStripeWebhook:
    """Tests for POST /api/v1/webhooks/stripe."""

    def _event(self, event_type, intent_id="pi_abc"):
        return json.dumps({
            "id": "evt_test_1",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": intent_id, "object": "payment_intent"}},
        })

    def test_missing_signature(self, api_client):
        response = api_client.post("/api/v1/webhooks/stripe", content=self._event("payment_intent.succeeded"))
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing Stripe-Signature header"

    def test_bad_signature(self, api_client):
        payload = self._event("payment_intent.succeeded")
        response = api_client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": _stripe_signature(payload, "whsec_wrong")},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid webhook signature"

    def test_succeeded_holds_escrow(self, api_client, make_order, fake_db):
        order = make_order(stripe_payment_intent_id="pi_abc")
        payload = self._event("payment_intent.succeeded")

        response = api_client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": _stripe_signature(payload, settings.STRIPE_WEBHOOK_SECRET)},
        )

        assert response.status_code == 200
        assert response.json()["received"] is True
        assert fake_db.get("orders", order["id"])["escrow_status"] == "held"

    def test_other_events_are_acknowledged(self, api_client, fake_db):
        payload = self._event("charge.updated")
        response = api_client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": _stripe_signature(payload, settings.STRIPE_WEBHOOK_SECRET)},
        )
        assert response.json() == {"received": True}
