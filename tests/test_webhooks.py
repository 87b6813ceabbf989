"""Tests for webhook signature checks and the Polar endpoint."""
import base64
import json
import time

import pytest

from app.core.errors import WebhookVerificationError
from app.models.webhook_event import WebhookEvent
from app.services.security import sign_webhook_payload, verify_webhook_signature


SECRET = "test-polar-secret"


def _signed_headers(body: bytes, msg_id: str = "msg_1", secret: str = SECRET, timestamp: int = None) -> dict:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": str(timestamp),
        "webhook-signature": f"v1,{sign_webhook_payload(secret, msg_id, timestamp, body)}",
        "content-type": "application/json",
    }


def _body(event_type: str = "order.created") -> bytes:
    return json.dumps({"type": event_type, "data": {"id": "order_1", "product_id": "prod_1"}}).encode()


class TestVerifySignature:

    def test_valid_signature_returns_id(self):
        body = _body()
        assert verify_webhook_signature(body, _signed_headers(body), SECRET) == "msg_1"

    def test_whsec_secret_is_base64_key(self):
        secret = "whsec_" + base64.b64encode(b"raw-key-bytes").decode()
        body = _body()
        assert verify_webhook_signature(body, _signed_headers(body, secret=secret), secret) == "msg_1"

    def test_tampered_body_is_rejected(self):
        headers = _signed_headers(_body())
        with pytest.raises(WebhookVerificationError):
            verify_webhook_signature(_body("order.refunded"), headers, SECRET)

    def test_old_timestamp_is_rejected(self):
        body = _body()
        headers = _signed_headers(body, timestamp=int(time.time()) - 3600)
        with pytest.raises(WebhookVerificationError):
            verify_webhook_signature(body, headers, SECRET)

    def test_missing_headers_are_rejected(self):
        with pytest.raises(WebhookVerificationError):
            verify_webhook_signature(_body(), {}, SECRET)

    def test_any_of_several_signatures_may_match(self):
        body = _body()
        headers = _signed_headers(body)
        headers["webhook-signature"] = "v1,bm90LWl0 " + headers["webhook-signature"]
        assert verify_webhook_signature(body, headers, SECRET) == "msg_1"


class TestPolarEndpoint:

    def test_valid_webhook_is_enqueued(self, client, db, enqueued):
        body = _body()

        response = client.post("/api/webhooks/polar", content=body, headers=_signed_headers(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        enqueued["settlements"].assert_called_once_with(
            "msg_1", "order.created", {"id": "order_1", "product_id": "prod_1"}
        )
        assert db.get(WebhookEvent, "msg_1").status == "received"

    def test_bad_signature_is_forbidden(self, client, enqueued):
        body = _body()
        headers = _signed_headers(body, secret="wrong-secret")

        response = client.post("/api/webhooks/polar", content=body, headers=headers)

        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "No matching signature found"}
        enqueued["settlements"].assert_not_called()

    def test_duplicate_delivery_is_not_enqueued_twice(self, client, enqueued):
        body = _body()
        client.post("/api/webhooks/polar", content=body, headers=_signed_headers(body))
        response = client.post("/api/webhooks/polar", content=body, headers=_signed_headers(body))

        assert response.json() == {"received": True}
        assert enqueued["settlements"].call_count == 1

    def test_enqueue_failure_marks_event_failed(self, client, db, enqueued):
        enqueued["settlements"].side_effect = RuntimeError("broker down")
        body = _body()

        response = client.post("/api/webhooks/polar", content=body, headers=_signed_headers(body))

        assert response.status_code == 500
        assert db.get(WebhookEvent, "msg_1").status == "failed"

    def test_missing_secret_is_server_error(self, client, monkeypatch):
        from app.core.config import get_settings

        monkeypatch.setattr(get_settings(), "POLAR_WEBHOOK_SECRET", None)
        body = _body()

        response = client.post("/api/webhooks/polar", content=body, headers=_signed_headers(body))

        assert response.status_code == 500
