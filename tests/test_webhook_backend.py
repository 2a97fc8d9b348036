"""
Unit tests for WebhookBackend and webhook signatures.
"""
import json
import time
import httpx
import pytest

from delivery_service.core.exceptions import DeliveryValidationError, TransientDeliveryError
from delivery_service.core.webhook_security import WebhookSignature
from delivery_service.services.backends import WebhookBackend

SECRET = "test-secret-key"
URL = "http://hooks.example.com/deliver"


def make_backend(handler) -> WebhookBackend:
    return WebhookBackend(
        name="Hook",
        url=URL,
        signing_secret=SECRET,
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestWebhookSignature:
    """Test cases for WebhookSignature."""

    def test_generate_signature_format(self):
        result = WebhookSignature.generate_signature('{"a":1}', "1640995200", SECRET)

        assert result.startswith("sha256=")
        assert len(result) == 71
        assert result == WebhookSignature.generate_signature('{"a":1}', "1640995200", SECRET)

    def test_verify_valid_signature(self):
        timestamp = str(int(time.time()))
        signature = WebhookSignature.generate_signature("payload", timestamp, SECRET)

        assert WebhookSignature.verify_signature("payload", signature, timestamp, SECRET) is True

    def test_verify_rejects_tampered_payload(self):
        timestamp = str(int(time.time()))
        signature = WebhookSignature.generate_signature("payload", timestamp, SECRET)

        assert WebhookSignature.verify_signature("tampered", signature, timestamp, SECRET) is False

    def test_verify_rejects_stale_timestamp(self):
        timestamp = str(int(time.time()) - 600)
        signature = WebhookSignature.generate_signature("payload", timestamp, SECRET)

        assert WebhookSignature.verify_signature("payload", signature, timestamp, SECRET) is False

    def test_verify_rejects_malformed_timestamp(self):
        assert WebhookSignature.verify_signature("payload", "sha256=x", "soon", SECRET) is False


class TestWebhookBackend:
    """Test cases for WebhookBackend."""

    @pytest.mark.asyncio
    async def test_send_signed_payload(self, sample_request):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={"message_id": "remote-123"})

        result = await make_backend(handler).send(sample_request)

        assert result.provider == "Hook"
        assert result.message_id == "remote-123"

        request = seen["request"]
        body = request.content.decode()
        assert str(request.url) == URL
        assert json.loads(body) == {
            "to": "test@example.com",
            "subject": "Test Subject",
            "body": "Test body",
            "id": "msg-1",
        }
        assert request.headers["X-Webhook-Event-ID"] == "msg-1"
        assert WebhookSignature.verify_signature(
            body,
            request.headers["X-Webhook-Signature"],
            request.headers["X-Webhook-Timestamp"],
            SECRET,
        )

    @pytest.mark.asyncio
    async def test_generated_message_id_without_json(self, sample_request):
        backend = make_backend(lambda request: httpx.Response(202, text="accepted"))

        result = await backend.send(sample_request)

        assert result.message_id.startswith("hook-")

    @pytest.mark.asyncio
    async def test_client_error_is_validation_error(self, sample_request):
        backend = make_backend(lambda request: httpx.Response(422, text="bad address"))

        with pytest.raises(DeliveryValidationError) as exc_info:
            await backend.send(sample_request)

        assert str(exc_info.value) == "Hook: Webhook rejected with status 422"

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, sample_request):
        backend = make_backend(lambda request: httpx.Response(503))

        with pytest.raises(TransientDeliveryError) as exc_info:
            await backend.send(sample_request)

        assert str(exc_info.value) == "Hook: Webhook rejected with status 503"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, sample_request):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(TransientDeliveryError) as exc_info:
            await make_backend(handler).send(sample_request)

        assert str(exc_info.value) == "Hook: Webhook timeout"

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, sample_request):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientDeliveryError) as exc_info:
            await make_backend(handler).send(sample_request)

        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_status_tracks_failures(self, sample_request):
        responses = iter([httpx.Response(200, json={}), httpx.Response(500)])
        backend = make_backend(lambda request: next(responses))

        await backend.send(sample_request)
        with pytest.raises(TransientDeliveryError):
            await backend.send(sample_request)

        status = backend.status()
        assert status["name"] == "Hook"
        assert status["failure_rate"] == 0.5
        assert status["last_latency_ms"] is not None
