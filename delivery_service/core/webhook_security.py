import hmac
import hashlib
import time

from .logging import get_logger

logger = get_logger(__name__)


class WebhookSignature:
    """HMAC-SHA256 signatures for outbound webhook deliveries.

    WebhookBackend signs with generate_signature. verify_signature is the
    matching check for services that receive those deliveries.
    """

    @staticmethod
    def generate_signature(payload: str, timestamp: str, secret: str) -> str:
        """
        Generate HMAC-SHA256 signature for a webhook payload.

        Format: sha256=<hex_digest>
        Payload to sign: timestamp.payload

        Args:
            payload: JSON string of the webhook payload
            timestamp: Unix timestamp as string
            secret: Webhook signing secret

        Returns:
            Signature in format: sha256=<hex_digest>
        """
        signed_payload = f"{timestamp}.{payload}"

        signature = hmac.new(
            secret.encode('utf-8'),
            signed_payload.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

        return f"sha256={signature}"

    @staticmethod
    def verify_signature(
        payload: str,
        signature_header: str,
        timestamp_header: str,
        secret: str,
        tolerance_seconds: int = 300
    ) -> bool:
        """
        Check a received signature against the payload and timestamp.

        Receiver-side helper: this service only sends webhooks, so nothing
        in it calls this; receivers of WebhookBackend deliveries do.

        Returns False for malformed or stale timestamps and for mismatched
        signatures.
        """
        try:
            webhook_timestamp = int(timestamp_header)
        except (ValueError, TypeError):
            logger.warning("Invalid webhook timestamp format", timestamp=timestamp_header)
            return False

        age_seconds = int(time.time()) - webhook_timestamp
        if abs(age_seconds) > tolerance_seconds:
            logger.warning(
                "Webhook timestamp outside tolerance",
                age_seconds=age_seconds,
                tolerance_seconds=tolerance_seconds
            )
            return False

        expected_signature = WebhookSignature.generate_signature(
            payload, timestamp_header, secret
        )
        # Constant-time comparison
        return hmac.compare_digest(signature_header, expected_signature)
