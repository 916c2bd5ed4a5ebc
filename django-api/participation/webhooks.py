"""Payment webhook signature verification.

Providers sign the raw request body with HMAC-SHA256 using the shared
``WEBHOOK_SECRET`` and send the hex digest in ``X-Participation-Signature``.
The body must be verified before it is parsed.
"""

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Participation-Signature"


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails."""


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str | None) -> None:
    """Check ``signature`` against the body in constant time.

    Raises:
        WebhookSignatureError: If no secret is configured, the header is
            missing, or the digest does not match.
    """
    if not secret:
        logger.error("Webhook secret is not configured; rejecting webhook")
        raise WebhookSignatureError("Webhook secret not configured")
    if not signature:
        logger.warning("Webhook without %s header", SIGNATURE_HEADER)
        raise WebhookSignatureError("Missing signature")
    expected = compute_signature(secret, payload)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning("Webhook signature mismatch (%d byte body)", len(payload))
        raise WebhookSignatureError("Invalid signature")
