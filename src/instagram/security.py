"""Webhook payload signature verification."""

import hashlib
import hmac


def verify_signature(body: bytes, signature_header: str, app_secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw request body."""
    if not signature_header or not app_secret:
        return False
    expected = hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature_header, f"sha256={expected}")
