from __future__ import annotations

import hashlib
import hmac
import logging


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


class SignatureError(RuntimeError):
    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


def compute_signature(body: bytes, secret: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), body or b"", hashlib.sha256)
    return SIGNATURE_PREFIX + mac.hexdigest()


def is_valid_signature(body: bytes, signature: str, secret: str) -> bool:
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


def check_webhook_signature(body: bytes, signature: str | None, secret: str | None) -> None:
    """Authenticate a webhook delivery, raising SignatureError on rejection.

    Without a configured secret every delivery is accepted (local/dev default);
    a signature sent anyway only produces a warning.
    """
    signature = (signature or "").strip()
    if not secret:
        if signature:
            logger.warning("Webhook secret is not set; skipping signature validation")
        return
    if not signature:
        raise SignatureError("missing", "missing signature")
    if not is_valid_signature(body, signature, secret):
        raise SignatureError("invalid", "invalid signature")
