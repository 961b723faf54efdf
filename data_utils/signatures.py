import hashlib
import hmac
import time
from typing import Dict, Optional

from data_services.errors import WebhookSignatureError

TIMESTAMP_HEADER = "X-Growth-Timestamp"
SIGNATURE_HEADER = "X-Growth-Signature"
SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, timestamp: int, body: bytes) -> str:
    return hmac.new(
        secret.encode(), msg=f"{timestamp}.".encode() + body, digestmod=hashlib.sha256
    ).hexdigest()


def signature_headers(secret: str, body: bytes, timestamp: Optional[int] = None) -> Dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        TIMESTAMP_HEADER: str(ts),
        SIGNATURE_HEADER: SIGNATURE_PREFIX + compute_signature(secret, ts, body),
    }


def verify_signature(
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    secret: str,
    tolerance_seconds: int = 300,
) -> None:
    """Raises WebhookSignatureError unless the signature matches and is fresh."""
    if not timestamp or not signature:
        raise WebhookSignatureError("missing signature headers")
    try:
        ts = int(timestamp)
    except ValueError:
        raise WebhookSignatureError("invalid signature timestamp")
    if abs(time.time() - ts) > tolerance_seconds:
        raise WebhookSignatureError("signature timestamp expired")

    sig = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature
    expected = compute_signature(secret, ts, body)
    if not hmac.compare_digest(expected, sig):
        raise WebhookSignatureError("invalid signature")
