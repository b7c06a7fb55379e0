"""LINE webhook signature: base64(HMAC-SHA256(channel secret, raw body))."""

import base64
import hashlib
import hmac
from typing import Optional


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of the X-Line-Signature header."""
    if not secret or not signature:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected, signature.strip())
