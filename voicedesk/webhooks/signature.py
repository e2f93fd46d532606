"""HMAC-SHA256 verification of inbound webhook bodies."""

import hashlib
import hmac
from typing import Optional, Union


def compute_signature(raw_body: Union[bytes, str], secret: str) -> str:
    """Hex HMAC-SHA256 digest of ``raw_body`` keyed with ``secret``."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode()
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_signature(
    raw_body: Union[bytes, str],
    signature: Optional[str],
    secret: str,
) -> bool:
    """Check ``signature`` against the digest of the exact raw body.

    Never raises: a missing, truncated or non-ASCII header is simply a
    failed verification. Comparison is constant-time.
    """
    if not signature or not secret:
        return False
    try:
        expected = compute_signature(raw_body, secret)
        return hmac.compare_digest(expected, signature.strip().lower())
    except (TypeError, ValueError, AttributeError):
        return False
