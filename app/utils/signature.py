import hashlib
import hmac
import logging
from typing import List, Optional

from app.errors import SignatureInvalid

logger = logging.getLogger(__name__)


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def _candidates(header: str) -> List[str]:
    """Accept ``<hex>``, ``sha256=<hex>`` and ``ts=..;h1=<hex>`` forms."""
    values = []
    for chunk in header.replace(",", ";").split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "=" in chunk:
            key, value = chunk.split("=", 1)
            if key.strip() == "ts":
                continue
            chunk = value.strip()
        values.append(chunk.lower())
    return values


def verify_signature(secret: Optional[str], raw_body: bytes, header: Optional[str]) -> None:
    """
    Raise SignatureInvalid unless ``header`` carries the HMAC-SHA256 of the
    raw body. Verification is skipped when no secret is configured.
    """
    if not secret:
        return

    if not header:
        logger.warning("Webhook signature header missing")
        raise SignatureInvalid()

    expected = compute_signature(secret, raw_body).encode("utf-8")
    if not any(
        hmac.compare_digest(expected, value.encode("utf-8"))
        for value in _candidates(header)
    ):
        logger.warning("Invalid webhook signature")
        raise SignatureInvalid()
