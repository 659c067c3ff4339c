import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from app.services.download_tokens import consume, peek
from app.services.r2_client import R2Storage, StoredFile

logger = logging.getLogger(__name__)


def deliver(
    session: Session,
    storage: R2Storage,
    token: str,
    now: Optional[datetime] = None,
) -> StoredFile:
    """
    Fetch the purchased file, then spend the token.

    The file is read before the token is marked used, so a storage outage
    leaves the token valid for a retry. The file is only returned if this
    request is the one whose conditional update flipped ``used``.
    """
    now = now or datetime.utcnow()
    row = peek(session, token, now)

    stored = storage.get_file(row.file_path)

    consume(session, token, now)
    logger.info(f"Delivered {stored.filename} for checkout {row.checkout_id}")
    return stored


def issue_download_link(
    session: Session,
    storage: R2Storage,
    token: str,
    expires: int = 900,
    now: Optional[datetime] = None,
) -> str:
    """Spend the token in exchange for a short-lived presigned URL."""
    now = now or datetime.utcnow()
    row = peek(session, token, now)

    url = storage.presigned_url(row.file_path, expires)

    consume(session, token, now)
    logger.info(f"Issued download link for checkout {row.checkout_id}")
    return url
