"""
Scheduled sweep of download credentials.

Run from cron: ``python -m app.jobs.cleanup_tokens``
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlmodel import Session

from app.config import Settings, settings
from app.database import build_engine
from app.services.download_tokens import cleanup_expired

logger = logging.getLogger(__name__)


def cleanup_tokens(
    session: Session,
    retention_days: int = 7,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    logger.info("Cleaning up expired download tokens...")
    removed = cleanup_expired(
        session,
        placeholder_retention=timedelta(days=retention_days),
        now=now,
    )
    logger.info(
        f"Removed {removed['expired']} expired tokens and "
        f"{removed['stale_placeholders']} stale placeholders"
    )
    return removed


def run(config: Settings = settings) -> Dict[str, int]:
    engine = build_engine(config.database_url)
    try:
        with Session(engine) as session:
            return cleanup_tokens(session, config.PLACEHOLDER_RETENTION_DAYS)
    finally:
        engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    run()
