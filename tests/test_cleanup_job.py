from datetime import datetime, timedelta

from sqlmodel import select

from app.jobs.cleanup_tokens import cleanup_tokens
from app.models import DownloadToken
from app.services.download_tokens import confirm_credential


def test_cleanup_job_sweeps_expired_tokens(session, product, purchase_id):
    now = datetime(2026, 5, 1, 8, 0, 0)
    confirm_credential(
        session,
        checkout_id="cks_1",
        token="tok_old",
        file_path=product.file_path,
        ttl=timedelta(hours=12),
        purchase_id=purchase_id,
        product_id=product.id,
        now=now - timedelta(days=1),
    )

    removed = cleanup_tokens(session, retention_days=7, now=now)

    assert removed["expired"] == 1
    assert session.exec(select(DownloadToken)).all() == []
