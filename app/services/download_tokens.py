"""
Download credentials: placeholder at checkout, real token at payment,
single use at download.

Every state change is one conditional write on one row; the affected-row
count decides the outcome, never a preceding read.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.errors import AlreadyConsumed, Expired, InvalidToken, PersistenceFailure
from app.models.download_token import DownloadToken

logger = logging.getLogger(__name__)


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def get_by_checkout(session: Session, checkout_id: str) -> Optional[DownloadToken]:
    return session.exec(
        select(DownloadToken).where(DownloadToken.checkout_id == checkout_id)
    ).first()


def get_by_token(session: Session, token: str) -> Optional[DownloadToken]:
    return session.exec(
        select(DownloadToken).where(DownloadToken.token == token)
    ).first()


def issue_placeholder(session: Session, checkout_id: str, product_id: int) -> DownloadToken:
    try:
        existing = get_by_checkout(session, checkout_id)
        if existing:
            return existing

        row = DownloadToken(checkout_id=checkout_id, product_id=product_id)
        session.add(row)
        session.commit()
        session.refresh(row)
    except IntegrityError:
        session.rollback()
        return get_by_checkout(session, checkout_id)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Placeholder insert failed for checkout {checkout_id}")
        raise PersistenceFailure()

    logger.info(f"Placeholder credential created for checkout {checkout_id}")
    return row


def confirm_credential(
    session: Session,
    checkout_id: str,
    token: str,
    file_path: str,
    ttl: timedelta,
    purchase_id: int,
    product_id: int,
    now: Optional[datetime] = None,
) -> DownloadToken:
    """
    Attach a real token to the checkout's credential.

    Fills the placeholder when there is one, otherwise inserts a new row.
    A credential that was already issued is returned untouched, so a
    retried webhook never hands out a second live token and never revives
    a used one.
    """
    now = now or datetime.utcnow()
    values = dict(
        token=token,
        file_path=file_path,
        expires_at=now + ttl,
        used=False,
        purchase_id=purchase_id,
        product_id=product_id,
    )

    try:
        result = session.exec(
            update(DownloadToken)
            .where(DownloadToken.checkout_id == checkout_id)
            .where(DownloadToken.token.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        session.commit()

        if result.rowcount == 1:
            logger.info(f"Filled placeholder credential for checkout {checkout_id}")
            return get_by_checkout(session, checkout_id)

        existing = get_by_checkout(session, checkout_id)
        if existing is not None:
            if existing.purchase_id is None:
                existing.purchase_id = purchase_id
                session.add(existing)
                session.commit()
                session.refresh(existing)
            logger.info(f"Credential already issued for checkout {checkout_id}, keeping it")
            return existing

        row = DownloadToken(checkout_id=checkout_id, **values)
        session.add(row)
        session.commit()
        session.refresh(row)
    except IntegrityError:
        session.rollback()
        existing = get_by_checkout(session, checkout_id)
        if existing is None:
            raise PersistenceFailure()
        logger.info(f"Credential issued by a concurrent delivery for checkout {checkout_id}")
        return existing
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Credential upsert failed for checkout {checkout_id}")
        raise PersistenceFailure()

    logger.info(f"Created download credential for checkout {checkout_id}")
    return row


def _ensure_usable(row: Optional[DownloadToken], now: datetime) -> DownloadToken:
    if row is None or row.is_placeholder:
        raise InvalidToken()
    # expiry wins over the used flag
    if row.expires_at is None or row.is_expired(now):
        raise Expired()
    if row.used:
        raise AlreadyConsumed()
    return row


def peek(session: Session, token: str, now: Optional[datetime] = None) -> DownloadToken:
    """Advisory check only; ``consume`` is what decides."""
    now = now or datetime.utcnow()
    try:
        row = get_by_token(session, token)
    except SQLAlchemyError:
        logger.exception("Token lookup failed")
        raise PersistenceFailure()
    return _ensure_usable(row, now)


def consume(session: Session, token: str, now: Optional[datetime] = None) -> str:
    """
    Mark the token used and return its file path.

    Exactly one caller can win: the used flag flips inside a single
    ``UPDATE ... WHERE used = false AND expires_at > now``.
    """
    now = now or datetime.utcnow()
    try:
        result = session.exec(
            update(DownloadToken)
            .where(DownloadToken.token == token)
            .where(DownloadToken.used == False)  # noqa: E712
            .where(DownloadToken.expires_at > now)
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        row = get_by_token(session, token)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Token consumption failed")
        raise PersistenceFailure()

    if result.rowcount == 1:
        logger.info(f"Download token consumed for checkout {row.checkout_id}")
        return row.file_path

    _ensure_usable(row, now)
    # row looked usable on re-read but the update lost: someone else won
    raise AlreadyConsumed()


def find_live_token_for_purchase(
    session: Session, purchase_id: int, now: Optional[datetime] = None
) -> Optional[DownloadToken]:
    now = now or datetime.utcnow()
    return session.exec(
        select(DownloadToken)
        .where(DownloadToken.purchase_id == purchase_id)
        .where(DownloadToken.token.is_not(None))
        .where(DownloadToken.used == False)  # noqa: E712
        .where(DownloadToken.expires_at > now)
        .order_by(DownloadToken.id.desc())
    ).first()


def cleanup_expired(
    session: Session,
    placeholder_retention: timedelta = timedelta(days=7),
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    now = now or datetime.utcnow()
    try:
        expired = session.exec(
            delete(DownloadToken)
            .where(DownloadToken.expires_at.is_not(None))
            .where(DownloadToken.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        stale = session.exec(
            delete(DownloadToken)
            .where(DownloadToken.token.is_(None))
            .where(DownloadToken.created_at < now - placeholder_retention)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Expired token cleanup failed")
        raise PersistenceFailure()

    return {"expired": expired.rowcount, "stale_placeholders": stale.rowcount}
