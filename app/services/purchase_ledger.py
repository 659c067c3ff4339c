import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.errors import PersistenceFailure
from app.models.purchase import Purchase

logger = logging.getLogger(__name__)


@dataclass
class PurchaseFields:
    email: str
    provider: str
    order_id: str
    product_id: int
    amount: Decimal
    currency: str = "USD"
    referral_code: Optional[str] = None


def get_purchase_by_checkout(session: Session, checkout_id: str) -> Optional[Purchase]:
    return session.exec(
        select(Purchase).where(Purchase.provider_checkout_id == checkout_id)
    ).first()


def get_purchase_by_order(session: Session, order_id: str) -> Optional[Purchase]:
    return session.exec(
        select(Purchase)
        .where(Purchase.provider_order_id == order_id)
        .order_by(Purchase.id)
    ).first()


def get_purchase_by_transaction(session: Session, transaction_id: str) -> Optional[Purchase]:
    """
    Look up by whatever id the buyer's browser holds after payment.

    Dodo hands back the payment id (the order id); Paddle hands back the
    ``txn_...`` transaction id, which is stored as the checkout id.
    """
    return get_purchase_by_order(session, transaction_id) or get_purchase_by_checkout(
        session, transaction_id
    )


def _existing_purchase_id(session: Session, checkout_id: str) -> Optional[int]:
    try:
        existing = get_purchase_by_checkout(session, checkout_id)
    except SQLAlchemyError:
        logger.exception(f"Purchase lookup failed for {checkout_id}")
        raise PersistenceFailure()
    return existing.id if existing else None


def record_purchase(session: Session, checkout_id: str, fields: PurchaseFields) -> int:
    """
    Insert-or-fetch keyed on the provider checkout id.

    Returns the internal purchase id. A retried webhook gets the id of the
    row written by the first delivery. When two deliveries race, the unique
    constraint on ``provider_checkout_id`` rejects the loser's insert and it
    re-reads the winner's row.
    """
    existing_id = _existing_purchase_id(session, checkout_id)
    if existing_id is not None:
        logger.info(f"Purchase already recorded (idempotent): {checkout_id}")
        return existing_id

    purchase = Purchase(
        email=fields.email,
        provider=fields.provider,
        provider_order_id=fields.order_id,
        provider_checkout_id=checkout_id,
        product_id=fields.product_id,
        amount=float(fields.amount),
        currency=fields.currency,
        fulfilled=True,
        referral_code=fields.referral_code,
    )

    try:
        session.add(purchase)
        session.commit()
        session.refresh(purchase)
    except IntegrityError:
        session.rollback()
        existing_id = _existing_purchase_id(session, checkout_id)
        if existing_id is None:
            logger.exception(f"Purchase insert rejected for {checkout_id}")
            raise PersistenceFailure()
        logger.info(f"Purchase recorded by a concurrent delivery: {checkout_id}")
        return existing_id
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Purchase insert failed for {checkout_id}")
        raise PersistenceFailure()

    logger.info(
        f"Purchase recorded: {fields.email} | {purchase.amount} {purchase.currency} "
        f"| checkout {checkout_id}"
    )
    return purchase.id
