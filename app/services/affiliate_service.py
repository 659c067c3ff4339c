import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.errors import PersistenceFailure
from app.models.affiliate import Affiliate, AffiliateCommission
from app.models.product import Product

logger = logging.getLogger(__name__)

DEFAULT_AFFILIATE_RATE = Decimal("0.5")


class CommissionOutcome(str, Enum):
    SKIPPED = "skipped"                  # no referral code on the sale
    UNKNOWN_AFFILIATE = "unknown_affiliate"
    DUPLICATE = "duplicate"
    CREATED = "created"


@dataclass
class CommissionResult:
    outcome: CommissionOutcome
    commission: Optional[AffiliateCommission] = None


AffiliateLookup = Callable[[Session, str], Optional[Affiliate]]


def resolve_affiliate(session: Session, referral_code: str) -> Optional[Affiliate]:
    return session.exec(
        select(Affiliate).where(Affiliate.code == referral_code)
    ).first()


def commission_rate(product: Product, default=DEFAULT_AFFILIATE_RATE) -> Decimal:
    if product.affiliate_rate and product.affiliate_rate > 0:
        return Decimal(str(product.affiliate_rate))
    return Decimal(str(default))


def compute_commission(settled_amount, rate) -> Decimal:
    amount = Decimal(str(settled_amount)) * Decimal(str(rate))
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def get_commission(session: Session, affiliate_id: int, purchase_id: int) -> Optional[AffiliateCommission]:
    return session.exec(
        select(AffiliateCommission)
        .where(AffiliateCommission.affiliate_id == affiliate_id)
        .where(AffiliateCommission.purchase_id == purchase_id)
    ).first()


def attribute_commission(
    session: Session,
    referral_code: Optional[str],
    purchase_id: int,
    product: Product,
    settled_amount,
    currency: str = "USD",
    source: Optional[str] = None,
    lookup: AffiliateLookup = resolve_affiliate,
    default_rate=DEFAULT_AFFILIATE_RATE,
) -> CommissionResult:
    """
    Record one pending commission per (affiliate, purchase).

    Referral codes come from buyers' links, so an unknown code is expected
    and simply yields no commission.
    """
    if not referral_code or not referral_code.strip():
        return CommissionResult(CommissionOutcome.SKIPPED)
    referral_code = referral_code.strip()

    try:
        affiliate = lookup(session, referral_code)
        if not affiliate:
            logger.warning(f"Affiliate not found for code: {referral_code}")
            return CommissionResult(CommissionOutcome.UNKNOWN_AFFILIATE)

        existing = get_commission(session, affiliate.id, purchase_id)
        if existing:
            logger.info(
                f"Commission already exists for affiliate {affiliate.id} "
                f"and purchase {purchase_id}, skipping"
            )
            return CommissionResult(CommissionOutcome.DUPLICATE, existing)

        amount = compute_commission(
            settled_amount, commission_rate(product, default_rate)
        )
        commission = AffiliateCommission(
            affiliate_id=affiliate.id,
            affiliate_name=affiliate.name,
            purchase_id=purchase_id,
            product_id=product.id,
            amount=float(amount),
            currency=currency,
            status="pending",
            referral_code=referral_code,
            source=source,
        )
        session.add(commission)
        session.commit()
        session.refresh(commission)
    except IntegrityError:
        session.rollback()
        logger.info(f"Commission for purchase {purchase_id} recorded concurrently")
        return CommissionResult(
            CommissionOutcome.DUPLICATE,
            get_commission(session, affiliate.id, purchase_id),
        )
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Commission insert failed for purchase {purchase_id}")
        raise PersistenceFailure()

    logger.info(
        f"Recorded commission {commission.amount} {currency} "
        f"for affiliate {affiliate.name}"
    )
    return CommissionResult(CommissionOutcome.CREATED, commission)
