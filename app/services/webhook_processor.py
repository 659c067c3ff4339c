import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.config import Settings
from app.errors import FulfillmentError
from app.schemas.webhook_schemas import WebhookResult
from app.services.affiliate_service import attribute_commission
from app.services.download_tokens import confirm_credential, generate_token
from app.services.normalizer import (
    get_variant,
    is_success_event,
    normalize_payment,
    read_envelope,
)
from app.services.product_resolver import resolve_product
from app.services.purchase_ledger import PurchaseFields, record_purchase

logger = logging.getLogger(__name__)


def process_payment_webhook(
    session: Session,
    settings: Settings,
    provider: str,
    body: Any,
) -> WebhookResult:
    """
    Payment confirmation → purchase, download credential, commission.

    Safe to run any number of times for the same checkout: each step is
    keyed (checkout id for the purchase and credential, affiliate+purchase
    for the commission). Nothing is written until the payload is complete
    and the product is known. Once the purchase exists, failures in the
    later steps are logged and do not fail the webhook.
    """
    variant = get_variant(provider)
    event_type, data = read_envelope(body)

    if not is_success_event(variant, event_type, data):
        logger.info(f"[{provider}] ignored event: {event_type or 'unknown'}")
        return WebhookResult(message="Ignored non-success event", ignored=True)

    payment = normalize_payment(provider, body, settings.amount_unit_for(provider))
    logger.info(
        f"[{provider}] {event_type} for checkout {payment.checkout_id} "
        f"(order {payment.order_id})"
    )

    product = resolve_product(session, payment.product_external_id)

    amount = payment.amount
    if amount is None:
        amount = Decimal(str(product.price)).quantize(Decimal("0.01"))
        logger.warning(
            f"[{provider}] no settlement amount for {payment.checkout_id}, "
            f"using product price {amount}"
        )
    currency = payment.currency or product.currency

    purchase_id = record_purchase(
        session,
        payment.checkout_id,
        PurchaseFields(
            email=payment.email,
            provider=provider,
            order_id=payment.order_id,
            product_id=product.id,
            amount=amount,
            currency=currency,
            referral_code=payment.referral_code,
        ),
    )

    try:
        confirm_credential(
            session,
            checkout_id=payment.checkout_id,
            token=generate_token(),
            file_path=product.file_path,
            ttl=timedelta(hours=settings.DOWNLOAD_TOKEN_TTL_HOURS),
            purchase_id=purchase_id,
            product_id=product.id,
        )
    except (FulfillmentError, SQLAlchemyError):
        session.rollback()
        logger.exception(f"Token upsert failed for checkout {payment.checkout_id}")

    if payment.referral_code:
        logger.info(f"Referral detected: {payment.referral_code}")
        try:
            attribute_commission(
                session,
                referral_code=payment.referral_code,
                purchase_id=purchase_id,
                product=product,
                settled_amount=amount,
                currency=currency,
                source=f"{provider}-webhook",
                default_rate=settings.DEFAULT_AFFILIATE_RATE,
            )
        except (FulfillmentError, SQLAlchemyError):
            session.rollback()
            logger.exception(f"Affiliate attribution failed for purchase {purchase_id}")
    else:
        logger.info("No referral, skipping affiliate commission")

    redirect = (
        f"{settings.SITE_URL.rstrip('/')}/thank-you?purchase_id={payment.checkout_id}"
    )
    return WebhookResult(purchase_id=purchase_id, redirect=redirect)
