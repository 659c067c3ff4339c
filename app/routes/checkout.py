import logging
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.context import AppContext, get_context
from app.database import get_session
from app.schemas.checkout_schemas import CheckoutRequest, CheckoutResponse
from app.services.download_tokens import issue_placeholder
from app.services.product_resolver import get_product

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    product = get_product(session, payload.product_id)

    referral_code = (payload.referral_code or "").strip() or None
    checkout = ctx.checkout_provider.create_checkout(
        product.external_id, referral_code=referral_code
    )

    # the webhook fills this row in once payment is confirmed
    issue_placeholder(session, checkout.checkout_id, product.id)

    return CheckoutResponse(
        checkout_id=checkout.checkout_id,
        checkout_url=checkout.checkout_url,
    )
