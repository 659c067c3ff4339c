from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from typing import Optional
import logging

from app.database import get_session
from app.errors import PersistenceFailure
from app.models.purchase import Purchase
from app.schemas.token_schemas import TokenLookupResponse
from app.services.download_tokens import find_live_token_for_purchase
from app.services.purchase_ledger import get_purchase_by_checkout, get_purchase_by_transaction

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_for(purchase: Optional[Purchase], session: Session):
    if not purchase:
        # webhook still in flight; the buyer's page keeps polling
        return JSONResponse(status_code=404, content={"error": "Purchase not ready yet"})

    row = find_live_token_for_purchase(session, purchase.id)
    if not row:
        return TokenLookupResponse(message="Token not created yet")

    return TokenLookupResponse(
        success=True,
        token=row.token,
        file=row.file_path,
        expires_at=row.expires_at,
    )


@router.get("/by-checkout", response_model=TokenLookupResponse)
def token_by_checkout(
    checkout_id: Optional[str] = None,
    session: Session = Depends(get_session),
):
    if not checkout_id:
        raise HTTPException(400, "Missing checkout_id")

    try:
        return _token_for(get_purchase_by_checkout(session, checkout_id), session)
    except SQLAlchemyError:
        logger.exception(f"Token lookup failed for checkout {checkout_id}")
        raise PersistenceFailure()


@router.get("/by-transaction", response_model=TokenLookupResponse)
def token_by_transaction(
    transaction_id: Optional[str] = None,
    session: Session = Depends(get_session),
):
    if not transaction_id:
        raise HTTPException(400, "Missing transaction_id")

    try:
        return _token_for(get_purchase_by_transaction(session, transaction_id), session)
    except SQLAlchemyError:
        logger.exception(f"Token lookup failed for transaction {transaction_id}")
        raise PersistenceFailure()
