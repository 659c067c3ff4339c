# app/schemas/webhook_schemas.py
from decimal import Decimal
from pydantic import BaseModel
from typing import Optional


class NormalizedPayment(BaseModel):
    provider: str
    event_type: str

    email: str
    order_id: str         # provider payment id (pay_..., txn_...)
    checkout_id: str      # provider checkout/session id, the idempotency key
    product_external_id: str

    amount: Optional[Decimal] = None   # major units, None when not reported
    currency: Optional[str] = None
    referral_code: Optional[str] = None


class WebhookResult(BaseModel):
    message: str = "OK"
    purchase_id: Optional[int] = None
    redirect: Optional[str] = None
    ignored: bool = False
