# app/schemas/checkout_schemas.py
from pydantic import BaseModel
from typing import Optional


class CheckoutRequest(BaseModel):
    product_id: int
    referral_code: Optional[str] = None


class CheckoutResponse(BaseModel):
    checkout_id: str
    checkout_url: str
