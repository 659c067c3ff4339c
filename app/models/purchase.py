from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Purchase(SQLModel, table=True):
    __tablename__ = "purchases"

    id: Optional[int] = Field(default=None, primary_key=True)

    email: str
    provider: str  # dodo | paddle

    provider_order_id: str = Field(index=True)
    # idempotency key for webhook retries
    provider_checkout_id: str = Field(unique=True, index=True)

    product_id: int = Field(foreign_key="products.id")

    amount: float = Field(nullable=False)
    currency: str = Field(default="USD")
    fulfilled: bool = Field(default=True)
    referral_code: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
