from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime


class Affiliate(SQLModel, table=True):
    __tablename__ = "affiliates"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    name: str
    email: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)


class AffiliateCommission(SQLModel, table=True):
    __tablename__ = "affiliate_commissions"
    __table_args__ = (
        UniqueConstraint(
            "affiliate_id", "purchase_id", name="uq_commission_affiliate_purchase"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    affiliate_id: int = Field(foreign_key="affiliates.id", index=True)
    affiliate_name: Optional[str] = None

    purchase_id: int = Field(foreign_key="purchases.id", index=True)
    product_id: int = Field(foreign_key="products.id")

    amount: float
    currency: str = Field(default="USD")
    status: str = Field(default="pending")  # pending | paid | void

    referral_code: Optional[str] = None
    source: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
