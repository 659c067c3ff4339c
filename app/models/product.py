from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str

    # provider-side product id (e.g. Dodo "pdt_...")
    external_id: str = Field(unique=True, index=True)
    provider: str = Field(default="dodo")

    # storage object key, copied onto each download token at issuance
    file_path: str

    price: float
    currency: str = Field(default="USD")
    affiliate_rate: Optional[float] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
