from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class DownloadToken(SQLModel, table=True):
    """
    Single-use download credential.

    A row starts as a placeholder (no token, no expiry) keyed by the provider
    checkout id, and is filled in once the webhook records the purchase.
    From then on it carries both the checkout id and the internal purchase id.
    """

    __tablename__ = "download_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)

    token: Optional[str] = Field(default=None, unique=True, index=True)

    checkout_id: str = Field(unique=True, index=True)
    purchase_id: Optional[int] = Field(
        default=None, foreign_key="purchases.id", index=True
    )
    product_id: int = Field(foreign_key="products.id")

    file_path: Optional[str] = None
    expires_at: Optional[datetime] = None

    used: bool = Field(default=False)
    used_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_placeholder(self) -> bool:
        return self.token is None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at
