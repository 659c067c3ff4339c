from datetime import datetime
from pydantic import BaseModel
from typing import Optional


class TokenLookupResponse(BaseModel):
    success: bool = False
    token: Optional[str] = None
    file: Optional[str] = None
    expires_at: Optional[datetime] = None
    message: Optional[str] = None


class DownloadLinkResponse(BaseModel):
    success: bool = True
    file: str
    expires_in: int
