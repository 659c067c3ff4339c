from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlmodel import Session
from typing import Optional

from app.context import AppContext, get_context
from app.database import get_session
from app.schemas.token_schemas import DownloadLinkResponse
from app.services.delivery_service import deliver, issue_download_link

router = APIRouter()


@router.get("")
def download_file(
    token: Optional[str] = None,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    if not token:
        raise HTTPException(400, "Missing token")

    stored = deliver(session, ctx.storage, token)

    return Response(
        content=stored.content,
        media_type=stored.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{stored.filename}"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/link", response_model=DownloadLinkResponse)
def download_link(
    token: Optional[str] = None,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    """Same checks as the direct download, but hands back a presigned URL."""
    if not token:
        raise HTTPException(400, "Missing token")

    expires = ctx.settings.PRESIGNED_URL_TTL_SECONDS
    url = issue_download_link(session, ctx.storage, token, expires=expires)

    return DownloadLinkResponse(file=url, expires_in=expires)
