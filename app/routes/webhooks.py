import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from app.context import AppContext, get_context
from app.database import get_session
from app.errors import PersistenceFailure, ValidationFailure
from app.schemas.webhook_schemas import WebhookResult
from app.services.webhook_processor import process_payment_webhook
from app.utils.signature import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADERS = {
    "dodo": ("webhook-signature", "x-dodo-signature"),
    "paddle": ("paddle-signature",),
}


async def _verified_body(request: Request, provider: str, ctx: AppContext):
    raw = await request.body()

    signature = None
    for header in SIGNATURE_HEADERS[provider]:
        signature = request.headers.get(header)
        if signature:
            break
    verify_signature(ctx.settings.webhook_secret_for(provider), raw, signature)

    try:
        return json.loads(raw or b"{}")
    except ValueError:
        raise ValidationFailure("Invalid JSON body")


async def _handle(provider: str, request: Request, session: Session, ctx: AppContext):
    body = await _verified_body(request, provider, ctx)
    try:
        return await run_in_threadpool(
            process_payment_webhook, session, ctx.settings, provider, body
        )
    except PersistenceFailure:
        # non-2xx so the provider retries the delivery
        raise HTTPException(500, "Failed to record purchase")


@router.post("/dodo", response_model=WebhookResult)
async def dodo_webhook(
    request: Request,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    return await _handle("dodo", request, session, ctx)


@router.post("/paddle", response_model=WebhookResult)
async def paddle_webhook(
    request: Request,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    return await _handle("paddle", request, session, ctx)
