import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.context import build_context
from app.database import create_db_and_tables
from app.errors import FulfillmentError
from app.routes import checkout, downloads, health, tokens, webhooks

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.ctx = build_context(settings)
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables(app.state.ctx.engine)
    yield
    app.state.ctx.engine.dispose()

app = FastAPI(title="Digital Fulfillment API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.SITE_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(FulfillmentError)
async def fulfillment_error_handler(request: Request, exc: FulfillmentError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Payment Webhooks"])
app.include_router(tokens.router, prefix="/tokens", tags=["Download Tokens"])
app.include_router(downloads.router, prefix="/download", tags=["Downloads"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "checkout_endpoints": ["/checkout"],
        "webhook_endpoints": ["/webhooks/dodo", "/webhooks/paddle"],
        "token_endpoints": ["/tokens/by-checkout", "/tokens/by-transaction"],
        "download_endpoints": ["/download", "/download/link"],
        "health": ["/health/check"],
    }
