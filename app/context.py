from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import Request
from sqlalchemy.engine import Engine

from app.config import Settings

if TYPE_CHECKING:
    from app.services.dodo_client import DodoClient
    from app.services.r2_client import R2Storage


@dataclass
class AppContext:
    """
    Process-wide handles shared by every request.

    Built once at startup (see ``app.main.lifespan``) and injected into
    handlers with ``Depends(get_context)``; nothing here holds per-request
    state.
    """

    settings: Settings
    engine: Engine
    storage: "R2Storage"
    checkout_provider: "DodoClient"


def build_context(settings: Settings) -> AppContext:
    from app.database import build_engine
    from app.services.dodo_client import DodoClient
    from app.services.r2_client import R2Storage

    return AppContext(
        settings=settings,
        engine=build_engine(settings.database_url),
        storage=R2Storage.from_settings(settings),
        checkout_provider=DodoClient.from_settings(settings),
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx
