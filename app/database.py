from fastapi import Depends
from sqlmodel import SQLModel, create_engine, Session

from app.context import AppContext, get_context


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,      # checks dead connections
        pool_recycle=1800,       # refresh every 30 min
        connect_args=connect_args,
    )


def create_db_and_tables(engine):
    from app import models  # noqa: F401  registers every table
    SQLModel.metadata.create_all(engine)


def get_session(ctx: AppContext = Depends(get_context)):
    with Session(ctx.engine) as session:
        yield session
