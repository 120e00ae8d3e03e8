"""Database session management."""

from collections.abc import Generator
from typing import Annotated, Any, Dict

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from coffee_export.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool and driver options for ``database_url``."""
    if database_url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            # One shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
        else:
            options.update(pool_pre_ping=True, pool_recycle=1800)
        return options
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def make_engine(database_url: str, echo: bool = False) -> Engine:
    return create_engine(database_url, echo=echo, **engine_options(database_url))


engine = make_engine(settings.database_url, echo=settings.debug and settings.log_level == "DEBUG")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; repositories commit their own writes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
