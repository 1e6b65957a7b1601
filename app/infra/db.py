from __future__ import annotations

import logging
import os

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql+psycopg://tenancy:tenancy@db:5432/tenant_access",
)
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() in {"1", "true", "yes"}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=DATABASE_ECHO)


def get_engine() -> Engine:
    return engine


def open_session(bind: Engine | None = None) -> Session:
    # Directory rows are handed out after the session closes.
    return Session(bind or get_engine(), expire_on_commit=False)


def create_schema(bind: Engine | None = None) -> None:
    """Create all tables directly; migrations are the path for shared databases."""
    from app.domain import models  # noqa: F401

    SQLModel.metadata.create_all(bind or get_engine())


def check_db_ready() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.warning("database readiness check failed", exc_info=True)
        return False
