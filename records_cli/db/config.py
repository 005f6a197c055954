import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from records_cli.models import Base
from records_cli.utils.logging_config import get_logger

load_dotenv()

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///records.db"
TIMEOUT_SECONDS = 120


def _register_error_logging(engine: Engine) -> None:
    """Log storage failures before they propagate to the caller."""

    @event.listens_for(engine, "handle_error")
    def _log_storage_error(exc_ctx):
        err = getattr(exc_ctx, "original_exception", None)
        logger.error(f"Storage error: {err}")


def get_database_url() -> str:
    return os.getenv("RECORDS_DATABASE_URL") or DEFAULT_DATABASE_URL


def get_engine(url: Optional[str] = None) -> Engine:
    url = url or get_database_url()
    timeout = int(os.getenv("RECORDS_DB_TIMEOUT", TIMEOUT_SECONDS))
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout}

    engine = create_engine(
        url,
        connect_args=connect_args,
        echo=False,
        pool_pre_ping=True,
        poolclass=NullPool,
    )
    _register_error_logging(engine)
    return engine


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def get_session(engine: Optional[Engine] = None) -> Session:
    SessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine or get_engine()
    )
    return SessionLocal()
