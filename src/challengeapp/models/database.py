from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import Base
from ..utils.logging import setup_logger

# Register every mapped table on Base.metadata
from . import challenge, enrollment  # noqa: F401

logger = setup_logger(__name__)

def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for one store-open. SQLite gets foreign keys enforced."""
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False)

def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    logger.info(f"Database initialized at {engine.url!r}")

def get_session(session_factory: sessionmaker) -> Iterator[Session]:
    with session_factory() as session:
        yield session

def check_db_connection(engine: Engine) -> bool:
    """Check if the database connection is working."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        return False
