"""
Database handle and session management.

The engine is not created at import time. A ``Database`` is opened by the
application lifespan, stored on ``app.state.database`` and disposed at
shutdown; route handlers receive sessions through the ``get_db`` dependency.
"""

import logging
import os
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./flowboard.db")
DATABASE_ECHO = os.environ.get("DATABASE_ECHO", "false").lower() in ("1", "true", "yes")


class Base(DeclarativeBase):
    pass


class Database:
    """Owns the engine and session factory for one process."""

    def __init__(self, url: str = DATABASE_URL, echo: bool = DATABASE_ECHO, engine: Optional[Engine] = None):
        self.url = url
        if engine is None:
            connect_args = {}
            engine_kwargs = {}
            if url.startswith("sqlite"):
                # SQLite connections are shared across FastAPI's worker threads
                connect_args["check_same_thread"] = False
                if url in ("sqlite://", "sqlite:///:memory:"):
                    engine_kwargs["poolclass"] = StaticPool
            else:
                engine_kwargs["pool_pre_ping"] = True
            engine = create_engine(url, echo=echo, connect_args=connect_args, **engine_kwargs)
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def create_all(self) -> None:
        """Create missing tables. There is no migration tooling."""
        # Import here so every model is registered on Base.metadata
        from flowboard import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.debug(f"Tables ensured for {self.engine.url.render_as_string(hide_password=True)}")

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database engine disposed")


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a session bound to the application's database handle."""
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
