"""
Doll Pin API: Database Session Management
===========================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   A `Database` object owns one engine and one session factory. It is
       created in the application lifespan, stored on `app.state.database`,
       and disposed on shutdown. Routes receive sessions through the
       `get_db_session` dependency; services receive the session as an
       argument and commit their own single write.
Who:   main.py (lifecycle), routes (dependency), tests (direct use).

Connection Pooling:
    PostgreSQL (asyncpg): pool_size / max_overflow / pre_ping from settings,
    connections recycled hourly.
    SQLite (aiosqlite): SQLAlchemy's default pool for the dialect; pool
    arguments are not passed.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


class Database:
    """
    Process-wide handle on the doll store.

    Lifecycle:
        db = Database(url)
        db.connect()              # builds engine + session factory
        await db.create_schema()  # optional, idempotent
        ...
        await db.dispose()        # closes pooled connections
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or settings.database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def connect(self) -> AsyncEngine:
        """Create the engine and session factory. Safe to call twice."""
        if self.engine is not None:
            return self.engine

        engine_kwargs = {"echo": self.echo}
        if not self.is_sqlite:
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=settings.db_pool_pre_ping,
                pool_recycle=3600,
            )

        self.engine = create_async_engine(self.database_url, **engine_kwargs)

        # expire_on_commit=False: services build responses from the ORM
        # object after commit without another round-trip
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine created (dialect=%s)", self.engine.dialect.name)
        return self.engine

    async def create_schema(self) -> None:
        """Create all tables registered on Base.metadata (no-op for existing tables)."""
        # Import registers the model on Base.metadata
        from app.models.doll import Doll  # noqa: F401

        engine = self.connect()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def ping(self) -> bool:
        """Lightweight connectivity check used by GET /health."""
        if self.engine is None:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session that is rolled back on error and always closed.

        Services commit explicitly, so nothing is committed here.
        """
        if self.session_factory is None:
            self.connect()
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        """Close all pooled connections. Called from the lifespan shutdown."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed")
        self.engine = None
        self.session_factory = None


# ── Session Dependency ────────────────────────────────────────────────────
def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Example usage in a route:
        @router.get("/dolls")
        async def list_dolls(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    database = get_database(request)
    async with database.session() as session:
        yield session
