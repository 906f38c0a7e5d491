"""
Bazaar Reputation Database Session Management

One engine and session factory for the API process. Workers build their own
engine per task run (each run owns an event loop) through the same helpers.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from core.config import get_settings


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async engine. Pool sizing only applies to server databases."""
    settings = get_settings()
    url = make_url(database_url or settings.database_url)
    options = {"echo": settings.database_echo}
    if url.get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Ledger rows stay readable after commit (notifications, API responses)
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass
