"""
DepotPlan Database Session Management

One engine builder shared by the API and the one-shot runners (Celery
tasks, scripts). One-shot runs skip connection pooling.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""

    pass


def build_engine(database_url: str, echo: bool = False, pooled: bool = True) -> AsyncEngine:
    """Async engine for `database_url`. Workers pass pooled=False for short-lived runs."""
    options: dict = {"echo": echo}
    if not pooled:
        options["poolclass"] = NullPool
    elif make_url(database_url).get_backend_name() != "sqlite":
        options.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    return create_async_engine(database_url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


settings = get_settings()

engine = build_engine(settings.database_url, echo=settings.database_echo)
AsyncSessionLocal = build_session_factory(engine)
