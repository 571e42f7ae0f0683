"""
DepotPlan API Dependencies

Dependency injection for DB sessions and list pagination.
"""

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass

from fastapi import Query
from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@dataclass(frozen=True)
class Page:
    skip: int
    limit: int

    def apply(self, query: Select) -> Select:
        return query.offset(self.skip).limit(self.limit)


def paginate(default_limit: int = 50, max_limit: int = 200) -> Callable[..., Page]:
    """skip/limit query parameters with per-endpoint bounds."""

    def _page(
        skip: int = Query(0, ge=0),
        limit: int = Query(default_limit, ge=1, le=max_limit),
    ) -> Page:
        return Page(skip=skip, limit=limit)

    return _page
