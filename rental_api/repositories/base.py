from __future__ import annotations

from typing import Any, Iterable, List, Optional

from sqlalchemy import Executable
from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """
    Shared query helpers for the order, pricing, scan and ledger repositories.

    Repositories never commit. The calling service owns the unit of work, so a
    status change, its history row and any pricing fields land together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def first(self, statement: Executable) -> Optional[Any]:
        """Single entity (or column value) or None."""
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def all(self, statement: Executable) -> List[Any]:
        result = await self.session.execute(statement)
        return list(result.scalars())

    async def scalar(self, statement: Executable) -> Any:
        """Value of an aggregate query that always returns one row."""
        result = await self.session.execute(statement)
        return result.scalar_one()

    async def flush(self) -> None:
        """Flush pending rows so constraint violations surface inside the service."""
        await self.session.flush()

    async def add(self, entity: Any) -> None:
        self.session.add(entity)

    async def add_all(self, entities: Iterable[Any]) -> None:
        self.session.add_all(list(entities))
