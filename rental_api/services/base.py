from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from rental_api.core.errors import PersistenceConflict

logger = logging.getLogger(__name__)


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories. Writes happen inside unit_of_work() so each operation is a
    single commit or a full rollback.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        """
        Commit on success, roll back on any error.

        Optimistic version mismatches and history sequence collisions mean a
        concurrent writer got there first; they surface as PersistenceConflict.
        """
        try:
            yield
            await self.session.commit()
        except (StaleDataError, IntegrityError) as exc:
            await self.session.rollback()
            logger.warning("Concurrent modification detected: %s", exc)
            raise PersistenceConflict() from exc
        except BaseException:
            await self.session.rollback()
            raise
