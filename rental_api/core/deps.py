from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from rental_api.core.logging import actor_id_var
from rental_api.core.security import decode_token, verify_cron_secret
from rental_api.db.session import get_async_session
from rental_api.domain.enums import ActorRole
from rental_api.domain.lifecycle import Actor
from rental_api.services.notifications import NotificationDispatcher, get_dispatcher
from rental_api.services.scheduler import ScheduledTransitionRunner

logger = logging.getLogger(__name__)

# Tokens are issued by the external identity provider.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


# PUBLIC_INTERFACE
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped AsyncSession."""
    async for session in get_async_session():
        yield session


# PUBLIC_INTERFACE
def get_notification_dispatcher() -> NotificationDispatcher:
    """Return the process-wide notification dispatcher."""
    return get_dispatcher()


# PUBLIC_INTERFACE
def get_transition_runner(
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ScheduledTransitionRunner:
    """Scheduler bound to the global session factory and dispatcher."""
    return ScheduledTransitionRunner(dispatcher=dispatcher)


# PUBLIC_INTERFACE
async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """
    Resolve the calling actor from the Authorization bearer token.

    The token must carry 'sub' (actor UUID) and 'role' (one of ActorRole).
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        actor = Actor(id=UUID(str(payload.get("sub"))), role=ActorRole(payload.get("role")))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")

    actor_id_var.set(str(actor.id))
    return actor


# PUBLIC_INTERFACE
def require_roles(*required: ActorRole):
    """
    Create a dependency that requires the current actor to hold one of the given roles.
    Returns the actor so routes can pass it on to services.
    """
    required_set = set(required)

    async def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in required_set:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return actor

    return _dep


# PUBLIC_INTERFACE
async def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Reject scheduler calls that do not present the shared cron secret."""
    if not verify_cron_secret(authorization):
        logger.warning("Rejected cron invocation with missing or wrong secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
