"""Route Dependencies — actor identity, engine construction.

Invariants:
    - Actor identity is read from X-Actor-Id / X-Actor-Role, set by the auth
      gateway in front of this service; the service never issues credentials
    - Every engine is bound to the request-scoped DB session
    - The actor is bound to the logging context for the rest of the request
"""

from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.config import get_settings
from bloodmatch.core.domain_types import Actor, ActorRole
from bloodmatch.infrastructure.database import get_db
from bloodmatch.infrastructure.observability import bind_actor
from bloodmatch.services.matching import MatchingService
from bloodmatch.services.request_lifecycle import RequestLifecycleEngine


async def get_actor(
    x_actor_id: UUID = Header(...),
    x_actor_role: ActorRole = Header(...),
) -> Actor:
    bind_actor(x_actor_id, x_actor_role)
    return Actor(id=x_actor_id, role=x_actor_role)


async def get_engine(db: AsyncSession = Depends(get_db)) -> RequestLifecycleEngine:
    return RequestLifecycleEngine(db, get_settings())


async def get_matching(db: AsyncSession = Depends(get_db)) -> MatchingService:
    return MatchingService(db)
