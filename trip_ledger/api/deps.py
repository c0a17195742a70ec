import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as forwarded by the gateway in front of this service."""
    id: str
    organization_id: Optional[str] = None


async def get_current_actor(
    x_actor_id: Annotated[Optional[str], Header()] = None,
    x_organization_id: Annotated[Optional[str], Header()] = None,
) -> Actor:
    if not x_actor_id or not x_actor_id.strip():
        logger.warning("Rejected request without X-Actor-Id")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor identity")
    return Actor(id=x_actor_id.strip(), organization_id=(x_organization_id or "").strip() or None)


ActorDep = Annotated[Actor, Depends(get_current_actor)]


async def get_actor_id(actor: ActorDep) -> str:
    return actor.id


ActorIdDep = Annotated[str, Depends(get_actor_id)]
