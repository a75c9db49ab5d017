"""
Actor resolution: identity from the bearer token, capabilities from the
grants table.
"""

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from drd.kernel.identity.actor import Actor, UserRole
from drd.kernel.identity.jwt import AccessTokenPayload
from drd.kernel.permissions.permission_service import PermissionService
from drd.logging_config import get_logger

logger = get_logger(__name__)


class IdentityService:
    """Builds Actors for authenticated requests."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.permissions = PermissionService(session)

    async def resolve_actor(self, payload: AccessTokenPayload) -> Optional[Actor]:
        """Actor for a decoded token, or None if the token's claims are unusable."""
        try:
            actor_id = uuid.UUID(payload.sub)
            role = UserRole(payload.role)
        except ValueError:
            logger.warning(
                "Rejected token with malformed claims",
                extra={"sub": payload.sub, "role": payload.role},
            )
            return None

        capabilities = await self.permissions.get_capabilities(actor_id)
        return Actor(id=actor_id, uid=payload.uid, role=role, permissions=capabilities)
