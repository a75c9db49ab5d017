"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from drd.config import get_settings
from drd.database import async_session_maker, get_db
from drd.kernel.identity.actor import Actor
from drd.kernel.identity.identity_service import IdentityService
from drd.kernel.identity.jwt import verify_access_token
from drd.kernel.models.permission import Capability
from drd.logging_config import bind_actor
from drd.orchestration.errors import PermissionDenied
from drd.orchestration.notifications import DatabaseNotifier, Notifier
from drd.orchestration.state_machine import WorkflowEngine


# Security scheme
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> Actor:
    """Actor for the bearer token, with capabilities loaded from the grants table."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = await IdentityService(db).resolve_actor(payload)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
            headers={"WWW-Authenticate": "Bearer"},
        )
    bind_actor(actor.ref)
    return actor


CurrentActor = Annotated[Actor, Depends(get_current_actor)]


def get_notifier() -> Notifier:
    """Notifier used by the workflow engine; writes in its own session."""
    return DatabaseNotifier(async_session_maker)


async def get_engine(
    db: DbSession,
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> WorkflowEngine:
    return WorkflowEngine(
        db,
        notifier=notifier,
        missing_policy_mode=get_settings().incentive_missing_policy_mode,
    )


Engine = Annotated[WorkflowEngine, Depends(get_engine)]


class CapabilityChecker:
    """
    Dependency class requiring a fixed capability.

    Usage:
        @router.post("/policies")
        async def create_policy(
            actor: Annotated[Actor, Depends(CapabilityChecker(Capability.INCENTIVE_POLICY_MANAGE))],
            ...
        ):
    """

    def __init__(self, capability: Capability):
        self.capability = capability

    async def __call__(self, actor: CurrentActor) -> Actor:
        if not actor.has(self.capability):
            raise PermissionDenied(
                f"Missing capability {self.capability.value}",
                details={"required": self.capability.value},
            )
        return actor


PolicyManager = Annotated[Actor, Depends(CapabilityChecker(Capability.INCENTIVE_POLICY_MANAGE))]
OverrideActor = Annotated[Actor, Depends(CapabilityChecker(Capability.SYSTEM_OVERRIDE))]
