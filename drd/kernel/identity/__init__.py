"""
Identity Core - token decoding and the Actor type.

IdentityService lives in drd.kernel.identity.identity_service; it depends on
the permission core, which itself imports Actor from here.
"""

from drd.kernel.identity.actor import Actor, UserRole, MENTORED_ROLES
from drd.kernel.identity.jwt import (
    JWTManager,
    AccessTokenPayload,
    create_access_token,
    verify_access_token,
)

__all__ = [
    "Actor",
    "UserRole",
    "MENTORED_ROLES",
    "JWTManager",
    "AccessTokenPayload",
    "create_access_token",
    "verify_access_token",
]
