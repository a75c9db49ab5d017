"""
Permission Core - capability grants and reviewer school assignments.
"""

from drd.kernel.permissions.permission_service import PermissionService

__all__ = [
    "PermissionService",
]
