"""
The authenticated caller as the workflow sees it.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet

from drd.kernel.models.permission import Capability


class UserRole(str, Enum):
    STUDENT = "student"
    FACULTY_MENTEE = "faculty_mentee"
    FACULTY = "faculty"
    STAFF = "staff"
    ADMIN = "admin"


# Filers in these roles go through mentor approval when they name a mentor
MENTORED_ROLES = frozenset({UserRole.STUDENT, UserRole.FACULTY_MENTEE})


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    uid: str
    role: UserRole
    permissions: FrozenSet[Capability] = field(default_factory=frozenset)

    def has(self, capability: Capability) -> bool:
        return capability in self.permissions

    @property
    def ref(self) -> str:
        return str(self.id)
