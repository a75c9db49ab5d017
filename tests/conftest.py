"""
Pytest fixtures for DRD tests.

Integration tests run against a file-based SQLite database per test, so the
workflow engine's separate sessions (request and notifier) see the same data.
"""

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from drd.kernel.identity.actor import Actor, UserRole
from drd.kernel.models import Base
from drd.kernel.models.permission import AssignmentScope, Capability
from drd.kernel.permissions.permission_service import PermissionService

from tests.factories import make_actor


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Fresh SQLite file per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'drd_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def school_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def filer() -> Actor:
    return make_actor(
        UserRole.FACULTY,
        [Capability.IPR_FILE_NEW, Capability.RESEARCH_FILE_NEW, Capability.CONFERENCE_FILE_NEW],
    )


@pytest.fixture
def mentor() -> Actor:
    return make_actor(UserRole.FACULTY, uid="MENTOR01")


@pytest.fixture
def student_filer() -> Actor:
    return make_actor(UserRole.STUDENT, [Capability.IPR_FILE_NEW, Capability.RESEARCH_FILE_NEW])


@pytest.fixture
def reviewer() -> Actor:
    return make_actor(UserRole.STAFF, [Capability.IPR_REVIEW, Capability.RESEARCH_REVIEW])


@pytest.fixture
def head() -> Actor:
    return make_actor(UserRole.STAFF, [Capability.IPR_APPROVE, Capability.RESEARCH_APPROVE])


@pytest.fixture
def finance() -> Actor:
    return make_actor(UserRole.STAFF, [Capability.FINANCE_PROCESS])


@pytest.fixture
def admin() -> Actor:
    return make_actor(
        UserRole.ADMIN,
        [Capability.SYSTEM_OVERRIDE, Capability.INCENTIVE_POLICY_MANAGE],
    )


@pytest_asyncio.fixture
async def assigned_reviewer(db_session, reviewer, school_id) -> Actor:
    """Reviewer assigned to the test school for IPR and research."""
    service = PermissionService(db_session)
    await service.assign_school(reviewer.id, AssignmentScope.IPR, school_id)
    await service.assign_school(reviewer.id, AssignmentScope.RESEARCH, school_id)
    await db_session.commit()
    return reviewer
