# This project was developed with assistance from AI tools.
"""Shared fixtures: a real async engine on a temporary SQLite file plus the
workflow services wired to a controllable clock.

Each test gets a fresh database file, so conditional updates, concurrent
sessions and commit ordering behave as they do against a real server.
"""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from db import DatabaseService
from db.enums import UserRole
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from eservice.services.notification import ConnectionManager, NotificationService
from eservice.services.overdue import OverdueSweep
from eservice.services.task_assignment import TaskAssignmentService
from eservice.services.transition_table import build_transition_table
from eservice.services.workflow import WorkflowTransitionService
from tests.factories import make_user

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'workflow.db'}",
        connect_args={"timeout": 30},
    )
    await DatabaseService(eng).create_all()
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def notifications(manager, clock):
    return NotificationService(manager, clock=clock)


@pytest.fixture
def tasks(notifications, clock):
    return TaskAssignmentService(notifications, clock=clock)


@pytest.fixture
def table():
    return build_transition_table()


@pytest.fixture
def workflow(table, notifications, tasks, clock):
    return WorkflowTransitionService(table, notifications, tasks, clock=clock)


@pytest.fixture
def sweep(workflow, clock):
    return OverdueSweep(workflow, clock=clock)


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def users(session):
    """One account per role, plus a second staff member for reassignment."""
    cast = {
        "applicant": ("user-1", UserRole.USER),
        "admin": ("admin-1", UserRole.ADMIN),
        "head": ("head-1", UserRole.DEDE_HEAD),
        "staff": ("staff-1", UserRole.DEDE_STAFF),
        "staff2": ("staff-2", UserRole.DEDE_STAFF),
        "consult": ("consult-1", UserRole.DEDE_CONSULT),
    }
    return {key: await make_user(session, uid, role) for key, (uid, role) in cast.items()}
