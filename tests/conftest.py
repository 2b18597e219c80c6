"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from teachmatch.main import ServiceContainer, app, get_services
from teachmatch.models import Base, SchoolProfile, TeacherProfile, TeachingRequest
from teachmatch.models.database import make_session_factory
from teachmatch.utils.security import generate_token


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test_teachmatch.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(
        async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)
    )


@pytest.fixture
def make_teacher(session_factory):
    """Insert a teacher profile and return its id."""

    async def _make_teacher(
        full_name: str = "Test Teacher",
        subjects: Optional[List[str]] = None,
        avg_rating: float = 4.0,
        teaching_grade: int = 8,
        experience_years: int = 5,
        qualifications: Optional[List[str]] = None,
        teacher_id: Optional[uuid.UUID] = None,
    ) -> uuid.UUID:
        teacher = TeacherProfile(
            id=teacher_id or uuid.uuid4(),
            full_name=full_name,
            email=f"{full_name.lower().replace(' ', '.')}@springfield-elementary.org",
            qualifications=qualifications or ["B.Ed"],
            experience_years=experience_years,
            teaching_grade=teaching_grade,
            avg_rating=avg_rating,
            review_count=0,
            subject_rows=[],
        )
        teacher.set_subjects(subjects if subjects is not None else ["Math"])
        async with session_factory() as session:
            session.add(teacher)
        return teacher.id

    return _make_teacher


@pytest.fixture
def make_school(session_factory):
    """Insert a school profile and return its id."""

    async def _make_school(school_name: str = "Springfield Elementary") -> uuid.UUID:
        school = SchoolProfile(
            id=uuid.uuid4(),
            school_name=school_name,
            email="office@springfield-elementary.org",
        )
        async with session_factory() as session:
            session.add(school)
        return school.id

    return _make_school


@pytest.fixture
def load_request(session_factory):
    """Read a teaching request back from the database."""

    async def _load(request_id: uuid.UUID) -> Optional[TeachingRequest]:
        async with session_factory() as session:
            return await session.get(TeachingRequest, request_id)

    return _load


@pytest.fixture
def services(session_factory) -> ServiceContainer:
    return ServiceContainer.build(session_factory)


@pytest_asyncio.fixture
async def client(services):
    """HTTP client against the app, wired to the test database."""
    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer header for a given user id."""

    def _headers(user_id: uuid.UUID) -> Dict[str, str]:
        return {"Authorization": f"Bearer {generate_token({'sub': str(user_id)})}"}

    return _headers


@pytest.fixture
def schedule() -> Dict[str, str]:
    return {"date": "2030-03-14", "time": "09:30"}


@pytest.fixture
def now() -> datetime:
    return datetime(2030, 3, 1, 8, 0, 0)
