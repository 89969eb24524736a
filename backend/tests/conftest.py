"""
Session Lifecycle - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Dict, Any
import pytest
from dateutil.relativedelta import relativedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment
os.environ['TESTING'] = 'true'
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DEBUG'] = 'false'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'

from app.main import app
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.core.types import generate_uuid
from app.models.academic_session import AcademicSession, SessionStatus
from app.models.institute import Institute, Department
from app.schemas.auth import Actor, ActorRole
from app.services.session_store import SessionStore

fake = Faker()


class FrozenClock:
    """Clock the services can be handed instead of utcnow"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + relativedelta(**kwargs)
        return self.now


# ==================== Database ====================

@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite per test so several AsyncSessions can share it"""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}",
        poolclass=NullPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def reload(session_factory) -> Callable:
    """Read a session back through a brand-new database session"""
    async def _reload(session_id: str) -> AcademicSession:
        async with session_factory() as session:
            return await SessionStore(session).get(session_id)
    return _reload


@pytest.fixture
def snapshot() -> Callable:
    """Every stored column of a session plus its audit trail"""
    def _snapshot(session: AcademicSession) -> Dict[str, Any]:
        values = {column.key: getattr(session, column.key) for column in AcademicSession.__table__.columns}
        values["promotion_log"] = [
            (entry.sequence, entry.reason, entry.from_semester, entry.to_semester)
            for entry in session.promotion_log
        ]
        return values
    return _snapshot


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc))


# ==================== Directory ====================

async def _make_department(db: AsyncSession, institute: Institute, is_active: bool = True) -> Department:
    department = Department(
        institute_id=institute.id,
        name=fake.job(),
        code=fake.unique.lexify("???").upper(),
        is_active=is_active,
    )
    db.add(department)
    await db.commit()
    return department


@pytest.fixture
async def institute(db_session: AsyncSession) -> Institute:
    institute = Institute(name=fake.company(), code=fake.unique.lexify("INST????").upper())
    db_session.add(institute)
    await db_session.commit()
    return institute


@pytest.fixture
async def other_institute(db_session: AsyncSession) -> Institute:
    institute = Institute(name=fake.company(), code=fake.unique.lexify("INST????").upper())
    db_session.add(institute)
    await db_session.commit()
    return institute


@pytest.fixture
async def department(db_session: AsyncSession, institute: Institute) -> Department:
    return await _make_department(db_session, institute)


@pytest.fixture
async def sibling_department(db_session: AsyncSession, institute: Institute) -> Department:
    """Second department of the same institute"""
    return await _make_department(db_session, institute)


@pytest.fixture
async def foreign_department(db_session: AsyncSession, other_institute: Institute) -> Department:
    """Department belonging to another institute"""
    return await _make_department(db_session, other_institute)


@pytest.fixture
async def inactive_department(db_session: AsyncSession, institute: Institute) -> Department:
    """Department of the same institute that no longer takes intakes"""
    return await _make_department(db_session, institute, is_active=False)


# ==================== Actors ====================

@pytest.fixture
def principal(institute: Institute) -> Actor:
    return Actor(id=generate_uuid(), role=ActorRole.PRINCIPAL, institute_id=institute.id)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=generate_uuid(), role=ActorRole.ADMIN)


@pytest.fixture
def hod(institute: Institute, department: Department) -> Actor:
    return Actor(
        id=generate_uuid(),
        role=ActorRole.HOD,
        institute_id=institute.id,
        department_id=department.id,
    )


@pytest.fixture
def faculty(institute: Institute) -> Actor:
    return Actor(id=generate_uuid(), role=ActorRole.FACULTY, institute_id=institute.id)


def headers_for(actor: Actor) -> dict:
    token_data = {
        'sub': actor.id,
        'role': actor.role.value,
        'institute_id': actor.institute_id,
        'department_id': actor.department_id,
    }
    token = create_access_token(token_data)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def principal_headers(principal: Actor) -> dict:
    return headers_for(principal)


@pytest.fixture
def admin_headers(admin: Actor) -> dict:
    return headers_for(admin)


@pytest.fixture
def hod_headers(hod: Actor) -> dict:
    return headers_for(hod)


@pytest.fixture
def faculty_headers(faculty: Actor) -> dict:
    return headers_for(faculty)


# ==================== Sessions ====================

@pytest.fixture
def make_session(db_session: AsyncSession, clock: FrozenClock) -> Callable:
    """
    Insert a session directly, bypassing the engine.

    Lets tests start from states that would take many commands to reach
    (semester 8, locked, nearly full).
    """
    async def _make(department: Department, **overrides) -> AcademicSession:
        start_year = overrides.pop("start_year", 2021)
        values = dict(
            id=generate_uuid(),
            department_id=department.id,
            institute_id=department.institute_id,
            start_year=start_year,
            end_year=start_year + 4,
            current_semester=1,
            status=SessionStatus.ACTIVE,
            status_before_lock=None,
            intake_capacity=60,
            total_enrolled_students=0,
            enrollment_open=True,
            next_promotion_date=clock.now + relativedelta(months=6),
            created_by=generate_uuid(),
            created_at=clock.now,
            updated_at=clock.now,
            promotion_log=[],
        )
        values.update(overrides)
        session = AcademicSession(**values)
        db_session.add(session)
        await db_session.commit()
        return session
    return _make


# ==================== HTTP ====================

@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[Actor], dict]:
    """Build bearer headers for an arbitrary actor"""
    return headers_for
