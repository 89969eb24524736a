"""
Unit Tests for the Session Store
Tests for: field invariants, lookups, ordering and optimistic locking
"""
import pytest

from app.core.exceptions import (
    ConcurrencyConflictError,
    DepartmentNotFoundError,
    SessionNotFoundError,
    ValidationError,
)
from app.models.academic_session import AcademicSession, SessionStatus
from app.services.session_store import SessionStore, check_invariants


def _session(**overrides) -> AcademicSession:
    values = dict(
        start_year=2021,
        end_year=2025,
        current_semester=1,
        status=SessionStatus.ACTIVE,
        status_before_lock=None,
        intake_capacity=60,
        total_enrolled_students=0,
        enrollment_open=True,
    )
    values.update(overrides)
    return AcademicSession(**values)


class TestCheckInvariants:
    """Test field-level invariants enforced on every write"""

    def test_valid_session(self):
        check_invariants(_session())

    @pytest.mark.parametrize("semester", [0, 9, -1])
    def test_semester_range(self, semester):
        with pytest.raises(ValidationError) as exc_info:
            check_invariants(_session(current_semester=semester))

        assert exc_info.value.details["field"] == "currentSemester"

    def test_end_year_fixed(self):
        with pytest.raises(ValidationError):
            check_invariants(_session(end_year=2026))

    def test_enrolled_above_capacity(self):
        with pytest.raises(ValidationError):
            check_invariants(_session(intake_capacity=60, total_enrolled_students=61))

    def test_negative_enrollment(self):
        with pytest.raises(ValidationError):
            check_invariants(_session(total_enrolled_students=-1))

    def test_negative_capacity(self):
        with pytest.raises(ValidationError):
            check_invariants(_session(intake_capacity=-1))

    def test_completed_with_open_enrollment(self):
        with pytest.raises(ValidationError) as exc_info:
            check_invariants(_session(status=SessionStatus.COMPLETED, current_semester=8, enrollment_open=True))

        assert exc_info.value.details["field"] == "enrollmentOpen"

    def test_locked_needs_pre_lock_status(self):
        with pytest.raises(ValidationError):
            check_invariants(_session(status=SessionStatus.LOCKED))

    def test_pre_lock_status_only_while_locked(self):
        with pytest.raises(ValidationError):
            check_invariants(_session(status_before_lock=SessionStatus.UPCOMING))


class TestReads:
    """Test lookups and listings"""

    @pytest.mark.asyncio
    async def test_get_unknown(self, db_session):
        with pytest.raises(SessionNotFoundError) as exc_info:
            await SessionStore(db_session).get("missing-id")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "SESSION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_get_from_other_department(self, db_session, make_session, department, sibling_department):
        session = await make_session(department)

        with pytest.raises(SessionNotFoundError):
            await SessionStore(db_session).get(session.id, sibling_department.id)

    @pytest.mark.asyncio
    async def test_require_department_in_other_institute(self, db_session, foreign_department, institute):
        store = SessionStore(db_session)

        with pytest.raises(DepartmentNotFoundError):
            await store.require_department(foreign_department.id, institute.id)
        assert (await store.require_department(foreign_department.id)).id == foreign_department.id

    @pytest.mark.asyncio
    async def test_list_newest_first(self, db_session, make_session, department, sibling_department):
        for year in (2020, 2023, 2021):
            await make_session(department, start_year=year)
        await make_session(sibling_department, start_year=2022)

        sessions = await SessionStore(db_session).list_by_department(department.id)

        assert [s.start_year for s in sessions] == [2023, 2021, 2020]

    @pytest.mark.asyncio
    async def test_count_open(self, db_session, make_session, department):
        await make_session(department, start_year=2021)
        await make_session(department, start_year=2022, status=SessionStatus.UPCOMING)
        await make_session(
            department, start_year=2023,
            status=SessionStatus.LOCKED, status_before_lock=SessionStatus.ACTIVE,
        )

        assert await SessionStore(db_session).count_open(department.id) == 2

    @pytest.mark.asyncio
    async def test_exists(self, db_session, make_session, department):
        await make_session(department, start_year=2021)
        store = SessionStore(db_session)

        assert await store.exists(department.id, 2021) is True
        assert await store.exists(department.id, 2022) is False


class TestWrites:
    """Test versioned commits"""

    @pytest.mark.asyncio
    async def test_commit_bumps_version(self, db_session, make_session, department):
        session = await make_session(department)
        store = SessionStore(db_session)

        session.total_enrolled_students = 5
        await store.commit(session)

        assert session.version == 2

    @pytest.mark.asyncio
    async def test_invalid_change_is_rolled_back(self, db_session, make_session, department, reload):
        session = await make_session(department, intake_capacity=60)
        session_id = session.id
        store = SessionStore(db_session)

        session.total_enrolled_students = 61
        with pytest.raises(ValidationError):
            await store.commit(session)

        stored = await reload(session_id)
        assert stored.total_enrolled_students == 0
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_stale_write(self, session_factory, make_session, department, reload):
        """Test a write based on an old version raises ConcurrencyConflictError"""
        session = await make_session(department)
        session_id = session.id

        async with session_factory() as db_a, session_factory() as db_b:
            copy_a = await SessionStore(db_a).get(session_id)
            copy_b = await SessionStore(db_b).get(session_id)

            copy_a.total_enrolled_students = 10
            await SessionStore(db_a).commit(copy_a)

            copy_b.total_enrolled_students = 20
            with pytest.raises(ConcurrencyConflictError):
                await SessionStore(db_b).commit(copy_b)

        stored = await reload(session_id)
        assert stored.total_enrolled_students == 10
        assert stored.version == 2
