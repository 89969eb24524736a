"""
Session Store - durable record of academic sessions

Handles:
- Reads (single session, per-department and per-institute listings, rollups)
- Writes with field-level invariant checks
- Translating optimistic-lock and unique-key failures into lifecycle errors

Reads never lock; every write goes through ``add`` or ``commit``.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from typing import Optional, List, Tuple

from app.core.exceptions import (
    ConcurrencyConflictError,
    DepartmentNotFoundError,
    DuplicateSessionError,
    SessionNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.academic_session import (
    AcademicSession,
    SessionStatus,
    PROGRAM_DURATION_YEARS,
    TOTAL_SEMESTERS,
)
from app.models.institute import Department


# Statuses that count towards a department's open-session limit
OPEN_STATUSES = (SessionStatus.UPCOMING, SessionStatus.ACTIVE)


def check_invariants(session: AcademicSession) -> None:
    """Raise ValidationError if the session's fields are inconsistent"""
    if session.end_year != session.start_year + PROGRAM_DURATION_YEARS:
        raise ValidationError(
            f"End year must be start year + {PROGRAM_DURATION_YEARS}", field="endYear"
        )
    if not 1 <= session.current_semester <= TOTAL_SEMESTERS:
        raise ValidationError(
            f"Current semester must be between 1 and {TOTAL_SEMESTERS}", field="currentSemester"
        )
    if session.intake_capacity < 0:
        raise ValidationError("Intake capacity cannot be negative", field="intakeCapacity")
    if not 0 <= session.total_enrolled_students <= session.intake_capacity:
        raise ValidationError(
            "Enrolled students must be between 0 and the intake capacity",
            field="totalEnrolledStudents",
        )

    status = SessionStatus(session.status)
    if status == SessionStatus.COMPLETED and session.enrollment_open:
        raise ValidationError("Completed sessions cannot have open enrollment", field="enrollmentOpen")
    if (status == SessionStatus.LOCKED) != (session.status_before_lock is not None):
        raise ValidationError("Pre-lock status is only kept while locked", field="status")


class SessionStore:
    """Persistence interface for academic sessions"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== DIRECTORY ====================

    async def get_department(
        self,
        department_id: str,
        institute_id: Optional[str] = None,
        active_only: bool = False
    ) -> Optional[Department]:
        """Get a department, optionally only if it belongs to ``institute_id`` and is active"""
        query = select(Department).where(Department.id == department_id)
        if institute_id:
            query = query.where(Department.institute_id == institute_id)
        if active_only:
            query = query.where(Department.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def require_department(
        self,
        department_id: str,
        institute_id: Optional[str] = None
    ) -> Department:
        department = await self.get_department(department_id, institute_id)
        if not department:
            raise DepartmentNotFoundError(department_id)
        return department

    # ==================== READS ====================

    async def find(self, session_id: str) -> Optional[AcademicSession]:
        """Get a session by ID, refreshing any copy already in the identity map"""
        result = await self.db.execute(
            select(AcademicSession)
            .where(AcademicSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, session_id: str, department_id: Optional[str] = None) -> AcademicSession:
        """Get a session, raising SessionNotFoundError if missing or in another department"""
        session = await self.find(session_id)
        if not session or (department_id and session.department_id != department_id):
            raise SessionNotFoundError(session_id)
        return session

    async def list_by_department(
        self,
        department_id: str,
        status: Optional[SessionStatus] = None
    ) -> List[AcademicSession]:
        """Sessions of one department, newest intake first"""
        query = select(AcademicSession).where(AcademicSession.department_id == department_id)
        if status:
            query = query.where(AcademicSession.status == status)
        result = await self.db.execute(
            query.order_by(AcademicSession.start_year.desc())
        )
        return list(result.scalars().all())

    async def list_by_institute(self, institute_id: Optional[str] = None) -> List[AcademicSession]:
        """Sessions of an institute (all institutes when None), by department then newest first"""
        query = select(AcademicSession)
        if institute_id:
            query = query.where(AcademicSession.institute_id == institute_id)
        result = await self.db.execute(
            query.order_by(AcademicSession.department_id, AcademicSession.start_year.desc())
        )
        return list(result.scalars().all())

    async def count_open(self, department_id: str) -> int:
        result = await self.db.execute(
            select(func.count(AcademicSession.id)).where(
                AcademicSession.department_id == department_id,
                AcademicSession.status.in_(OPEN_STATUSES),
            )
        )
        return result.scalar() or 0

    async def exists(self, department_id: str, start_year: int) -> bool:
        """Whether the department already has a session for this intake year"""
        result = await self.db.execute(
            select(func.count(AcademicSession.id)).where(
                AcademicSession.department_id == department_id,
                AcademicSession.start_year == start_year,
            )
        )
        return (result.scalar() or 0) > 0

    async def status_rollup(
        self,
        institute_id: Optional[str] = None
    ) -> List[Tuple[SessionStatus, int, int, int]]:
        """
        Per-status rollup computed by the database.

        Returns:
            Rows of (status, session count, enrolled students, intake capacity)
        """
        query = select(
            AcademicSession.status,
            func.count(AcademicSession.id),
            func.coalesce(func.sum(AcademicSession.total_enrolled_students), 0),
            func.coalesce(func.sum(AcademicSession.intake_capacity), 0),
        )
        if institute_id:
            query = query.where(AcademicSession.institute_id == institute_id)
        result = await self.db.execute(query.group_by(AcademicSession.status))
        return [
            (SessionStatus(status), int(count), int(students), int(capacity))
            for status, count, students, capacity in result.all()
        ]

    # ==================== WRITES ====================

    async def add(self, session: AcademicSession) -> AcademicSession:
        """Insert a new session"""
        check_invariants(session)
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(
                f"Duplicate session for department {session.department_id} year {session.start_year}"
            )
            raise DuplicateSessionError(session.department_id, session.start_year)
        return session

    async def commit(self, session: AcademicSession) -> AcademicSession:
        """
        Persist changes made to a loaded session.

        The UPDATE is guarded by the session's version; any pending audit
        entries go out in the same transaction.

        Raises:
            ValidationError: the changes would break a field invariant
            ConcurrencyConflictError: another writer committed first
        """
        session_id = session.id
        try:
            check_invariants(session)
        except ValidationError:
            await self.db.rollback()
            raise

        try:
            await self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            # IntegrityError here is a lost race on the promotion log sequence
            await self.db.rollback()
            logger.warning(
                f"Concurrent write on session {session_id}: {type(e).__name__}"
            )
            raise ConcurrencyConflictError(session_id)
        return session
