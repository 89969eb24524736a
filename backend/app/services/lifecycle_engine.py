"""
Lifecycle Engine - commands that move academic sessions through their states

State machine:
    upcoming -> active -> ... (semesters 1..8) ... -> completed
    upcoming/active <-> locked

Every command validates against the stored state before touching it, so a
refused command leaves the session exactly as it was. Promotions append
their audit entry in the same versioned transaction as the field changes.

The engine records the actor it is given but never decides permissions.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Callable, Optional

from app.core.config import settings
from app.core.exceptions import DuplicateSessionError, StateConflictError, ValidationError
from app.core.logging_config import logger
from app.core.types import generate_uuid, utcnow
from app.models.academic_session import (
    AcademicSession,
    PromotionLogEntry,
    PromotionSource,
    SessionStatus,
    PROGRAM_DURATION_YEARS,
    TOTAL_SEMESTERS,
)
from app.schemas.auth import Actor
from app.services.enrollment_tracker import EnrollmentTracker
from app.services.lifecycle_rules import (
    Command,
    apply_transition,
    derive_overdue,
    ensure_command_allowed,
    next_promotion_date,
    rejections_logged,
)
from app.services.session_store import OPEN_STATUSES, SessionStore


# Statuses a session may be created in
INITIAL_STATUSES = (SessionStatus.UPCOMING, SessionStatus.ACTIVE)


class LifecycleEngine:
    """Service for session creation, holds and semester promotion"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.store = SessionStore(db)
        self.enrollment = EnrollmentTracker(db, store=self.store, clock=clock)

    # ==================== CREATE ====================

    async def create_session(
        self,
        department_id: str,
        start_year: int,
        actor: Actor,
        intake_capacity: Optional[int] = None,
        status: Optional[SessionStatus] = None
    ) -> AcademicSession:
        """
        Approve a new intake for a department.

        Raises:
            ValidationError: bad year, capacity or status, or unknown department
            StateConflictError: department already has its limit of open sessions
            DuplicateSessionError: a session for ``start_year`` already exists
        """
        with rejections_logged("create", None):
            if not settings.MIN_START_YEAR <= start_year <= settings.MAX_START_YEAR:
                raise ValidationError(
                    f"Start year must be between {settings.MIN_START_YEAR} and {settings.MAX_START_YEAR}",
                    field="startYear",
                )

            initial_status = SessionStatus(status) if status else SessionStatus.UPCOMING
            if initial_status not in INITIAL_STATUSES:
                raise ValidationError(
                    "New sessions must start as upcoming or active", field="status"
                )

            capacity = settings.DEFAULT_INTAKE_CAPACITY if intake_capacity is None else intake_capacity
            self.enrollment.validate_capacity(capacity, minimum=1)

            # Departments of other institutes are unknown to the caller
            department = await self.store.get_department(
                department_id, actor.institute_id, active_only=True
            )
            if not department:
                raise ValidationError(
                    f"Unknown or inactive department '{department_id}'", field="departmentId"
                )

            await self._ensure_open_slot(department.id)

            if await self.store.exists(department.id, start_year):
                raise DuplicateSessionError(department.id, start_year)

            now = self.clock()
            session = AcademicSession(
                id=generate_uuid(),
                department_id=department.id,
                institute_id=department.institute_id,
                start_year=start_year,
                end_year=start_year + PROGRAM_DURATION_YEARS,
                current_semester=1,
                status=initial_status,
                status_before_lock=None,
                intake_capacity=capacity,
                total_enrolled_students=0,
                enrollment_open=True,
                next_promotion_date=next_promotion_date(now, settings.PROMOTION_INTERVAL_MONTHS),
                created_by=actor.id,
                created_at=now,
                updated_at=now,
                promotion_log=[],
            )
            await self.store.add(session)

        logger.log_transition(
            "create", session.id, actor.id,
            from_status=None, to_status=initial_status.value,
            from_semester=None, to_semester=1,
            department_id=department.id, start_year=start_year,
        )
        return session

    # ==================== HOLDS ====================

    async def activate(
        self,
        session_id: str,
        actor: Actor,
        department_id: Optional[str] = None
    ) -> AcademicSession:
        """upcoming -> active"""
        with rejections_logged(Command.ACTIVATE.value, session_id):
            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.ACTIVATE)
            from_status = apply_transition(session, SessionStatus.ACTIVE)
            session.updated_at = self.clock()
            await self.store.commit(session)

        self._log(Command.ACTIVATE, session, actor, from_status)
        return session

    async def lock(
        self,
        session_id: str,
        actor: Actor,
        department_id: Optional[str] = None
    ) -> AcademicSession:
        """Put an administrative hold on an upcoming or active session"""
        with rejections_logged(Command.LOCK.value, session_id):
            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.LOCK)
            from_status = apply_transition(session, SessionStatus.LOCKED)
            session.status_before_lock = from_status
            session.updated_at = self.clock()
            await self.store.commit(session)

        self._log(Command.LOCK, session, actor, from_status)
        return session

    async def unlock(
        self,
        session_id: str,
        actor: Actor,
        department_id: Optional[str] = None
    ) -> AcademicSession:
        """
        Lift the hold, returning to the status held before locking (active if unknown).

        Raises:
            StateConflictError: not locked, or restoring it would exceed the
                department's open-session limit
        """
        with rejections_logged(Command.UNLOCK.value, session_id):
            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.UNLOCK)
            restore_to = SessionStatus(session.status_before_lock or SessionStatus.ACTIVE)
            if restore_to in OPEN_STATUSES:
                await self._ensure_open_slot(session.department_id)
            from_status = apply_transition(session, restore_to)
            session.status_before_lock = None
            session.updated_at = self.clock()
            await self.store.commit(session)

        self._log(Command.UNLOCK, session, actor, from_status)
        return session

    async def close_enrollment(
        self,
        session_id: str,
        actor: Actor,
        department_id: Optional[str] = None
    ) -> AcademicSession:
        """Stop accepting enrollments. Closing an already closed window is a no-op."""
        with rejections_logged(Command.CLOSE_ENROLLMENT.value, session_id):
            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.CLOSE_ENROLLMENT)
            if not self.enrollment.close_window(session):
                return session
            session.updated_at = self.clock()
            await self.store.commit(session)

        self._log(Command.CLOSE_ENROLLMENT, session, actor, SessionStatus(session.status))
        return session

    # ==================== PROMOTION ====================

    async def promote_semester(
        self,
        session_id: str,
        reason: str,
        actor: Actor,
        department_id: Optional[str] = None,
        source: PromotionSource = PromotionSource.MANUAL
    ) -> AcademicSession:
        """
        Advance an active session by one semester, or graduate it from the last one.

        Graduation sets the session to completed, closes enrollment and
        keeps ``current_semester`` at the final semester.

        Raises:
            ValidationError: reason blank or too long
            StateConflictError: session is not active
            ConcurrencyConflictError: another writer changed the session first;
                re-read it before deciding whether to promote again
        """
        with rejections_logged(Command.PROMOTE.value, session_id):
            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("A reason is required to promote a session", field="reason")
            if len(reason) > settings.PROMOTION_REASON_MAX_LENGTH:
                raise ValidationError(
                    f"Reason cannot exceed {settings.PROMOTION_REASON_MAX_LENGTH} characters",
                    field="reason",
                )

            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.PROMOTE)

            now = self.clock()
            from_status = SessionStatus(session.status)
            from_semester = session.current_semester
            graduated = from_semester + 1 > TOTAL_SEMESTERS

            if graduated:
                apply_transition(session, SessionStatus.COMPLETED)
                self.enrollment.close_window(session)
            else:
                session.current_semester = from_semester + 1
                session.next_promotion_date = next_promotion_date(
                    now, settings.PROMOTION_INTERVAL_MONTHS
                )

            session.promotion_log.append(PromotionLogEntry(
                id=generate_uuid(),
                sequence=len(session.promotion_log) + 1,
                reason=reason,
                actor_id=actor.id,
                actor_role=actor.role.value,
                source=PromotionSource(source).value,
                from_semester=from_semester,
                to_semester=session.current_semester,
                graduated=graduated,
                timestamp=now,
            ))
            session.updated_at = now
            await self.store.commit(session)

        self._log(
            Command.PROMOTE, session, actor, from_status,
            from_semester=from_semester, graduated=graduated, source=PromotionSource(source).value,
        )
        return session

    # ==================== DERIVED ====================

    def derive_overdue(self, session: AcademicSession, now: Optional[datetime] = None) -> bool:
        """Overdue check against the engine's clock unless ``now`` is given"""
        return derive_overdue(session, now or self.clock())

    def _log(
        self,
        command: Command,
        session: AcademicSession,
        actor: Actor,
        from_status: SessionStatus,
        from_semester: Optional[int] = None,
        **kwargs
    ) -> None:
        logger.log_transition(
            command.value, session.id, actor.id,
            from_status=SessionStatus(from_status).value,
            to_status=SessionStatus(session.status).value,
            from_semester=from_semester if from_semester is not None else session.current_semester,
            to_semester=session.current_semester,
            **kwargs
        )

    async def _ensure_open_slot(self, department_id: str) -> None:
        """Refuse a create or unlock that would exceed the department's open-session limit"""
        open_sessions = await self.store.count_open(department_id)
        if open_sessions >= settings.MAX_OPEN_SESSIONS_PER_DEPARTMENT:
            raise StateConflictError(
                f"Department already has {open_sessions} upcoming or active sessions "
                f"(limit {settings.MAX_OPEN_SESSIONS_PER_DEPARTMENT})"
            )
