"""
Enrollment Tracker - capacity and enrollment invariants

Every change to ``intake_capacity`` or ``total_enrolled_students`` goes
through here, so the enrolled count can never exceed capacity or go
below zero.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Callable, Optional

from app.core.config import settings
from app.core.exceptions import (
    CapacityExceededError,
    StateConflictError,
    ValidationError,
)
from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.academic_session import AcademicSession, SessionStatus
from app.schemas.auth import Actor
from app.services.lifecycle_rules import Command, ensure_command_allowed, rejections_logged
from app.services.session_store import SessionStore


class EnrollmentTracker:
    """Service for intake capacity and enrollment counts"""

    def __init__(
        self,
        db: AsyncSession,
        store: Optional[SessionStore] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = db
        self.store = store or SessionStore(db)
        self.clock = clock

    # ==================== CHECKS ====================

    @staticmethod
    def validate_capacity(capacity: int, enrolled: int = 0, minimum: int = 0) -> int:
        """Check a capacity value against its bounds and the current enrollment"""
        if capacity < minimum or capacity > settings.MAX_INTAKE_CAPACITY:
            raise ValidationError(
                f"Intake capacity must be between {minimum} and {settings.MAX_INTAKE_CAPACITY}",
                field="intakeCapacity",
            )
        if capacity < enrolled:
            raise ValidationError(
                f"Intake capacity cannot be lower than the {enrolled} students already enrolled",
                field="intakeCapacity",
            )
        return capacity

    @staticmethod
    def close_window(session: AcademicSession) -> bool:
        """Close the enrollment window in memory; returns False if it was already closed"""
        if not session.enrollment_open:
            return False
        session.enrollment_open = False
        return True

    # ==================== COMMANDS ====================

    async def adjust_capacity(
        self,
        session_id: str,
        new_capacity: int,
        actor: Actor,
        department_id: Optional[str] = None
    ) -> AcademicSession:
        """
        Change a session's intake capacity.

        Raises:
            StateConflictError: session is locked or completed
            ValidationError: capacity out of range or below current enrollment
        """
        with rejections_logged(Command.ADJUST_CAPACITY.value, session_id):
            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.ADJUST_CAPACITY)
            self.validate_capacity(new_capacity, session.total_enrolled_students)

            previous = session.intake_capacity
            if new_capacity == previous:
                return session

            session.intake_capacity = new_capacity
            session.updated_at = self.clock()
            await self.store.commit(session)

        status = SessionStatus(session.status).value
        logger.log_transition(
            Command.ADJUST_CAPACITY.value, session.id, actor.id,
            from_status=status, to_status=status,
            previous_capacity=previous, new_capacity=new_capacity,
        )
        return session

    async def record_enrollment(
        self,
        session_id: str,
        delta: int,
        actor: Actor,
        department_id: Optional[str] = None
    ) -> AcademicSession:
        """
        Add ``delta`` students (negative for withdrawals), all or nothing.

        Raises:
            ValidationError: zero delta, or withdrawals beyond the enrolled count
            StateConflictError: session locked/completed or enrollment closed
            CapacityExceededError: result would exceed intake capacity
        """
        with rejections_logged(Command.RECORD_ENROLLMENT.value, session_id):
            if delta == 0:
                raise ValidationError("Enrollment delta must be a non-zero integer", field="delta")

            session = await self.store.get(session_id, department_id)
            ensure_command_allowed(session, Command.RECORD_ENROLLMENT)
            if not session.enrollment_open:
                raise StateConflictError(
                    "Enrollment is closed for this session",
                    current_status=SessionStatus(session.status).value,
                )

            enrolled = session.total_enrolled_students
            total = enrolled + delta
            if total > session.intake_capacity:
                raise CapacityExceededError(session.intake_capacity, enrolled, delta)
            if total < 0:
                raise ValidationError(
                    f"Cannot withdraw {-delta} students; only {enrolled} enrolled",
                    field="delta",
                )

            session.total_enrolled_students = total
            session.updated_at = self.clock()
            await self.store.commit(session)

        status = SessionStatus(session.status).value
        logger.log_transition(
            Command.RECORD_ENROLLMENT.value, session.id, actor.id,
            from_status=status, to_status=status,
            enrollment_delta=delta, total_enrolled=total,
        )
        return session
