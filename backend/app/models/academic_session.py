"""
Academic Session Models
- AcademicSession: one intake cohort of a department
- PromotionLogEntry: append-only audit trail of semester promotions
"""

from sqlalchemy import (
    Column, String, Boolean, Enum as SQLEnum, Integer, Text, ForeignKey,
    CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, UTCDateTime, generate_uuid, utcnow


# Fixed program shape: 4 years, 2 semesters per year
PROGRAM_DURATION_YEARS = 4
TOTAL_SEMESTERS = 8


class SessionStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    LOCKED = "locked"
    COMPLETED = "completed"


class PromotionSource(str, enum.Enum):
    MANUAL = "manual"
    EXAM = "exam"


# Shared so both status columns map to a single database enum type
SESSION_STATUS_TYPE = SQLEnum(
    SessionStatus,
    name="session_status",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    validate_strings=True,
)


class AcademicSession(Base):
    """A department's 4-year / 8-semester student cohort"""
    __tablename__ = "academic_sessions"
    __table_args__ = (
        # One session per department per intake year
        UniqueConstraint("department_id", "start_year", name="uq_academic_sessions_department_start_year"),
        CheckConstraint(
            f"current_semester >= 1 AND current_semester <= {TOTAL_SEMESTERS}",
            name="ck_academic_sessions_semester_range",
        ),
        CheckConstraint("intake_capacity >= 0", name="ck_academic_sessions_capacity_non_negative"),
        CheckConstraint(
            "total_enrolled_students >= 0 AND total_enrolled_students <= intake_capacity",
            name="ck_academic_sessions_enrollment_within_capacity",
        ),
        Index("ix_academic_sessions_department_institute", "department_id", "institute_id"),
        Index("ix_academic_sessions_status_next_promotion", "status", "next_promotion_date"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=False, index=True)
    institute_id = Column(GUID, ForeignKey("institutes.id"), nullable=False, index=True)

    start_year = Column(Integer, nullable=False)
    end_year = Column(Integer, nullable=False)  # start_year + program length, fixed at creation

    current_semester = Column(Integer, nullable=False, default=1)
    status = Column(SESSION_STATUS_TYPE, nullable=False, default=SessionStatus.UPCOMING)
    # Status to restore on unlock; only set while locked
    status_before_lock = Column(SESSION_STATUS_TYPE, nullable=True)

    intake_capacity = Column(Integer, nullable=False, default=60)
    total_enrolled_students = Column(Integer, nullable=False, default=0)
    enrollment_open = Column(Boolean, nullable=False, default=True)

    next_promotion_date = Column(UTCDateTime, nullable=False)

    created_by = Column(GUID, nullable=False)

    # Optimistic concurrency token, bumped by every UPDATE
    version = Column(Integer, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, nullable=False)

    department = relationship("Department")
    promotion_log = relationship(
        "PromotionLogEntry",
        back_populates="session",
        order_by="PromotionLogEntry.sequence",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<AcademicSession {self.start_year}-{self.end_year} sem={self.current_semester} {self.status}>"


class PromotionLogEntry(Base):
    """One audited promotion (or graduation) of a session"""
    __tablename__ = "promotion_log_entries"
    __table_args__ = (
        # Two writers racing to append the same position cannot both succeed
        UniqueConstraint("session_id", "sequence", name="uq_promotion_log_session_sequence"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    session_id = Column(GUID, ForeignKey("academic_sessions.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 1-based position in the session's log

    reason = Column(Text, nullable=False)
    actor_id = Column(GUID, nullable=False)
    actor_role = Column(String(20), nullable=True)
    source = Column(String(20), nullable=False, default=PromotionSource.MANUAL.value)

    from_semester = Column(Integer, nullable=False)
    to_semester = Column(Integer, nullable=False)
    graduated = Column(Boolean, nullable=False, default=False)

    timestamp = Column(UTCDateTime, default=utcnow, nullable=False)

    session = relationship("AcademicSession", back_populates="promotion_log")

    def __repr__(self):
        return f"<PromotionLogEntry #{self.sequence} {self.from_semester}->{self.to_semester}>"
