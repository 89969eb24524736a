from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict
from datetime import datetime

from app.models.academic_session import SessionStatus, AcademicSession


# Request bodies accept camelCase (startYear) as well as snake_case
REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Responses are read from ORM objects (by field name) and written out in camelCase
RESPONSE_CONFIG = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# REQUESTS
# ============================================================================

class SessionCreate(BaseModel):
    """Approve a new intake for a department"""
    model_config = REQUEST_CONFIG

    start_year: int
    intake_capacity: Optional[int] = None
    status: Optional[SessionStatus] = None


class CapacityUpdate(BaseModel):
    model_config = REQUEST_CONFIG

    intake_capacity: int


class PromoteRequest(BaseModel):
    model_config = REQUEST_CONFIG

    reason: str


class ExamPromoteRequest(BaseModel):
    model_config = REQUEST_CONFIG

    reason: Optional[str] = None


class EnrollmentRequest(BaseModel):
    """Positive delta enrolls students, negative records withdrawals"""
    model_config = REQUEST_CONFIG

    delta: int


# ============================================================================
# RESPONSES
# ============================================================================

class PromotionLogEntryResponse(BaseModel):
    model_config = RESPONSE_CONFIG

    sequence: int
    reason: str
    actor_id: str = Field(validation_alias=AliasChoices("actor_id", "actor"), serialization_alias="actor")
    actor_role: Optional[str] = None
    source: str
    timestamp: datetime
    from_semester: int
    to_semester: int
    graduated: bool


class SessionResponse(BaseModel):
    model_config = RESPONSE_CONFIG

    id: str
    department_id: str = Field(
        validation_alias=AliasChoices("department_id", "department"), serialization_alias="department"
    )
    institute_id: str = Field(
        validation_alias=AliasChoices("institute_id", "institute"), serialization_alias="institute"
    )
    start_year: int
    end_year: int
    current_semester: int
    status: SessionStatus
    intake_capacity: int
    total_enrolled_students: int
    enrollment_open: bool
    next_promotion_date: datetime
    created_by: str
    version: int
    created_at: datetime
    updated_at: datetime
    promotion_log: List[PromotionLogEntryResponse] = []
    promotion_overdue: bool = False

    @classmethod
    def from_session(cls, session: AcademicSession, overdue: bool = False) -> "SessionResponse":
        response = cls.model_validate(session)
        response.promotion_overdue = overdue
        return response


class SessionEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: SessionResponse


class SessionListEnvelope(BaseModel):
    success: bool = True
    data: List[SessionResponse]


class StatusBucket(BaseModel):
    model_config = RESPONSE_CONFIG

    count: int = 0
    total_students: int = 0


class AnalyticsTotals(BaseModel):
    model_config = RESPONSE_CONFIG

    sessions: int = 0
    total_students: int = 0
    intake_capacity: int = 0


class AnalyticsEnvelope(BaseModel):
    model_config = RESPONSE_CONFIG

    success: bool = True
    data: List[SessionResponse]
    stats: Dict[str, StatusBucket]
    totals: AnalyticsTotals
    generated_at: datetime
