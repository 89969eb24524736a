# Pydantic schemas
from app.schemas.auth import Actor, ActorRole, TokenData
from app.schemas.academic_session import (
    SessionCreate,
    CapacityUpdate,
    PromoteRequest,
    ExamPromoteRequest,
    EnrollmentRequest,
    PromotionLogEntryResponse,
    SessionResponse,
    SessionEnvelope,
    SessionListEnvelope,
    StatusBucket,
    AnalyticsTotals,
    AnalyticsEnvelope,
)
