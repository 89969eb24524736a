# Re-export all models for convenient imports
from app.models.institute import Institute, Department
from app.models.academic_session import (
    AcademicSession,
    PromotionLogEntry,
    PromotionSource,
    SessionStatus,
)

__all__ = [
    # Directory
    "Institute",
    "Department",
    # Lifecycle
    "AcademicSession",
    "PromotionLogEntry",
    "PromotionSource",
    "SessionStatus",
]
