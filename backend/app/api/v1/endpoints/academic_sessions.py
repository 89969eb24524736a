"""
Academic Session API Endpoints

Provides endpoints for:
- Listing and reading a department's sessions
- Approving intakes (create) and capacity changes
- Activate / lock / unlock / close enrollment
- Semester promotion (manual and exam-triggered)
- Enrollment counts, overdue signals and institute analytics

Role checks live here; the services only enforce lifecycle rules.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.types import utcnow
from app.models.academic_session import AcademicSession, PromotionSource
from app.modules.auth.dependencies import (
    ensure_department_scope,
    get_current_actor,
    require_admin,
    require_principal,
    require_promoter,
)
from app.schemas.academic_session import (
    AnalyticsEnvelope,
    AnalyticsTotals,
    CapacityUpdate,
    EnrollmentRequest,
    ExamPromoteRequest,
    PromoteRequest,
    SessionCreate,
    SessionEnvelope,
    SessionListEnvelope,
    SessionResponse,
    StatusBucket,
)
from app.schemas.auth import Actor
from app.services.analytics_aggregator import AnalyticsAggregator
from app.services.enrollment_tracker import EnrollmentTracker
from app.services.lifecycle_engine import LifecycleEngine
from app.services.lifecycle_rules import derive_overdue
from app.services.promotion_advisor import PromotionAdvisor
from app.services.session_store import SessionStore

router = APIRouter(prefix="/sessions", tags=["Academic Sessions"])


def _envelope(session: AcademicSession, message: Optional[str] = None) -> SessionEnvelope:
    return SessionEnvelope(
        message=message,
        data=SessionResponse.from_session(session, overdue=derive_overdue(session, utcnow())),
    )


async def _visible_department(db: AsyncSession, department_id: str, actor: Actor) -> None:
    """404 for departments that do not exist or belong to another institute"""
    await SessionStore(db).require_department(department_id, actor.institute_id)


# ==================== Analytics ====================
# Declared before /{department_id} so "analytics" is not read as a department

@router.get("/analytics", response_model=AnalyticsEnvelope)
async def get_analytics(
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    """Per-status session counts and enrolled totals for the caller's institute"""
    analytics = await AnalyticsAggregator(db).aggregate(actor.institute_id)

    return AnalyticsEnvelope(
        data=[
            SessionResponse.from_session(session, overdue=derive_overdue(session, analytics.generated_at))
            for session in analytics.sessions
        ],
        stats={
            status_.value: StatusBucket(count=bucket.count, total_students=bucket.total_students)
            for status_, bucket in analytics.stats.items()
        },
        totals=AnalyticsTotals(
            sessions=analytics.total_sessions,
            total_students=analytics.total_students,
            intake_capacity=analytics.total_capacity,
        ),
        generated_at=analytics.generated_at,
    )


# ==================== Department sessions ====================

@router.get("/{department_id}", response_model=SessionListEnvelope)
async def list_sessions(
    department_id: str = Path(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """All sessions of a department, newest intake first"""
    await _visible_department(db, department_id, actor)
    sessions = await SessionStore(db).list_by_department(department_id)

    flagged = PromotionAdvisor(db).flag(sessions)
    return SessionListEnvelope(
        data=[SessionResponse.from_session(session, overdue=overdue) for session, overdue in flagged]
    )


@router.post("/{department_id}", response_model=SessionEnvelope, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    department_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    """Approve a new intake"""
    session = await LifecycleEngine(db).create_session(
        department_id,
        body.start_year,
        actor,
        intake_capacity=body.intake_capacity,
        status=body.status,
    )
    return _envelope(session, "Academic session created")


@router.get("/{department_id}/overdue", response_model=SessionListEnvelope)
async def list_overdue_sessions(
    department_id: str = Path(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Active sessions whose promotion date has passed"""
    await _visible_department(db, department_id, actor)
    sessions: List[AcademicSession] = await PromotionAdvisor(db).list_overdue(department_id)
    return SessionListEnvelope(
        data=[SessionResponse.from_session(session, overdue=True) for session in sessions]
    )


@router.get("/{department_id}/{session_id}", response_model=SessionEnvelope)
async def get_session(
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    await _visible_department(db, department_id, actor)
    session = await SessionStore(db).get(session_id, department_id)
    return _envelope(session)


@router.put("/{department_id}/{session_id}", response_model=SessionEnvelope)
async def adjust_capacity(
    body: CapacityUpdate,
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    """Change the intake capacity"""
    await _visible_department(db, department_id, actor)
    session = await EnrollmentTracker(db).adjust_capacity(
        session_id, body.intake_capacity, actor, department_id=department_id
    )
    return _envelope(session, "Intake capacity updated")


@router.post("/{department_id}/{session_id}/enrollments", response_model=SessionEnvelope)
async def record_enrollment(
    body: EnrollmentRequest,
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    """Record new enrollments (positive delta) or withdrawals (negative delta)"""
    await _visible_department(db, department_id, actor)
    session = await EnrollmentTracker(db).record_enrollment(
        session_id, body.delta, actor, department_id=department_id
    )
    return _envelope(session, "Enrollment recorded")


# ==================== Status commands ====================

@router.patch("/{department_id}/{session_id}/activate", response_model=SessionEnvelope)
async def activate_session(
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    await _visible_department(db, department_id, actor)
    session = await LifecycleEngine(db).activate(session_id, actor, department_id=department_id)
    return _envelope(session, "Session activated")


@router.patch("/{department_id}/{session_id}/lock", response_model=SessionEnvelope)
async def lock_session(
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    await _visible_department(db, department_id, actor)
    session = await LifecycleEngine(db).lock(session_id, actor, department_id=department_id)
    return _envelope(session, "Session locked")


@router.patch("/{department_id}/{session_id}/unlock", response_model=SessionEnvelope)
async def unlock_session(
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    await _visible_department(db, department_id, actor)
    session = await LifecycleEngine(db).unlock(session_id, actor, department_id=department_id)
    return _envelope(session, "Session unlocked")


@router.patch("/{department_id}/{session_id}/close-enrollment", response_model=SessionEnvelope)
async def close_enrollment(
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_principal),
    db: AsyncSession = Depends(get_db)
):
    await _visible_department(db, department_id, actor)
    session = await LifecycleEngine(db).close_enrollment(session_id, actor, department_id=department_id)
    return _envelope(session, "Enrollment closed")


# ==================== Promotion ====================

@router.patch("/{department_id}/{session_id}/promote", response_model=SessionEnvelope)
async def promote_session(
    body: PromoteRequest,
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_promoter),
    db: AsyncSession = Depends(get_db)
):
    """Advance one semester (or graduate from the last) with an audit reason"""
    ensure_department_scope(actor, department_id)
    await _visible_department(db, department_id, actor)
    session = await LifecycleEngine(db).promote_semester(
        session_id, body.reason, actor, department_id=department_id
    )
    return _envelope(session, "Session promoted")


@router.patch("/{department_id}/{session_id}/exam-promote", response_model=SessionEnvelope)
async def exam_promote_session(
    body: Optional[ExamPromoteRequest] = None,
    department_id: str = Path(...),
    session_id: str = Path(...),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Promotion triggered by exam results; same rules as a manual promotion"""
    await _visible_department(db, department_id, actor)
    # A missing or blank reason means the standard exam wording
    reason = ((body.reason or "").strip() if body else "") or settings.EXAM_PROMOTION_REASON
    session = await LifecycleEngine(db).promote_semester(
        session_id, reason, actor, department_id=department_id, source=PromotionSource.EXAM
    )
    return _envelope(session, "Session promoted after examinations")
