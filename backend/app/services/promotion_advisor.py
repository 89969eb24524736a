"""
Promotion Advisor - read-only view of sessions due for promotion

Drives "promotion overdue" signals on dashboards. It never promotes
anything; an actor still has to call the engine with a reason.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from app.core.types import utcnow
from app.models.academic_session import AcademicSession, SessionStatus
from app.services.lifecycle_rules import derive_overdue
from app.services.session_store import SessionStore


class PromotionAdvisor:
    """Service for overdue-promotion queries"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.store = SessionStore(db)
        self.clock = clock

    async def list_overdue(
        self,
        department_id: str,
        now: Optional[datetime] = None
    ) -> List[AcademicSession]:
        """Active sessions of the department whose promotion date has passed, newest intake first"""
        now = now or self.clock()
        candidates = await self.store.list_by_department(department_id, status=SessionStatus.ACTIVE)
        return [session for session in candidates if derive_overdue(session, now)]

    def flag(
        self,
        sessions: List[AcademicSession],
        now: Optional[datetime] = None
    ) -> List[Tuple[AcademicSession, bool]]:
        """Pair each session with its overdue flag, evaluated at one instant"""
        now = now or self.clock()
        return [(session, derive_overdue(session, now)) for session in sessions]
