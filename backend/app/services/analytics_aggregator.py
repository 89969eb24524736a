"""
Analytics Aggregator - per-status rollups of academic sessions

Recomputed from the store on every call; there is no cache, so a result
reflects the data at the moment it was read and nothing more.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from app.core.types import utcnow
from app.models.academic_session import AcademicSession, SessionStatus
from app.services.session_store import SessionStore


@dataclass
class StatusRollup:
    """Sessions and students in one status"""
    count: int = 0
    total_students: int = 0
    intake_capacity: int = 0


@dataclass
class InstituteAnalytics:
    """Rollup snapshot for one institute"""
    institute_id: Optional[str]
    stats: Dict[SessionStatus, StatusRollup]
    sessions: List[AcademicSession] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def total_sessions(self) -> int:
        return sum(bucket.count for bucket in self.stats.values())

    @property
    def total_students(self) -> int:
        return sum(bucket.total_students for bucket in self.stats.values())

    @property
    def total_capacity(self) -> int:
        return sum(bucket.intake_capacity for bucket in self.stats.values())


class AnalyticsAggregator:
    """Service for session analytics"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.store = SessionStore(db)
        self.clock = clock

    async def aggregate(
        self,
        institute_id: Optional[str] = None,
        include_sessions: bool = True
    ) -> InstituteAnalytics:
        """
        Count sessions and sum enrolled students per status.

        Every status is present in ``stats``, zero-filled when the institute
        has no session in it. ``institute_id=None`` aggregates all institutes.
        """
        stats = {status: StatusRollup() for status in SessionStatus}
        for status, count, students, capacity in await self.store.status_rollup(institute_id):
            stats[status] = StatusRollup(count=count, total_students=students, intake_capacity=capacity)

        sessions = await self.store.list_by_institute(institute_id) if include_sessions else []
        return InstituteAnalytics(
            institute_id=institute_id,
            stats=stats,
            sessions=sessions,
            generated_at=self.clock(),
        )
