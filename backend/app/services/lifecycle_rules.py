"""
Lifecycle Rules - pure state-machine logic for academic sessions

Holds:
- The allowed status transitions (``TRANSITIONS``)
- Which statuses each command may run from (``COMMAND_STATUSES``)
- The overdue predicate and the promotion-date arithmetic

Nothing in here touches the database or reads the clock; callers pass
``now`` explicitly.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Set, Optional, Iterator
from dateutil.relativedelta import relativedelta
import enum

from app.core.exceptions import SessionLifecycleError, StateConflictError
from app.core.logging_config import logger
from app.models.academic_session import AcademicSession, SessionStatus


class Command(str, enum.Enum):
    """Mutating commands a session accepts"""
    ACTIVATE = "activate"
    LOCK = "lock"
    UNLOCK = "unlock"
    CLOSE_ENROLLMENT = "close_enrollment"
    PROMOTE = "promote"
    ADJUST_CAPACITY = "adjust_capacity"
    RECORD_ENROLLMENT = "record_enrollment"


# Valid status transitions. COMPLETED is terminal; LOCKED only returns to
# the status it was entered from.
TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.UPCOMING: {SessionStatus.ACTIVE, SessionStatus.LOCKED},
    SessionStatus.ACTIVE: {SessionStatus.LOCKED, SessionStatus.COMPLETED},
    SessionStatus.LOCKED: {SessionStatus.UPCOMING, SessionStatus.ACTIVE},
    SessionStatus.COMPLETED: set(),
}

# Statuses from which each command may run
COMMAND_STATUSES: Dict[Command, Set[SessionStatus]] = {
    Command.ACTIVATE: {SessionStatus.UPCOMING},
    Command.LOCK: {SessionStatus.UPCOMING, SessionStatus.ACTIVE},
    Command.UNLOCK: {SessionStatus.LOCKED},
    Command.CLOSE_ENROLLMENT: {SessionStatus.UPCOMING, SessionStatus.ACTIVE},
    Command.PROMOTE: {SessionStatus.ACTIVE},
    Command.ADJUST_CAPACITY: {SessionStatus.UPCOMING, SessionStatus.ACTIVE},
    Command.RECORD_ENROLLMENT: {SessionStatus.UPCOMING, SessionStatus.ACTIVE},
}


def _check_tables() -> None:
    """Refuse to import when a status or command is missing from the tables"""
    missing_statuses = set(SessionStatus) - set(TRANSITIONS)
    if missing_statuses:
        raise RuntimeError(
            f"TRANSITIONS has no entry for: {sorted(s.value for s in missing_statuses)}"
        )
    missing_commands = set(Command) - set(COMMAND_STATUSES)
    if missing_commands:
        raise RuntimeError(
            f"COMMAND_STATUSES has no entry for: {sorted(c.value for c in missing_commands)}"
        )


_check_tables()


def can_transition(from_status: SessionStatus, to_status: SessionStatus) -> bool:
    """Check if a status transition is valid"""
    return to_status in TRANSITIONS[SessionStatus(from_status)]


def ensure_command_allowed(session: AcademicSession, command: Command) -> None:
    """Raise StateConflictError when ``command`` cannot run in the session's status"""
    status = SessionStatus(session.status)
    if status not in COMMAND_STATUSES[command]:
        raise StateConflictError(
            f"Cannot {command.value.replace('_', ' ')}: session is {status.value}",
            current_status=status.value,
        )


def apply_transition(session: AcademicSession, to_status: SessionStatus) -> SessionStatus:
    """Move the session to ``to_status`` and return the status it left"""
    from_status = SessionStatus(session.status)
    if not can_transition(from_status, to_status):
        allowed = sorted(s.value for s in TRANSITIONS[from_status])
        raise StateConflictError(
            f"Invalid transition {from_status.value} -> {to_status.value}. "
            f"Allowed: {allowed}",
            current_status=from_status.value,
        )
    session.status = to_status
    return from_status


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_promotion_overdue(
    status: SessionStatus,
    next_promotion_date: Optional[datetime],
    now: datetime
) -> bool:
    """True iff the session is active and its promotion date has passed"""
    if SessionStatus(status) != SessionStatus.ACTIVE or next_promotion_date is None:
        return False
    return _as_utc(next_promotion_date) <= _as_utc(now)


def derive_overdue(session: AcademicSession, now: datetime) -> bool:
    """
    Whether a promotion is overdue for ``session`` at ``now``.

    Advisory only: nothing promotes a session because this returned True.
    """
    return is_promotion_overdue(session.status, session.next_promotion_date, now)


def next_promotion_date(now: datetime, interval_months: int) -> datetime:
    """When the next promotion falls due, counted from ``now``"""
    return now + relativedelta(months=interval_months)


@contextmanager
def rejections_logged(command: str, session_id: Optional[str]) -> Iterator[None]:
    """Log lifecycle errors raised inside the block, then re-raise them"""
    try:
        yield
    except SessionLifecycleError as error:
        logger.log_rejection(command, session_id, error.code, error.message)
        raise
