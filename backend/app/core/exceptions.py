"""
Custom Exceptions for the Academic Session Lifecycle
====================================================

Every failure a lifecycle command can produce is one of these. Each carries
a machine-readable ``code``, a human message that can be rendered directly,
structured ``details`` and the HTTP status the API layer should answer with.

Usage:
    from app.core.exceptions import SessionNotFoundError, StateConflictError

    if not session:
        raise SessionNotFoundError(session_id)

    if session.status != SessionStatus.ACTIVE:
        raise StateConflictError("Only active sessions can be promoted",
                                 current_status=session.status.value)

None of these are retried by the engine. ``ConcurrencyConflictError`` means
"re-read the session and decide again", never "repeat the same call".
"""

from typing import Optional, Any, Dict


class SessionLifecycleError(Exception):
    """Base exception for all lifecycle errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(SessionLifecycleError):
    """Caller could not be identified"""

    status_code = 401

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message, code="AUTH_FAILED")


class AuthorizationError(SessionLifecycleError):
    """Caller is not allowed to perform this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(SessionLifecycleError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id)}
        )


# Kind name used across the API contract
NotFoundError = ResourceNotFoundError


class SessionNotFoundError(ResourceNotFoundError):
    """Academic session not found"""

    def __init__(self, session_id: str):
        super().__init__("Session", session_id)


class DepartmentNotFoundError(ResourceNotFoundError):
    """Department not found (or not visible to the caller)"""

    def __init__(self, department_id: str):
        super().__init__("Department", department_id)


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(SessionLifecycleError):
    """Input is malformed or out of range"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


# ============================================
# State Errors (409-type)
# ============================================

class StateConflictError(SessionLifecycleError):
    """Operation is illegal for the session's current status"""

    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        details = {"current_status": current_status} if current_status else {}
        super().__init__(message, code="STATE_CONFLICT", details=details)


class DuplicateSessionError(StateConflictError):
    """A session for this intake year already exists in the department"""

    def __init__(self, department_id: str, start_year: int):
        super().__init__(
            f"A session for {start_year} already exists in this department"
        )
        self.code = "DUPLICATE_SESSION"
        self.details = {"department_id": str(department_id), "start_year": start_year}


class CapacityExceededError(SessionLifecycleError):
    """Enrollment would push the session over its intake capacity"""

    status_code = 409

    def __init__(self, intake_capacity: int, enrolled: int, requested: int):
        super().__init__(
            f"Enrolling {requested} more would exceed intake capacity "
            f"({enrolled}/{intake_capacity} enrolled)",
            code="CAPACITY_EXCEEDED",
            details={
                "intake_capacity": intake_capacity,
                "total_enrolled_students": enrolled,
                "requested": requested,
            }
        )


class ConcurrencyConflictError(SessionLifecycleError):
    """Session changed underneath the caller; re-fetch before deciding again"""

    status_code = 409

    def __init__(self, session_id: str):
        super().__init__(
            "Session was modified by another request. Reload it and try again.",
            code="CONCURRENCY_CONFLICT",
            details={"session_id": str(session_id), "retriable": True}
        )


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: SessionLifecycleError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
