# API endpoints
from . import academic_sessions, health

__all__ = ["academic_sessions", "health"]
