from app.services.session_store import SessionStore
from app.services.enrollment_tracker import EnrollmentTracker
from app.services.lifecycle_engine import LifecycleEngine

# Read-side services
from app.services.promotion_advisor import PromotionAdvisor
from app.services.analytics_aggregator import AnalyticsAggregator, InstituteAnalytics, StatusRollup

__all__ = [
    # Write side
    "SessionStore",
    "EnrollmentTracker",
    "LifecycleEngine",
    # Read side
    "PromotionAdvisor",
    "AnalyticsAggregator",
    "InstituteAnalytics",
    "StatusRollup",
]
