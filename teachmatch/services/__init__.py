"""Service layer components for TeachMatch."""

from .monitoring import MonitoringService
from .notifications import NotificationService
from .profiles import ProfileService, TeacherSearch
from .requests import TeachingRequestService
from .reschedule import RescheduleService
from .reviews import ReviewService

__all__ = [
    "MonitoringService",
    "NotificationService",
    "ProfileService",
    "TeacherSearch",
    "TeachingRequestService",
    "RescheduleService",
    "ReviewService",
]
