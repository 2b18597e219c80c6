"""Database models for TeachMatch."""

from .database import Base, get_db_session
from .profile import TeacherProfile, TeacherSubject, SchoolProfile
from .teaching_request import (
    TeachingRequest,
    RequestStatus,
    RescheduleRequest,
    RescheduleStatus,
    TERMINAL_STATUSES,
)
from .review import TeacherReview
from .notification import Notification, NotificationType
from .activity import ActivityLog, ActivityType

__all__ = [
    "Base",
    "get_db_session",
    "TeacherProfile",
    "TeacherSubject",
    "SchoolProfile",
    "TeachingRequest",
    "RequestStatus",
    "RescheduleRequest",
    "RescheduleStatus",
    "TERMINAL_STATUSES",
    "TeacherReview",
    "Notification",
    "NotificationType",
    "ActivityLog",
    "ActivityType",
]
