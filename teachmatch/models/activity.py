"""Activity log model for the request audit trail."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from teachmatch.utils.clock import utc_now

from .database import Base


class ActivityType(str, Enum):
    """Activity type enumeration."""

    # Request lifecycle
    REQUEST_CREATED = "request_created"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_CANCELLED = "request_cancelled"

    # Escalation
    REQUEST_ESCALATED = "request_escalated"
    REQUEST_FAILED = "request_failed"

    # Rescheduling
    RESCHEDULE_PROPOSED = "reschedule_proposed"
    RESCHEDULE_ACCEPTED = "reschedule_accepted"
    RESCHEDULE_REJECTED = "reschedule_rejected"


class ActivityLog(Base):
    """Activity log for audit trail."""

    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    teaching_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teaching_requests.id", ondelete="CASCADE"),
        index=True
    )

    activity_type: Mapped[ActivityType] = mapped_column(SQLEnum(ActivityType), index=True)
    title: Mapped[str] = mapped_column(String(500))

    # Actor information
    actor_type: Mapped[str] = mapped_column(String(50))  # system, school, teacher
    actor_id: Mapped[Optional[str]] = mapped_column(String(255))

    # Additional context
    metadata_json: Mapped[Optional[str]] = mapped_column(Text)  # JSON string
    correlation_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, type='{self.activity_type}', title='{self.title}')>"
