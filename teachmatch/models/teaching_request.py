"""Teaching request and reschedule request models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teachmatch.utils.clock import utc_now

from .database import Base


class RequestStatus(str, Enum):
    """Teaching request status enumeration."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    FAILED = "failed"
    TIMEOUT = "timeout"  # legacy rows only; exhaustion produces FAILED


TERMINAL_STATUSES = frozenset({
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
    RequestStatus.FAILED,
    RequestStatus.TIMEOUT,
})


class RescheduleStatus(str, Enum):
    """Reschedule proposal status enumeration."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TeachingRequest(Base):
    """A school's request for a teacher to run a session."""

    __tablename__ = "teaching_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Parties
    school_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("school_profiles.id", ondelete="CASCADE"),
        index=True
    )
    teacher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teacher_profiles.id", ondelete="CASCADE"),
        index=True
    )

    # Session details
    subject: Mapped[str] = mapped_column(String(100))
    schedule: Mapped[Dict[str, str]] = mapped_column(JSON)  # {"date": "YYYY-MM-DD", "time": "HH:MM"}
    grade_level: Mapped[Optional[int]] = mapped_column(Integer)
    minimum_rating: Mapped[Optional[float]] = mapped_column(Float)

    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus),
        default=RequestStatus.PENDING,
        index=True
    )

    # Escalation tracking
    is_automated: Mapped[bool] = mapped_column(Boolean, default=False)
    timeout_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    fallback_teachers: Mapped[List[str]] = mapped_column(JSON, default=list)
    escalation_count: Mapped[int] = mapped_column(Integer, default=0)

    # Optimistic concurrency; every write bumps it
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Response / cancellation
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now
    )

    reschedule_requests: Mapped[List["RescheduleRequest"]] = relationship(
        "RescheduleRequest",
        back_populates="teaching_request",
        cascade="all, delete-orphan",
        order_by="RescheduleRequest.created_at"
    )

    def __repr__(self) -> str:
        return f"<TeachingRequest(id={self.id}, teacher={self.teacher_id}, status='{self.status}')>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def next_candidate(self) -> Optional[uuid.UUID]:
        """Head of the fallback queue, if any."""
        if not self.fallback_teachers:
            return None
        return uuid.UUID(self.fallback_teachers[0])

    def is_party(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.school_id, self.teacher_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "school_id": str(self.school_id),
            "teacher_id": str(self.teacher_id),
            "subject": self.subject,
            "schedule": self.schedule,
            "grade_level": self.grade_level,
            "minimum_rating": self.minimum_rating,
            "status": self.status.value,
            "is_automated": self.is_automated,
            "timeout_at": self.timeout_at.isoformat() if self.timeout_at else None,
            "fallback_teachers": list(self.fallback_teachers or []),
            "escalation_count": self.escalation_count,
            "version": self.version,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_by": str(self.cancelled_by) if self.cancelled_by else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class RescheduleRequest(Base):
    """A proposed schedule change for a teaching request."""

    __tablename__ = "reschedule_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    teaching_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teaching_requests.id", ondelete="CASCADE"),
        index=True
    )
    proposed_by: Mapped[uuid.UUID] = mapped_column(Uuid)

    old_schedule: Mapped[Dict[str, str]] = mapped_column(JSON)
    new_schedule: Mapped[Dict[str, str]] = mapped_column(JSON)
    reason: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[RescheduleStatus] = mapped_column(
        SQLEnum(RescheduleStatus),
        default=RescheduleStatus.PENDING,
        index=True
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    teaching_request: Mapped["TeachingRequest"] = relationship(
        "TeachingRequest",
        back_populates="reschedule_requests"
    )

    def __repr__(self) -> str:
        return f"<RescheduleRequest(id={self.id}, status='{self.status}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "teaching_request_id": str(self.teaching_request_id),
            "proposed_by": str(self.proposed_by),
            "old_schedule": self.old_schedule,
            "new_schedule": self.new_schedule,
            "reason": self.reason,
            "status": self.status.value,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
        }
