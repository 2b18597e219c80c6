"""Teacher review model."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from teachmatch.utils.clock import utc_now

from .database import Base


class TeacherReview(Base):
    """A school's rating of a completed session. One per teaching request."""

    __tablename__ = "teacher_reviews"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    teaching_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teaching_requests.id", ondelete="CASCADE"),
        unique=True,
        index=True
    )
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    teacher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teacher_profiles.id", ondelete="CASCADE"),
        index=True
    )

    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<TeacherReview(id={self.id}, teacher={self.teacher_id}, rating={self.rating})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "teaching_request_id": str(self.teaching_request_id),
            "school_id": str(self.school_id),
            "teacher_id": str(self.teacher_id),
            "rating": self.rating,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
