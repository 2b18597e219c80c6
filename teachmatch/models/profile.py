"""Teacher and school profile models."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teachmatch.utils.clock import utc_now

from .database import Base


class TeacherProfile(Base):
    """A substitute teacher. The id is the auth provider's user id."""

    __tablename__ = "teacher_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    full_name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), index=True)
    bio: Mapped[Optional[str]] = mapped_column(Text)

    # Matching attributes
    qualifications: Mapped[List[str]] = mapped_column(JSON, default=list)
    experience_years: Mapped[int] = mapped_column(Integer, default=0, index=True)
    teaching_grade: Mapped[int] = mapped_column(Integer, default=0, index=True)  # highest grade taught
    availability: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    # Denormalised from teacher_reviews
    avg_rating: Mapped[float] = mapped_column(Float, default=0.0, index=True)
    review_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now
    )

    subject_rows: Mapped[List["TeacherSubject"]] = relationship(
        "TeacherSubject",
        back_populates="teacher",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<TeacherProfile(id={self.id}, name='{self.full_name}')>"

    @property
    def subjects(self) -> List[str]:
        return sorted(row.subject for row in self.subject_rows)

    def set_subjects(self, subjects: List[str]) -> None:
        """Replace the subject set, keeping rows that are unchanged."""
        wanted = {s.strip() for s in subjects if s and s.strip()}
        self.subject_rows = [row for row in self.subject_rows if row.subject in wanted]
        existing = {row.subject for row in self.subject_rows}
        for subject in sorted(wanted - existing):
            self.subject_rows.append(TeacherSubject(subject=subject))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "email": self.email,
            "bio": self.bio,
            "subjects": self.subjects,
            "qualifications": list(self.qualifications or []),
            "experience_years": self.experience_years,
            "teaching_grade": self.teaching_grade,
            "availability": self.availability,
            "avg_rating": round(self.avg_rating or 0.0, 2),
            "review_count": self.review_count,
        }


class TeacherSubject(Base):
    """One subject a teacher can cover."""

    __tablename__ = "teacher_subjects"
    __table_args__ = (UniqueConstraint("teacher_id", "subject", name="uq_teacher_subject"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    teacher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teacher_profiles.id", ondelete="CASCADE"),
        index=True
    )
    subject: Mapped[str] = mapped_column(String(100), index=True)

    teacher: Mapped["TeacherProfile"] = relationship("TeacherProfile", back_populates="subject_rows")


class SchoolProfile(Base):
    """A school that requests substitute teachers."""

    __tablename__ = "school_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    school_name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), index=True)
    address: Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<SchoolProfile(id={self.id}, name='{self.school_name}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "school_name": self.school_name,
            "email": self.email,
            "address": self.address,
        }
