"""Teacher and school profiles, and teacher search."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from teachmatch.errors import PersistenceError, RequestNotFoundError, ValidationFailedError
from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.profile import SchoolProfile, TeacherProfile, TeacherSubject
from teachmatch.utils.logging import get_logger

logger = get_logger(__name__)

SEARCH_LIMIT = 20


@dataclass
class TeacherSearch:
    subject: Optional[str] = None
    min_experience: int = 0
    max_experience: int = 100
    qualifications: List[str] = field(default_factory=list)
    grade_level: Optional[int] = None
    min_rating: Optional[float] = None


class ProfileService:
    """Profile upserts and teacher lookup."""

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self.session_factory = session_factory

    async def upsert_teacher(self, teacher_id: uuid.UUID, data: Dict[str, Any]) -> TeacherProfile:
        """Create or update the caller's teacher profile.

        ``subjects`` replaces the whole subject set when present.
        """
        try:
            async with self.session_factory() as session:
                teacher = await session.get(TeacherProfile, teacher_id)
                created = teacher is None
                if created:
                    if not data.get("full_name") or not data.get("email"):
                        raise ValidationFailedError("full_name and email are required for a new profile")
                    teacher = TeacherProfile(id=teacher_id, subject_rows=[])
                    session.add(teacher)

                for attr in (
                    "full_name",
                    "email",
                    "bio",
                    "qualifications",
                    "experience_years",
                    "teaching_grade",
                    "availability",
                ):
                    if data.get(attr) is not None:
                        setattr(teacher, attr, data[attr])
                if data.get("subjects") is not None:
                    teacher.set_subjects(data["subjects"])
                await session.flush()
        except SQLAlchemyError as e:
            logger.error("Error saving teacher profile", teacher_id=str(teacher_id), error=str(e))
            raise PersistenceError("Failed to save teacher profile") from e

        logger.info("Teacher profile saved", teacher_id=str(teacher_id), created=created)
        return teacher

    async def upsert_school(self, school_id: uuid.UUID, data: Dict[str, Any]) -> SchoolProfile:
        try:
            async with self.session_factory() as session:
                school = await session.get(SchoolProfile, school_id)
                created = school is None
                if created:
                    if not data.get("school_name") or not data.get("email"):
                        raise ValidationFailedError("school_name and email are required for a new profile")
                    school = SchoolProfile(id=school_id)
                    session.add(school)

                for attr in ("school_name", "email", "address"):
                    if data.get(attr) is not None:
                        setattr(school, attr, data[attr])
                await session.flush()
        except SQLAlchemyError as e:
            logger.error("Error saving school profile", school_id=str(school_id), error=str(e))
            raise PersistenceError("Failed to save school profile") from e

        logger.info("School profile saved", school_id=str(school_id), created=created)
        return school

    async def get_teacher(self, teacher_id: uuid.UUID) -> TeacherProfile:
        try:
            async with self.session_factory() as session:
                teacher = await session.get(TeacherProfile, teacher_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to fetch teacher data") from e

        if teacher is None:
            raise RequestNotFoundError("Teacher not found", teacher_id=str(teacher_id))
        return teacher

    async def search_teachers(self, criteria: TeacherSearch) -> List[TeacherProfile]:
        """Filter teachers, most experienced first.

        Qualifications match when the teacher holds any of the requested ones.
        """
        query = (
            select(TeacherProfile)
            .where(
                TeacherProfile.experience_years >= criteria.min_experience,
                TeacherProfile.experience_years <= criteria.max_experience,
            )
            .order_by(TeacherProfile.experience_years.desc(), TeacherProfile.id)
        )
        if criteria.subject:
            query = query.join(TeacherSubject, TeacherSubject.teacher_id == TeacherProfile.id).where(
                TeacherSubject.subject == criteria.subject
            )
        if criteria.grade_level is not None:
            query = query.where(TeacherProfile.teaching_grade >= criteria.grade_level)
        if criteria.min_rating is not None:
            query = query.where(TeacherProfile.avg_rating >= criteria.min_rating)

        # Qualification overlap is filtered in Python, so the limit applies afterwards
        if not criteria.qualifications:
            query = query.limit(SEARCH_LIMIT)

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                teachers = list(result.scalars().unique().all())
        except SQLAlchemyError as e:
            logger.error("Error searching teachers", error=str(e))
            raise PersistenceError("Failed to fetch teachers") from e

        if criteria.qualifications:
            wanted = set(criteria.qualifications)
            teachers = [t for t in teachers if wanted.intersection(t.qualifications or [])]

        logger.debug("Teacher search", subject=criteria.subject, results=len(teachers[:SEARCH_LIMIT]))
        return teachers[:SEARCH_LIMIT]
