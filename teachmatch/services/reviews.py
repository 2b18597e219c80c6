"""Teacher reviews and the denormalised rating on teacher profiles."""

import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teachmatch.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    PersistenceError,
    RequestNotFoundError,
    ValidationFailedError,
)
from teachmatch.escalation.store import RequestStore
from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.profile import TeacherProfile
from teachmatch.models.review import TeacherReview
from teachmatch.models.teaching_request import RequestStatus
from teachmatch.utils.logging import get_logger

logger = get_logger(__name__)


class ReviewService:
    """Schools rate teachers once per accepted request."""

    def __init__(
        self,
        session_factory: SessionFactory = get_db_session,
        store: Optional[RequestStore] = None
    ):
        self.session_factory = session_factory
        self.store = store or RequestStore()

    async def submit(
        self,
        school_id: uuid.UUID,
        teaching_request_id: uuid.UUID,
        rating: int,
        comment: Optional[str] = None
    ) -> TeacherReview:
        """Create or replace the review for a request and refresh the teacher's rating."""
        if not 1 <= rating <= 5:
            raise ValidationFailedError("Rating must be between 1 and 5")

        try:
            async with self.session_factory() as session:
                request = await self.store.get(session, teaching_request_id)
                if request.school_id != school_id:
                    raise PermissionDeniedError("Forbidden: You did not initiate this request")
                if request.status != RequestStatus.ACCEPTED:
                    raise InvalidTransitionError("Only accepted classes can be reviewed")

                result = await session.execute(
                    select(TeacherReview).where(TeacherReview.teaching_request_id == teaching_request_id)
                )
                review = result.scalar_one_or_none()
                if review is None:
                    review = TeacherReview(
                        teaching_request_id=teaching_request_id,
                        school_id=school_id,
                        teacher_id=request.teacher_id,
                    )
                    session.add(review)
                review.rating = rating
                review.comment = comment
                await session.flush()

                await self._refresh_rating(session, request.teacher_id)
        except SQLAlchemyError as e:
            logger.error("Error saving review", teaching_request_id=str(teaching_request_id), error=str(e))
            raise PersistenceError("Failed to submit review") from e

        logger.info(
            "Review submitted",
            teaching_request_id=str(teaching_request_id),
            teacher_id=str(review.teacher_id),
            rating=rating
        )
        return review

    async def recent_for_teacher(self, teacher_id: uuid.UUID, limit: int = 5) -> List[TeacherReview]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TeacherReview)
                    .where(TeacherReview.teacher_id == teacher_id)
                    .order_by(TeacherReview.created_at.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load reviews") from e

    async def _refresh_rating(self, session: AsyncSession, teacher_id: uuid.UUID) -> None:
        avg, count = (
            await session.execute(
                select(func.avg(TeacherReview.rating), func.count(TeacherReview.id))
                .where(TeacherReview.teacher_id == teacher_id)
            )
        ).one()

        teacher = await session.get(TeacherProfile, teacher_id)
        if teacher is None:
            raise RequestNotFoundError("Teacher not found", teacher_id=str(teacher_id))
        teacher.avg_rating = float(avg or 0.0)
        teacher.review_count = count or 0
