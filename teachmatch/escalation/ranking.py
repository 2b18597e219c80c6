"""Candidate ranking over teacher profiles."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teachmatch.config import settings
from teachmatch.escalation.policy import RankedCandidate
from teachmatch.models.profile import TeacherProfile, TeacherSubject
from teachmatch.utils.logging import get_logger

logger = get_logger(__name__)


class CandidateRanker:
    """Ranks teachers for a subject/grade/rating criterion.

    A teacher qualifies when the subject is in their subject set and their
    ``teaching_grade`` is at least the requested grade. Results are ordered
    by average rating, highest first, ties broken by teacher id.
    """

    def __init__(self, pool_size: Optional[int] = None):
        self.pool_size = pool_size or settings.CANDIDATE_POOL_SIZE

    async def rank(
        self,
        session: AsyncSession,
        subject: str,
        min_grade: int,
        min_rating: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[RankedCandidate]:
        query = (
            select(TeacherProfile.id, TeacherProfile.avg_rating)
            .join(TeacherSubject, TeacherSubject.teacher_id == TeacherProfile.id)
            .where(
                TeacherSubject.subject == subject.strip(),
                TeacherProfile.teaching_grade >= min_grade,
            )
            .order_by(TeacherProfile.avg_rating.desc(), TeacherProfile.id.asc())
            .limit(limit or self.pool_size)
        )
        if min_rating is not None:
            query = query.where(TeacherProfile.avg_rating >= min_rating)

        result = await session.execute(query)
        candidates = [
            RankedCandidate(teacher_id=teacher_id, rating=float(rating or 0.0))
            for teacher_id, rating in result.all()
        ]

        logger.info(
            "Ranked candidates",
            subject=subject,
            min_grade=min_grade,
            min_rating=min_rating,
            candidate_count=len(candidates)
        )
        return candidates
