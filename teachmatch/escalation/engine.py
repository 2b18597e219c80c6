"""Escalation engine for automated teaching requests."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from teachmatch.config import settings
from teachmatch.errors import (
    NoCandidatesError,
    PersistenceError,
    RequestNotFoundError,
    StaleStateError,
    ValidationFailedError,
)
from teachmatch.escalation.policy import Decision, Escalate, Fail, decide_timeout, initial_assignment
from teachmatch.escalation.ranking import CandidateRanker
from teachmatch.escalation.store import RequestStore
from teachmatch.models.activity import ActivityType
from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.teaching_request import RequestStatus, TeachingRequest
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_logger, log_request_transition

logger = get_logger(__name__)


@dataclass
class RequestCriteria:
    """What a school asks for when it lets the system pick the teacher."""

    subject: str
    schedule: Dict[str, str]
    grade_level: int
    minimum_rating: Optional[float] = None


@dataclass
class RequestTransition:
    """A committed state change, handed to notification dispatch."""

    request_id: uuid.UUID
    school_id: uuid.UUID
    subject: str
    schedule: Dict[str, str]
    from_status: RequestStatus
    to_status: RequestStatus
    teacher_id: uuid.UUID
    previous_teacher_id: Optional[uuid.UUID] = None
    actor_id: Optional[uuid.UUID] = None
    reason: Optional[str] = None

    @property
    def is_escalation(self) -> bool:
        return self.previous_teacher_id is not None and self.previous_teacher_id != self.teacher_id

    @classmethod
    def from_request(
        cls,
        request: TeachingRequest,
        from_status: RequestStatus,
        previous_teacher_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> "RequestTransition":
        return cls(
            request_id=request.id,
            school_id=request.school_id,
            subject=request.subject,
            schedule=dict(request.schedule or {}),
            from_status=from_status,
            to_status=request.status,
            teacher_id=request.teacher_id,
            previous_teacher_id=previous_teacher_id,
            actor_id=actor_id,
            reason=reason,
        )


@dataclass
class SweepResult:
    """Outcome of one sweep invocation."""

    transitions: List[RequestTransition] = field(default_factory=list)
    stale: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.transitions)

    @property
    def escalated(self) -> int:
        return sum(1 for t in self.transitions if t.to_status == RequestStatus.PENDING)

    @property
    def failed(self) -> int:
        return sum(1 for t in self.transitions if t.to_status == RequestStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "escalated": self.escalated,
            "failed": self.failed,
            "stale": self.stale,
            "errors": self.errors,
        }


class EscalationEngine:
    """Creates automated requests and escalates them when deadlines lapse."""

    def __init__(
        self,
        session_factory: SessionFactory = get_db_session,
        ranker: Optional[CandidateRanker] = None,
        store: Optional[RequestStore] = None,
        timeout_window: Optional[timedelta] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.ranker = ranker or CandidateRanker()
        self.store = store or RequestStore()
        self.timeout_window = timeout_window or timedelta(minutes=settings.REQUEST_TIMEOUT_MINUTES)
        self.batch_size = batch_size or settings.SWEEP_BATCH_SIZE

    async def create(
        self,
        school_id: uuid.UUID,
        criteria: RequestCriteria,
        now: Optional[datetime] = None,
    ) -> TeachingRequest:
        """Rank candidates and persist a pending request for the top one.

        Raises NoCandidatesError, with nothing persisted, if nobody matches.
        """
        now = now or utc_now()
        subject = (criteria.subject or "").strip()
        if not subject:
            raise ValidationFailedError("Subject is required")

        try:
            async with self.session_factory() as session:
                candidates = await self.ranker.rank(
                    session,
                    subject,
                    criteria.grade_level,
                    criteria.minimum_rating,
                )
                if not candidates:
                    raise NoCandidatesError(
                        subject=subject,
                        grade_level=criteria.grade_level,
                    )

                assignment = initial_assignment(candidates, now, self.timeout_window)
                request = TeachingRequest(
                    school_id=school_id,
                    teacher_id=assignment.teacher_id,
                    subject=subject,
                    schedule=criteria.schedule,
                    grade_level=criteria.grade_level,
                    minimum_rating=criteria.minimum_rating,
                    status=RequestStatus.PENDING,
                    is_automated=True,
                    timeout_at=assignment.timeout_at,
                    fallback_teachers=list(assignment.fallback_teachers),
                    escalation_count=0,
                    version=1,
                    created_at=now,
                )
                await self.store.insert(session, request)
                self.store.log_activity(
                    session,
                    request.id,
                    ActivityType.REQUEST_CREATED,
                    "Automated request created",
                    actor_type="school",
                    actor_id=str(school_id),
                    metadata={
                        "candidates": [str(c.teacher_id) for c in candidates],
                        "timeout_at": assignment.timeout_at.isoformat(),
                    },
                )
        except SQLAlchemyError as e:
            logger.error("Error creating automated request", school_id=str(school_id), error=str(e))
            raise PersistenceError("Failed to create automated request") from e

        log_request_transition(
            logger,
            str(request.id),
            "new",
            RequestStatus.PENDING.value,
            teacher_id=str(request.teacher_id),
            fallback_count=len(request.fallback_teachers),
        )
        return request

    async def sweep(
        self,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> SweepResult:
        """Escalate or fail every pending request whose deadline has lapsed.

        Each row is updated in its own transaction, conditioned on the
        version read here. Rows that changed in between are skipped and left
        for the next sweep.
        """
        now = now or utc_now()
        limit = batch_size if batch_size is not None else self.batch_size

        try:
            async with self.session_factory() as session:
                lapsed = await self.store.find_lapsed(session, now, limit)
        except SQLAlchemyError as e:
            logger.error("Error loading lapsed requests", error=str(e))
            raise PersistenceError("Failed to load lapsed requests") from e

        result = SweepResult()
        for snapshot in lapsed:
            decision = decide_timeout(snapshot, now, self.timeout_window)
            if decision is None:
                continue

            try:
                transition = await self._apply(snapshot, decision)
            except (StaleStateError, RequestNotFoundError):
                logger.info(
                    "Skipping request changed by a concurrent writer",
                    request_id=str(snapshot.id),
                    version=snapshot.version
                )
                result.stale += 1
                continue
            except SQLAlchemyError as e:
                logger.error("Error applying timeout decision", request_id=str(snapshot.id), error=str(e))
                result.errors.append({"request_id": str(snapshot.id), "error": str(e)})
                continue

            result.transitions.append(transition)

        if lapsed:
            logger.info("Sweep completed", **result.to_dict())

        return result

    async def _apply(self, snapshot: TeachingRequest, decision: Decision) -> RequestTransition:
        if isinstance(decision, Escalate):
            values = {
                "teacher_id": decision.teacher_id,
                "fallback_teachers": list(decision.fallback_teachers),
                "timeout_at": decision.timeout_at,
                "escalation_count": (snapshot.escalation_count or 0) + 1,
            }
            activity_type = ActivityType.REQUEST_ESCALATED
            title = "Request reassigned to next candidate"
            metadata = {
                "previous_teacher_id": str(decision.previous_teacher_id),
                "new_teacher_id": str(decision.teacher_id),
                "remaining_fallbacks": len(decision.fallback_teachers),
            }
            previous_teacher_id: Optional[uuid.UUID] = decision.previous_teacher_id
        elif isinstance(decision, Fail):
            values = {"status": RequestStatus.FAILED, "timeout_at": None}
            activity_type = ActivityType.REQUEST_FAILED
            title = "Candidate list exhausted"
            metadata = {"last_teacher_id": str(decision.teacher_id)}
            previous_teacher_id = None
        else:
            raise TypeError(f"Unknown timeout decision: {decision!r}")

        async with self.session_factory() as session:
            request = await self.store.conditional_update(
                session,
                snapshot.id,
                expected_version=snapshot.version,
                expected_statuses=[RequestStatus.PENDING],
                values=values,
            )
            self.store.log_activity(session, request.id, activity_type, title, metadata=metadata)

        log_request_transition(
            logger,
            str(request.id),
            RequestStatus.PENDING.value,
            request.status.value,
            teacher_id=str(request.teacher_id),
            **metadata
        )
        return RequestTransition.from_request(
            request,
            RequestStatus.PENDING,
            previous_teacher_id=previous_teacher_id,
        )
