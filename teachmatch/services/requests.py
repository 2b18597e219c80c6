"""Teaching request workflow: direct requests, responses and cancellations."""

import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from teachmatch.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    PersistenceError,
    RequestNotFoundError,
)
from teachmatch.escalation.engine import RequestTransition
from teachmatch.escalation.store import RequestStore
from teachmatch.models.activity import ActivityType
from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.profile import TeacherProfile
from teachmatch.models.teaching_request import RequestStatus, TeachingRequest
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_logger, log_request_transition

logger = get_logger(__name__)

CANCELLABLE_STATUSES = (RequestStatus.PENDING, RequestStatus.ACCEPTED)


class TeachingRequestService:
    """Party-driven transitions on teaching requests.

    Every transition is a conditional update on the version read in the
    same transaction, so a response racing a sweep escalation cannot both
    apply.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_db_session,
        store: Optional[RequestStore] = None
    ):
        self.session_factory = session_factory
        self.store = store or RequestStore()

    async def create_direct(
        self,
        school_id: uuid.UUID,
        teacher_id: uuid.UUID,
        subject: str,
        schedule: Dict[str, str]
    ) -> Tuple[TeachingRequest, RequestTransition]:
        """Send a request to a teacher the school picked itself. No timeout applies."""
        try:
            async with self.session_factory() as session:
                teacher = await session.get(TeacherProfile, teacher_id)
                if teacher is None:
                    raise RequestNotFoundError("Teacher not found", teacher_id=str(teacher_id))

                request = TeachingRequest(
                    school_id=school_id,
                    teacher_id=teacher_id,
                    subject=subject,
                    schedule=schedule,
                    status=RequestStatus.PENDING,
                    is_automated=False,
                    timeout_at=None,
                    fallback_teachers=[],
                    escalation_count=0,
                    version=1,
                )
                await self.store.insert(session, request)
                self.store.log_activity(
                    session,
                    request.id,
                    ActivityType.REQUEST_CREATED,
                    "Direct request created",
                    actor_type="school",
                    actor_id=str(school_id)
                )
        except SQLAlchemyError as e:
            logger.error("Error creating teaching request", school_id=str(school_id), error=str(e))
            raise PersistenceError("Failed to create teaching request") from e

        log_request_transition(logger, str(request.id), "new", RequestStatus.PENDING.value, str(teacher_id))
        return request, RequestTransition.from_request(request, RequestStatus.PENDING, actor_id=school_id)

    async def get_for_party(self, request_id: uuid.UUID, user_id: uuid.UUID) -> TeachingRequest:
        try:
            async with self.session_factory() as session:
                request = await self.store.get(session, request_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load teaching request") from e

        if not request.is_party(user_id):
            raise PermissionDeniedError(request_id=str(request_id))
        return request

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        status: Optional[RequestStatus] = None,
        limit: int = 50
    ) -> List[TeachingRequest]:
        """Requests where the user is the school or the current teacher, newest first."""
        query = (
            select(TeachingRequest)
            .where(or_(TeachingRequest.school_id == user_id, TeachingRequest.teacher_id == user_id))
            .order_by(TeachingRequest.created_at.desc())
            .limit(max(1, min(limit, 200)))
        )
        if status is not None:
            query = query.where(TeachingRequest.status == status)

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Error listing teaching requests", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to list teaching requests") from e

    async def respond(
        self,
        request_id: uuid.UUID,
        teacher_id: uuid.UUID,
        accept: bool,
        reason: Optional[str] = None
    ) -> RequestTransition:
        """The assigned teacher accepts or rejects a pending request."""
        target = RequestStatus.ACCEPTED if accept else RequestStatus.REJECTED
        now = utc_now()

        try:
            async with self.session_factory() as session:
                current = await self.store.get(session, request_id)
                if current.teacher_id != teacher_id:
                    raise PermissionDeniedError(
                        "Only the assigned teacher can respond",
                        request_id=str(request_id)
                    )
                if current.status != RequestStatus.PENDING:
                    raise InvalidTransitionError(
                        f"Cannot {'accept' if accept else 'reject'} a {current.status.value} request",
                        request_id=str(request_id)
                    )

                request = await self.store.conditional_update(
                    session,
                    request_id,
                    expected_version=current.version,
                    expected_statuses=[RequestStatus.PENDING],
                    values={"status": target, "timeout_at": None, "responded_at": now},
                )
                self.store.log_activity(
                    session,
                    request_id,
                    ActivityType.REQUEST_ACCEPTED if accept else ActivityType.REQUEST_REJECTED,
                    f"Request {target.value} by teacher",
                    actor_type="teacher",
                    actor_id=str(teacher_id),
                    metadata={"reason": reason} if reason else None
                )
        except SQLAlchemyError as e:
            logger.error("Error responding to teaching request", request_id=str(request_id), error=str(e))
            raise PersistenceError("Failed to update teaching request") from e

        log_request_transition(
            logger,
            str(request_id),
            RequestStatus.PENDING.value,
            target.value,
            str(teacher_id)
        )
        return RequestTransition.from_request(
            request,
            RequestStatus.PENDING,
            actor_id=teacher_id,
            reason=reason
        )

    async def cancel(
        self,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        reason: Optional[str] = None
    ) -> RequestTransition:
        """Either party cancels a pending or accepted request."""
        now = utc_now()

        try:
            async with self.session_factory() as session:
                current = await self.store.get(session, request_id)
                if not current.is_party(actor_id):
                    raise PermissionDeniedError(request_id=str(request_id))
                if current.status not in CANCELLABLE_STATUSES:
                    raise InvalidTransitionError(
                        f"Cannot cancel a {current.status.value} request",
                        request_id=str(request_id)
                    )

                from_status = current.status
                request = await self.store.conditional_update(
                    session,
                    request_id,
                    expected_version=current.version,
                    expected_statuses=[from_status],
                    values={
                        "status": RequestStatus.CANCELLED,
                        "timeout_at": None,
                        "cancelled_at": now,
                        "cancelled_by": actor_id,
                        "cancellation_reason": reason,
                    },
                )
                actor_type = "school" if actor_id == current.school_id else "teacher"
                self.store.log_activity(
                    session,
                    request_id,
                    ActivityType.REQUEST_CANCELLED,
                    f"Request cancelled by {actor_type}",
                    actor_type=actor_type,
                    actor_id=str(actor_id),
                    metadata={"reason": reason, "previous_status": from_status.value}
                )
        except SQLAlchemyError as e:
            logger.error("Error cancelling teaching request", request_id=str(request_id), error=str(e))
            raise PersistenceError("Failed to cancel teaching request") from e

        log_request_transition(
            logger,
            str(request_id),
            from_status.value,
            RequestStatus.CANCELLED.value,
            str(request.teacher_id),
            cancelled_by=str(actor_id)
        )
        return RequestTransition.from_request(request, from_status, actor_id=actor_id, reason=reason)
