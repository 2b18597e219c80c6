"""Reschedule negotiation between the two parties of a teaching request."""

import uuid
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from teachmatch.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    PersistenceError,
    RequestNotFoundError,
    StaleStateError,
)
from teachmatch.escalation.store import RequestStore
from teachmatch.models.activity import ActivityType
from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.notification import NotificationType
from teachmatch.models.teaching_request import (
    RequestStatus,
    RescheduleRequest,
    RescheduleStatus,
    TeachingRequest,
)
from teachmatch.services.notifications import NotificationService, OutgoingNotification, describe_session
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_logger

logger = get_logger(__name__)

RESCHEDULABLE_STATUSES = (RequestStatus.PENDING, RequestStatus.ACCEPTED)


class RescheduleService:
    """Propose, accept and reject schedule changes."""

    def __init__(
        self,
        notifications: NotificationService,
        session_factory: SessionFactory = get_db_session,
        store: Optional[RequestStore] = None
    ):
        self.notifications = notifications
        self.session_factory = session_factory
        self.store = store or RequestStore()

    async def propose(
        self,
        request_id: uuid.UUID,
        proposer_id: uuid.UUID,
        new_schedule: Dict[str, str],
        reason: Optional[str] = None
    ) -> RescheduleRequest:
        try:
            async with self.session_factory() as session:
                request = await self.store.get(session, request_id)
                if not request.is_party(proposer_id):
                    raise PermissionDeniedError(request_id=str(request_id))
                if request.status not in RESCHEDULABLE_STATUSES:
                    raise InvalidTransitionError(
                        f"Cannot reschedule a {request.status.value} request",
                        request_id=str(request_id)
                    )

                proposal = RescheduleRequest(
                    teaching_request_id=request_id,
                    proposed_by=proposer_id,
                    old_schedule=dict(request.schedule),
                    new_schedule=new_schedule,
                    reason=reason,
                    status=RescheduleStatus.PENDING,
                )
                session.add(proposal)
                await session.flush()
                self.store.log_activity(
                    session,
                    request_id,
                    ActivityType.RESCHEDULE_PROPOSED,
                    "Reschedule proposed",
                    actor_type=self._actor_type(request, proposer_id),
                    actor_id=str(proposer_id),
                    metadata={"reschedule_id": str(proposal.id), "new_schedule": new_schedule}
                )
        except SQLAlchemyError as e:
            logger.error("Error proposing reschedule", request_id=str(request_id), error=str(e))
            raise PersistenceError("Failed to propose reschedule") from e

        logger.info(
            "Reschedule proposed",
            request_id=str(request_id),
            reschedule_id=str(proposal.id),
            proposed_by=str(proposer_id)
        )

        recipient = request.teacher_id if proposer_id == request.school_id else request.school_id
        proposer = "The school" if proposer_id == request.school_id else "The teacher"
        await self.notifications.notify([
            OutgoingNotification(
                user_id=recipient,
                type=NotificationType.RESCHEDULE_PROPOSED,
                title="Reschedule Proposed",
                message=f"{proposer} has proposed to reschedule {describe_session(request.subject, request.schedule)}.",
                subject=request.subject,
                schedule=new_schedule,
                old_schedule=dict(request.schedule),
                reason=reason,
                data={"request_id": str(request_id), "reschedule_id": str(proposal.id)},
            )
        ])
        return proposal

    async def respond(
        self,
        request_id: uuid.UUID,
        reschedule_id: uuid.UUID,
        responder_id: uuid.UUID,
        accept: bool
    ) -> RescheduleRequest:
        """The party who did not propose accepts or rejects the change.

        Accepting replaces the parent request's schedule.
        """
        target = RescheduleStatus.ACCEPTED if accept else RescheduleStatus.REJECTED
        now = utc_now()

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(RescheduleRequest).where(
                        RescheduleRequest.id == reschedule_id,
                        RescheduleRequest.teaching_request_id == request_id,
                        RescheduleRequest.status == RescheduleStatus.PENDING,
                    )
                )
                proposal = result.scalar_one_or_none()
                if proposal is None:
                    raise RequestNotFoundError(
                        "Reschedule request not found or already handled",
                        reschedule_id=str(reschedule_id)
                    )
                if proposal.proposed_by == responder_id:
                    raise PermissionDeniedError("You cannot handle your own proposal")

                request = await self.store.get(session, request_id)
                if not request.is_party(responder_id):
                    raise PermissionDeniedError(request_id=str(request_id))

                if accept:
                    if request.status not in RESCHEDULABLE_STATUSES:
                        raise InvalidTransitionError(
                            f"Cannot reschedule a {request.status.value} request",
                            request_id=str(request_id)
                        )
                    request = await self.store.conditional_update(
                        session,
                        request_id,
                        expected_version=request.version,
                        expected_statuses=[request.status],
                        values={"schedule": dict(proposal.new_schedule)},
                    )

                handled = await session.execute(
                    update(RescheduleRequest)
                    .where(
                        RescheduleRequest.id == reschedule_id,
                        RescheduleRequest.status == RescheduleStatus.PENDING,
                    )
                    .values(status=target, responded_at=now)
                    .execution_options(synchronize_session=False)
                )
                if handled.rowcount != 1:
                    raise StaleStateError("Reschedule request already handled", reschedule_id=str(reschedule_id))

                self.store.log_activity(
                    session,
                    request_id,
                    ActivityType.RESCHEDULE_ACCEPTED if accept else ActivityType.RESCHEDULE_REJECTED,
                    f"Reschedule {target.value}",
                    actor_type=self._actor_type(request, responder_id),
                    actor_id=str(responder_id),
                    metadata={"reschedule_id": str(reschedule_id)}
                )
                proposal.status = target
                proposal.responded_at = now
        except SQLAlchemyError as e:
            logger.error("Error handling reschedule", reschedule_id=str(reschedule_id), error=str(e))
            raise PersistenceError("Failed to handle reschedule") from e

        logger.info(
            "Reschedule handled",
            request_id=str(request_id),
            reschedule_id=str(reschedule_id),
            status=target.value
        )

        if accept:
            ntype, title, verb, schedule = (
                NotificationType.RESCHEDULE_ACCEPTED, "Reschedule Accepted", "accepted", proposal.new_schedule
            )
        else:
            ntype, title, verb, schedule = (
                NotificationType.RESCHEDULE_DECLINED, "Reschedule Declined", "declined", proposal.old_schedule
            )
        await self.notifications.notify([
            OutgoingNotification(
                user_id=proposal.proposed_by,
                type=ntype,
                title=title,
                message=f"Your reschedule request for {request.subject} has been {verb}.",
                subject=request.subject,
                schedule=schedule,
                data={"request_id": str(request_id), "reschedule_id": str(reschedule_id)},
            )
        ])
        return proposal

    @staticmethod
    def _actor_type(request: TeachingRequest, user_id: uuid.UUID) -> str:
        return "school" if user_id == request.school_id else "teacher"
