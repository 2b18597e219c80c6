"""In-app notifications and best-effort dispatch on request transitions."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from teachmatch.connectors.email_smtp import SMTPEmailConnector
from teachmatch.errors import PersistenceError, ValidationFailedError
from teachmatch.escalation.engine import RequestTransition
from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.notification import Notification, NotificationType
from teachmatch.models.profile import SchoolProfile, TeacherProfile
from teachmatch.models.teaching_request import RequestStatus
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_logger
from teachmatch.utils.security import sanitize_email

logger = get_logger(__name__)


@dataclass
class OutgoingNotification:
    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    subject: str
    schedule: Dict[str, str]
    data: Dict[str, Any] = field(default_factory=dict)
    old_schedule: Optional[Dict[str, str]] = None
    reason: Optional[str] = None


def describe_session(subject: str, schedule: Dict[str, str]) -> str:
    return f"{subject} on {schedule.get('date', 'TBD')} at {schedule.get('time', 'TBD')}"


def notifications_for_transition(transition: RequestTransition) -> List[OutgoingNotification]:
    """Who hears about a request transition, and what they are told."""
    session_text = describe_session(transition.subject, transition.schedule)
    data = {"request_id": str(transition.request_id)}

    def note(user_id, ntype, title, message, **extra) -> OutgoingNotification:
        return OutgoingNotification(
            user_id=user_id,
            type=ntype,
            title=title,
            message=message,
            subject=transition.subject,
            schedule=transition.schedule,
            data=dict(data),
            **extra
        )

    to_status = transition.to_status
    if to_status == RequestStatus.PENDING:
        outgoing = [
            note(
                transition.teacher_id,
                NotificationType.REQUEST_RECEIVED,
                "New Teaching Request",
                f"You have a new teaching request for {session_text}."
            )
        ]
        if transition.is_escalation:
            outgoing.append(
                note(
                    transition.school_id,
                    NotificationType.REQUEST_REASSIGNED,
                    "Request Reassigned",
                    f"The previous teacher did not respond in time. Your request for {session_text} "
                    "has been passed to the next available teacher."
                )
            )
        return outgoing

    if to_status == RequestStatus.ACCEPTED:
        return [
            note(
                transition.school_id,
                NotificationType.REQUEST_ACCEPTED,
                "Request Accepted",
                f"Your request for {session_text} has been accepted."
            )
        ]

    if to_status == RequestStatus.REJECTED:
        return [
            note(
                transition.school_id,
                NotificationType.REQUEST_REJECTED,
                "Request Declined",
                f"Your request for {session_text} has been declined.",
                reason=transition.reason
            )
        ]

    if to_status == RequestStatus.FAILED:
        return [
            note(
                transition.school_id,
                NotificationType.REQUEST_FAILED,
                "No Teacher Available",
                f"No teacher accepted your request for {session_text}. Please submit a new request."
            )
        ]

    if to_status == RequestStatus.CANCELLED:
        message = f"The session for {session_text} has been cancelled."
        return [
            note(
                user_id,
                NotificationType.CLASS_CANCELLED,
                "Session Cancelled",
                message,
                reason=transition.reason
            )
            for user_id in (transition.teacher_id, transition.school_id)
        ]

    return []


class NotificationService:
    """Stores in-app notifications and mirrors them by email when enabled."""

    def __init__(
        self,
        session_factory: SessionFactory = get_db_session,
        email_connector: Optional[SMTPEmailConnector] = None
    ):
        self.session_factory = session_factory
        self.email_connector = email_connector or SMTPEmailConnector()

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0
    ) -> Dict[str, Any]:
        """Newest-first page of a user's notifications plus counts."""
        limit = max(1, min(limit, 100))
        offset = max(0, offset)
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Notification)
                    .where(Notification.user_id == user_id)
                    .order_by(Notification.created_at.desc())
                    .offset(offset)
                    .limit(limit)
                )
                notifications = result.scalars().all()

                total = await session.scalar(
                    select(func.count(Notification.id)).where(Notification.user_id == user_id)
                )
                unread = await session.scalar(
                    select(func.count(Notification.id)).where(
                        Notification.user_id == user_id,
                        Notification.read_at.is_(None)
                    )
                )
        except SQLAlchemyError as e:
            logger.error("Error fetching notifications", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to fetch notifications") from e

        return {
            "notifications": [n.to_dict() for n in notifications],
            "total": total or 0,
            "unread_count": unread or 0,
        }

    async def mark_read(
        self,
        user_id: uuid.UUID,
        notification_ids: Optional[Iterable[uuid.UUID]] = None,
        mark_all: bool = False
    ) -> int:
        """Mark some or all of a user's unread notifications as read."""
        if not mark_all and not notification_ids:
            raise ValidationFailedError("Provide notification_ids or mark_all_read")

        query = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read_at.is_(None))
            .values(read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if not mark_all:
            query = query.where(Notification.id.in_(list(notification_ids)))

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
        except SQLAlchemyError as e:
            logger.error("Error marking notifications as read", user_id=str(user_id), error=str(e))
            raise PersistenceError("Failed to mark notifications as read") from e

        return result.rowcount or 0

    async def dispatch(self, transition: RequestTransition) -> None:
        """Notify the parties of a committed request transition. Never raises."""
        await self.notify(notifications_for_transition(transition))

    async def notify(self, outgoing: List[OutgoingNotification]) -> None:
        """Store and email a batch of notifications. Failures are logged only."""
        if not outgoing:
            return

        recipients: Dict[uuid.UUID, Dict[str, Optional[str]]] = {}
        try:
            async with self.session_factory() as session:
                for item in outgoing:
                    session.add(
                        Notification(
                            user_id=item.user_id,
                            type=item.type,
                            title=item.title,
                            message=item.message,
                            data=item.data,
                        )
                    )
                if self.email_connector.is_enabled:
                    recipients = await self._lookup_recipients(session, {item.user_id for item in outgoing})
        except Exception as e:
            logger.error(
                "Failed to store notifications",
                count=len(outgoing),
                types=[item.type.value for item in outgoing],
                error=str(e)
            )
            return

        for item in outgoing:
            contact = recipients.get(item.user_id)
            if not contact or not contact.get("email"):
                continue
            try:
                await self.email_connector.send_request_email(
                    to_email=contact["email"],
                    notification_type=item.type.value,
                    recipient_name=contact.get("name"),
                    subject=item.subject,
                    schedule=item.schedule,
                    message=item.message,
                    old_schedule=item.old_schedule,
                    reason=item.reason
                )
            except Exception as e:
                logger.error(
                    "Failed to send notification email",
                    user_id=str(item.user_id),
                    to=sanitize_email(contact["email"]),
                    type=item.type.value,
                    error=str(e)
                )

    async def _lookup_recipients(self, session, user_ids) -> Dict[uuid.UUID, Dict[str, Optional[str]]]:
        contacts: Dict[uuid.UUID, Dict[str, Optional[str]]] = {}

        result = await session.execute(
            select(TeacherProfile.id, TeacherProfile.full_name, TeacherProfile.email)
            .where(TeacherProfile.id.in_(user_ids))
        )
        for user_id, name, email in result.all():
            contacts[user_id] = {"name": name, "email": email}

        result = await session.execute(
            select(SchoolProfile.id, SchoolProfile.school_name, SchoolProfile.email)
            .where(SchoolProfile.id.in_(user_ids))
        )
        for user_id, name, email in result.all():
            contacts[user_id] = {"name": name, "email": email}

        return contacts
