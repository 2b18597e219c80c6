"""Request store: inserts, guarded updates and the lapsed-request query."""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teachmatch.errors import RequestNotFoundError, StaleStateError
from teachmatch.models.activity import ActivityLog, ActivityType
from teachmatch.models.teaching_request import RequestStatus, TeachingRequest
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_correlation_id


class RequestStore:
    """Persistence for TeachingRequest rows.

    Every status-changing write goes through :meth:`conditional_update`,
    which only matches the row if it still has the version and status the
    caller read. Concurrent writers therefore cannot both win.
    """

    async def insert(self, session: AsyncSession, request: TeachingRequest) -> TeachingRequest:
        session.add(request)
        await session.flush()
        return request

    async def get(
        self,
        session: AsyncSession,
        request_id: uuid.UUID,
        refresh: bool = False,
    ) -> TeachingRequest:
        query = select(TeachingRequest).where(TeachingRequest.id == request_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await session.execute(query)
        request = result.scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(request_id=str(request_id))
        return request

    async def find_lapsed(
        self,
        session: AsyncSession,
        now: datetime,
        limit: int,
    ) -> List[TeachingRequest]:
        """Pending requests whose deadline is at or before ``now``."""
        result = await session.execute(
            select(TeachingRequest)
            .where(
                TeachingRequest.status == RequestStatus.PENDING,
                TeachingRequest.timeout_at.is_not(None),
                TeachingRequest.timeout_at <= now,
            )
            .order_by(TeachingRequest.timeout_at, TeachingRequest.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def conditional_update(
        self,
        session: AsyncSession,
        request_id: uuid.UUID,
        expected_version: int,
        expected_statuses: Iterable[RequestStatus],
        values: Dict[str, Any],
    ) -> TeachingRequest:
        """Apply ``values`` only if the row is unchanged since it was read.

        Raises StaleStateError when another writer got there first.
        """
        statuses = list(expected_statuses)
        result = await session.execute(
            update(TeachingRequest)
            .where(
                TeachingRequest.id == request_id,
                TeachingRequest.version == expected_version,
                TeachingRequest.status.in_(statuses),
            )
            .values(version=expected_version + 1, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleStateError(
                request_id=str(request_id),
                expected_version=expected_version,
                expected_statuses=[s.value for s in statuses],
            )
        return await self.get(session, request_id, refresh=True)

    def log_activity(
        self,
        session: AsyncSession,
        request_id: uuid.UUID,
        activity_type: ActivityType,
        title: str,
        actor_type: str = "system",
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        session.add(
            ActivityLog(
                teaching_request_id=request_id,
                activity_type=activity_type,
                title=title,
                actor_type=actor_type,
                actor_id=actor_id or "escalation_engine",
                metadata_json=json.dumps(metadata, default=str) if metadata else None,
                correlation_id=correlation_id or get_correlation_id(),
            )
        )
