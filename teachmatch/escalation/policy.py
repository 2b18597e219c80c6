"""Pure transition rules for automated teaching requests.

Nothing in this module touches storage or reads the clock; the caller
passes ``now`` in. The engine applies the decisions with guarded writes.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple, Union

from teachmatch.errors import NoCandidatesError
from teachmatch.models.teaching_request import RequestStatus, TeachingRequest


@dataclass(frozen=True)
class RankedCandidate:
    """One entry of a candidate ranking."""

    teacher_id: uuid.UUID
    rating: float


@dataclass(frozen=True)
class InitialAssignment:
    teacher_id: uuid.UUID
    fallback_teachers: Tuple[str, ...]
    timeout_at: datetime


@dataclass(frozen=True)
class Escalate:
    """Hand the request to the next frozen candidate."""

    previous_teacher_id: uuid.UUID
    teacher_id: uuid.UUID
    fallback_teachers: Tuple[str, ...]
    timeout_at: datetime


@dataclass(frozen=True)
class Fail:
    """Candidate list exhausted; the assignee stays as the last one tried."""

    teacher_id: uuid.UUID


Decision = Union[Escalate, Fail]


def initial_assignment(
    candidates: Sequence[RankedCandidate],
    now: datetime,
    window: timedelta,
) -> InitialAssignment:
    """Top candidate becomes the assignee, the rest the frozen fallback queue."""
    ordered: List[uuid.UUID] = []
    for candidate in candidates:
        if candidate.teacher_id not in ordered:
            ordered.append(candidate.teacher_id)

    if not ordered:
        raise NoCandidatesError()

    return InitialAssignment(
        teacher_id=ordered[0],
        fallback_teachers=tuple(str(teacher_id) for teacher_id in ordered[1:]),
        timeout_at=now + window,
    )


def is_lapsed(request: TeachingRequest, now: datetime) -> bool:
    return (
        request.status == RequestStatus.PENDING
        and request.timeout_at is not None
        and now >= request.timeout_at
    )


def decide_timeout(
    request: TeachingRequest,
    now: datetime,
    window: timedelta,
) -> Optional[Decision]:
    """Decide what a sweep does with one request at time ``now``.

    Returns None when the request is not pending or its deadline has not
    lapsed yet.
    """
    if not is_lapsed(request, now):
        return None

    fallback = list(request.fallback_teachers or [])
    if not fallback:
        return Fail(teacher_id=request.teacher_id)

    next_teacher = uuid.UUID(fallback[0])
    return Escalate(
        previous_teacher_id=request.teacher_id,
        teacher_id=next_teacher,
        fallback_teachers=tuple(fallback[1:]),
        timeout_at=now + window,
    )
