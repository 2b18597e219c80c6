"""Unit tests for the pure escalation policy."""

import uuid
from datetime import datetime, timedelta

import pytest

from teachmatch.errors import NoCandidatesError
from teachmatch.escalation.policy import (
    Escalate,
    Fail,
    RankedCandidate,
    decide_timeout,
    initial_assignment,
    is_lapsed,
)
from teachmatch.models.teaching_request import RequestStatus, TeachingRequest

WINDOW = timedelta(hours=2)
NOW = datetime(2030, 3, 1, 8, 0, 0)


def _request(status=RequestStatus.PENDING, timeout_at=NOW, fallback=None, teacher_id=None):
    return TeachingRequest(
        id=uuid.uuid4(),
        school_id=uuid.uuid4(),
        teacher_id=teacher_id or uuid.uuid4(),
        subject="Math",
        schedule={"date": "2030-03-14", "time": "09:30"},
        status=status,
        timeout_at=timeout_at,
        fallback_teachers=fallback if fallback is not None else [],
        version=1,
    )


class TestInitialAssignment:
    def test_top_candidate_assigned_rest_frozen(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        assignment = initial_assignment(
            [RankedCandidate(a, 4.8), RankedCandidate(b, 4.5), RankedCandidate(c, 4.0)],
            NOW,
            WINDOW,
        )

        assert assignment.teacher_id == a
        assert assignment.fallback_teachers == (str(b), str(c))
        assert assignment.timeout_at == NOW + WINDOW

    def test_single_candidate_has_empty_fallback(self):
        a = uuid.uuid4()
        assignment = initial_assignment([RankedCandidate(a, 3.0)], NOW, WINDOW)

        assert assignment.teacher_id == a
        assert assignment.fallback_teachers == ()

    def test_duplicates_are_dropped(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assignment = initial_assignment(
            [RankedCandidate(a, 4.8), RankedCandidate(a, 4.8), RankedCandidate(b, 4.1)],
            NOW,
            WINDOW,
        )

        assert assignment.fallback_teachers == (str(b),)
        assert str(assignment.teacher_id) not in assignment.fallback_teachers

    def test_no_candidates_raises(self):
        with pytest.raises(NoCandidatesError) as exc_info:
            initial_assignment([], NOW, WINDOW)

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "No available teachers match criteria"


class TestDecideTimeout:
    def test_not_lapsed_yet(self):
        request = _request(timeout_at=NOW + timedelta(minutes=1))

        assert is_lapsed(request, NOW) is False
        assert decide_timeout(request, NOW, WINDOW) is None

    def test_lapsed_exactly_at_deadline(self):
        assert is_lapsed(_request(timeout_at=NOW), NOW) is True

    def test_escalates_to_head_of_fallback(self):
        current, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        request = _request(teacher_id=current, fallback=[str(b), str(c)])

        decision = decide_timeout(request, NOW + timedelta(minutes=5), WINDOW)

        assert isinstance(decision, Escalate)
        assert decision.previous_teacher_id == current
        assert decision.teacher_id == b
        assert decision.fallback_teachers == (str(c),)
        assert decision.timeout_at == NOW + timedelta(minutes=5) + WINDOW

    def test_fails_when_fallback_exhausted(self):
        current = uuid.uuid4()
        decision = decide_timeout(_request(teacher_id=current, fallback=[]), NOW, WINDOW)

        assert decision == Fail(teacher_id=current)

    @pytest.mark.parametrize(
        "status",
        [RequestStatus.ACCEPTED, RequestStatus.REJECTED, RequestStatus.CANCELLED, RequestStatus.FAILED],
    )
    def test_non_pending_requests_are_ignored(self, status):
        request = _request(status=status, fallback=[str(uuid.uuid4())])

        assert decide_timeout(request, NOW + timedelta(days=1), WINDOW) is None

    def test_pending_without_deadline_is_ignored(self):
        assert decide_timeout(_request(timeout_at=None), NOW, WINDOW) is None

    def test_decision_does_not_mutate_request(self):
        b = uuid.uuid4()
        request = _request(fallback=[str(b)])

        decide_timeout(request, NOW, WINDOW)

        assert request.fallback_teachers == [str(b)]
