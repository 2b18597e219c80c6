"""Unit tests for database models."""

import uuid
from datetime import datetime

from teachmatch.models import (
    Notification,
    NotificationType,
    RequestStatus,
    TeacherProfile,
    TeachingRequest,
)


class TestTeachingRequestModel:
    """Test the TeachingRequest model."""

    def _request(self, **overrides):
        values = dict(
            id=uuid.uuid4(),
            school_id=uuid.uuid4(),
            teacher_id=uuid.uuid4(),
            subject="Math",
            schedule={"date": "2030-03-14", "time": "09:30"},
            status=RequestStatus.PENDING,
            fallback_teachers=[],
            version=1,
        )
        values.update(overrides)
        return TeachingRequest(**values)

    def test_is_party(self):
        request = self._request()

        assert request.is_party(request.school_id) is True
        assert request.is_party(request.teacher_id) is True
        assert request.is_party(uuid.uuid4()) is False

    def test_is_terminal_property(self):
        assert self._request(status=RequestStatus.PENDING).is_terminal is False
        assert self._request(status=RequestStatus.ACCEPTED).is_terminal is False
        assert self._request(status=RequestStatus.FAILED).is_terminal is True
        assert self._request(status=RequestStatus.CANCELLED).is_terminal is True
        assert self._request(status=RequestStatus.TIMEOUT).is_terminal is True

    def test_next_candidate(self):
        nxt = uuid.uuid4()

        assert self._request(fallback_teachers=[str(nxt), str(uuid.uuid4())]).next_candidate == nxt
        assert self._request(fallback_teachers=[]).next_candidate is None

    def test_to_dict(self):
        timeout_at = datetime(2030, 3, 1, 10, 0)
        request = self._request(timeout_at=timeout_at, is_automated=True, escalation_count=0)

        data = request.to_dict()

        assert data["status"] == "pending"
        assert data["teacher_id"] == str(request.teacher_id)
        assert data["timeout_at"] == "2030-03-01T10:00:00"
        assert data["cancelled_by"] is None


class TestTeacherProfileModel:
    """Test the TeacherProfile model."""

    def test_set_subjects_replaces_and_dedupes(self):
        teacher = TeacherProfile(id=uuid.uuid4(), full_name="Edna", email="edna@example.com", subject_rows=[])

        teacher.set_subjects(["Math", " Science ", "Math", ""])
        assert teacher.subjects == ["Math", "Science"]

        kept = next(row for row in teacher.subject_rows if row.subject == "Math")
        teacher.set_subjects(["Math", "History"])

        assert teacher.subjects == ["History", "Math"]
        assert kept in teacher.subject_rows


class TestNotificationModel:
    def test_is_read(self):
        note = Notification(
            user_id=uuid.uuid4(),
            type=NotificationType.REQUEST_RECEIVED,
            title="New Teaching Request",
            message="You have a new teaching request.",
        )

        assert note.is_read is False
        note.read_at = datetime(2030, 3, 1, 9, 0)
        assert note.is_read is True
