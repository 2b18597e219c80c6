"""Tests for the request, reschedule, review and profile services."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from teachmatch.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    RequestNotFoundError,
    StaleStateError,
    ValidationFailedError,
)
from teachmatch.escalation.engine import EscalationEngine, RequestCriteria
from teachmatch.models import (
    Notification,
    NotificationType,
    RequestStatus,
    RescheduleStatus,
    TeacherProfile,
)
from teachmatch.services.notifications import NotificationService
from teachmatch.services.profiles import ProfileService, TeacherSearch
from teachmatch.services.requests import TeachingRequestService
from teachmatch.services.reschedule import RescheduleService
from teachmatch.services.reviews import ReviewService


@pytest.fixture
def request_service(session_factory):
    return TeachingRequestService(session_factory)


@pytest.fixture
def parties(make_school, make_teacher):
    async def _parties():
        return await make_school(), await make_teacher()

    return _parties


@pytest.fixture
def accepted_request(request_service, parties, schedule):
    async def _accepted():
        school, teacher = await parties()
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)
        await request_service.respond(request.id, teacher, accept=True)
        return request.id, school, teacher

    return _accepted


async def _notifications_for(session_factory, user_id):
    async with session_factory() as session:
        result = await session.execute(select(Notification).where(Notification.user_id == user_id))
        return list(result.scalars().all())


class TestTeachingRequestService:
    async def test_direct_request_has_no_deadline(self, request_service, parties, schedule):
        school, teacher = await parties()

        request, transition = await request_service.create_direct(school, teacher, "Math", schedule)

        assert request.status == RequestStatus.PENDING
        assert request.is_automated is False
        assert request.timeout_at is None
        assert transition.to_status == RequestStatus.PENDING
        assert transition.is_escalation is False

    async def test_direct_request_to_unknown_teacher(self, request_service, make_school, schedule):
        school = await make_school()

        with pytest.raises(RequestNotFoundError):
            await request_service.create_direct(school, uuid.uuid4(), "Math", schedule)

    async def test_assigned_teacher_accepts(self, request_service, parties, schedule, load_request):
        school, teacher = await parties()
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)

        transition = await request_service.respond(request.id, teacher, accept=True)

        assert transition.from_status == RequestStatus.PENDING
        assert transition.to_status == RequestStatus.ACCEPTED
        stored = await load_request(request.id)
        assert stored.status == RequestStatus.ACCEPTED
        assert stored.responded_at is not None
        assert stored.version == 2

    async def test_only_assigned_teacher_can_respond(self, request_service, parties, make_teacher, schedule):
        school, teacher = await parties()
        other = await make_teacher("Other")
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)

        with pytest.raises(PermissionDeniedError):
            await request_service.respond(request.id, other, accept=True)
        with pytest.raises(PermissionDeniedError):
            await request_service.respond(request.id, school, accept=True)

    async def test_cannot_respond_twice(self, request_service, parties, schedule):
        school, teacher = await parties()
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)
        await request_service.respond(request.id, teacher, accept=False, reason="Busy")

        with pytest.raises(InvalidTransitionError):
            await request_service.respond(request.id, teacher, accept=True)

    async def test_previous_teacher_cannot_accept_after_escalation(
        self, session_factory, request_service, make_school, make_teacher, schedule, now
    ):
        engine = EscalationEngine(session_factory, timeout_window=timedelta(hours=2))
        school = await make_school()
        first = await make_teacher("First", avg_rating=4.9)
        await make_teacher("Second", avg_rating=4.1)
        request = await engine.create(
            school, RequestCriteria(subject="Math", schedule=schedule, grade_level=5), now=now
        )
        await engine.sweep(now=now + timedelta(hours=2))

        with pytest.raises(PermissionDeniedError):
            await request_service.respond(request.id, first, accept=True)

    async def test_either_party_cancels_accepted_request(self, request_service, accepted_request, load_request):
        request_id, school, teacher = await accepted_request()

        transition = await request_service.cancel(request_id, teacher, reason="Sick")

        assert transition.from_status == RequestStatus.ACCEPTED
        assert transition.to_status == RequestStatus.CANCELLED
        stored = await load_request(request_id)
        assert stored.status == RequestStatus.CANCELLED
        assert stored.cancelled_by == teacher
        assert stored.cancellation_reason == "Sick"
        assert stored.cancelled_at is not None

    async def test_cancel_requires_party_and_live_status(
        self, request_service, accepted_request, make_school
    ):
        request_id, school, _ = await accepted_request()
        stranger = await make_school("Shelbyville High")

        with pytest.raises(PermissionDeniedError):
            await request_service.cancel(request_id, stranger, reason="Nope")

        await request_service.cancel(request_id, school, reason="Closed")
        with pytest.raises(InvalidTransitionError):
            await request_service.cancel(request_id, school, reason="Again")

    async def test_list_for_user_filters_by_party_and_status(self, request_service, parties, make_teacher, schedule):
        school, teacher = await parties()
        other = await make_teacher("Other")
        first, _ = await request_service.create_direct(school, teacher, "Math", schedule)
        await request_service.create_direct(school, other, "Math", schedule)
        await request_service.respond(first.id, teacher, accept=True)

        assert len(await request_service.list_for_user(school)) == 2
        assert [r.id for r in await request_service.list_for_user(teacher)] == [first.id]
        accepted = await request_service.list_for_user(school, status=RequestStatus.ACCEPTED)
        assert [r.id for r in accepted] == [first.id]

    async def test_get_for_party(self, request_service, parties, make_school, schedule):
        school, teacher = await parties()
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)

        assert (await request_service.get_for_party(request.id, teacher)).id == request.id
        with pytest.raises(PermissionDeniedError):
            await request_service.get_for_party(request.id, await make_school("Other"))
        with pytest.raises(RequestNotFoundError):
            await request_service.get_for_party(uuid.uuid4(), school)


class TestRescheduleService:
    @pytest.fixture
    def reschedules(self, session_factory):
        return RescheduleService(NotificationService(session_factory), session_factory)

    async def test_accepted_proposal_replaces_schedule(
        self, reschedules, accepted_request, session_factory, load_request, schedule
    ):
        request_id, school, teacher = await accepted_request()
        new_schedule = {"date": "2030-03-15", "time": "11:00"}

        proposal = await reschedules.propose(request_id, school, new_schedule, reason="Assembly")
        assert proposal.status == RescheduleStatus.PENDING
        assert proposal.old_schedule == schedule

        handled = await reschedules.respond(request_id, proposal.id, teacher, accept=True)

        assert handled.status == RescheduleStatus.ACCEPTED
        stored = await load_request(request_id)
        assert stored.schedule == new_schedule
        assert stored.status == RequestStatus.ACCEPTED

        teacher_notes = await _notifications_for(session_factory, teacher)
        school_notes = await _notifications_for(session_factory, school)
        assert NotificationType.RESCHEDULE_PROPOSED in {n.type for n in teacher_notes}
        assert NotificationType.RESCHEDULE_ACCEPTED in {n.type for n in school_notes}

    async def test_rejected_proposal_keeps_schedule(
        self, reschedules, accepted_request, session_factory, load_request, schedule
    ):
        request_id, school, teacher = await accepted_request()
        proposal = await reschedules.propose(request_id, teacher, {"date": "2030-04-01", "time": "10:00"})

        handled = await reschedules.respond(request_id, proposal.id, school, accept=False)

        assert handled.status == RescheduleStatus.REJECTED
        assert (await load_request(request_id)).schedule == schedule
        teacher_notes = await _notifications_for(session_factory, teacher)
        assert NotificationType.RESCHEDULE_DECLINED in {n.type for n in teacher_notes}

    async def test_proposer_cannot_handle_own_proposal(self, reschedules, accepted_request):
        request_id, school, _ = await accepted_request()
        proposal = await reschedules.propose(request_id, school, {"date": "2030-04-01", "time": "10:00"})

        with pytest.raises(PermissionDeniedError):
            await reschedules.respond(request_id, proposal.id, school, accept=True)

    async def test_proposal_is_handled_once(self, reschedules, accepted_request):
        request_id, school, teacher = await accepted_request()
        proposal = await reschedules.propose(request_id, school, {"date": "2030-04-01", "time": "10:00"})
        await reschedules.respond(request_id, proposal.id, teacher, accept=False)

        with pytest.raises(RequestNotFoundError):
            await reschedules.respond(request_id, proposal.id, teacher, accept=True)

    async def test_cannot_reschedule_cancelled_request(self, reschedules, request_service, accepted_request):
        request_id, school, _ = await accepted_request()
        await request_service.cancel(request_id, school, reason="Closed")

        with pytest.raises(InvalidTransitionError):
            await reschedules.propose(request_id, school, {"date": "2030-04-01", "time": "10:00"})

    async def test_outsider_cannot_propose(self, reschedules, accepted_request, make_school):
        request_id, _, _ = await accepted_request()

        with pytest.raises(PermissionDeniedError):
            await reschedules.propose(request_id, await make_school("Other"), {"date": "2030-04-01", "time": "10:00"})


class TestReviewService:
    @pytest.fixture
    def reviews(self, session_factory):
        return ReviewService(session_factory)

    async def test_review_updates_teacher_rating(self, reviews, accepted_request, session_factory):
        request_id, school, teacher = await accepted_request()

        review = await reviews.submit(school, request_id, 5, "Great class")

        assert review.rating == 5
        async with session_factory() as session:
            profile = await session.get(TeacherProfile, teacher)
        assert profile.avg_rating == pytest.approx(5.0)
        assert profile.review_count == 1

    async def test_resubmitting_replaces_review(self, reviews, accepted_request, session_factory):
        request_id, school, teacher = await accepted_request()
        first = await reviews.submit(school, request_id, 5)

        second = await reviews.submit(school, request_id, 3, "Second thoughts")

        assert second.id == first.id
        async with session_factory() as session:
            profile = await session.get(TeacherProfile, teacher)
        assert profile.avg_rating == pytest.approx(3.0)
        assert profile.review_count == 1
        assert [r.comment for r in await reviews.recent_for_teacher(teacher)] == ["Second thoughts"]

    async def test_rating_averages_across_requests(
        self, reviews, request_service, accepted_request, session_factory, schedule
    ):
        request_id, school, teacher = await accepted_request()
        other, _ = await request_service.create_direct(school, teacher, "Math", schedule)
        await request_service.respond(other.id, teacher, accept=True)

        await reviews.submit(school, request_id, 5)
        await reviews.submit(school, other.id, 4)

        async with session_factory() as session:
            profile = await session.get(TeacherProfile, teacher)
        assert profile.avg_rating == pytest.approx(4.5)
        assert profile.review_count == 2

    async def test_only_requesting_school_can_review(self, reviews, accepted_request, make_school):
        request_id, _, _ = await accepted_request()

        with pytest.raises(PermissionDeniedError):
            await reviews.submit(await make_school("Other"), request_id, 4)

    async def test_only_accepted_requests_can_be_reviewed(self, reviews, request_service, parties, schedule):
        school, teacher = await parties()
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)

        with pytest.raises(InvalidTransitionError):
            await reviews.submit(school, request.id, 4)

    async def test_rating_out_of_range(self, reviews, accepted_request):
        request_id, school, _ = await accepted_request()

        with pytest.raises(ValidationFailedError):
            await reviews.submit(school, request_id, 6)


class TestProfileService:
    @pytest.fixture
    def profiles(self, session_factory):
        return ProfileService(session_factory)

    async def test_upsert_teacher_creates_then_updates(self, profiles):
        teacher_id = uuid.uuid4()

        created = await profiles.upsert_teacher(teacher_id, {
            "full_name": "Edna Krabappel",
            "email": "edna@example.com",
            "subjects": ["Math", "Science"],
            "teaching_grade": 6,
        })
        assert created.subjects == ["Math", "Science"]

        updated = await profiles.upsert_teacher(teacher_id, {"subjects": ["History", "Math"], "experience_years": 12})

        assert updated.full_name == "Edna Krabappel"
        assert updated.subjects == ["History", "Math"]
        assert updated.experience_years == 12
        fetched = await profiles.get_teacher(teacher_id)
        assert fetched.subjects == ["History", "Math"]

    async def test_new_teacher_needs_name_and_email(self, profiles):
        with pytest.raises(ValidationFailedError):
            await profiles.upsert_teacher(uuid.uuid4(), {"subjects": ["Math"]})

    async def test_upsert_school(self, profiles):
        school_id = uuid.uuid4()
        await profiles.upsert_school(school_id, {"school_name": "Springfield", "email": "a@example.com"})

        school = await profiles.upsert_school(school_id, {"address": "19 Plympton St"})

        assert school.school_name == "Springfield"
        assert school.address == "19 Plympton St"

    async def test_get_unknown_teacher(self, profiles):
        with pytest.raises(RequestNotFoundError):
            await profiles.get_teacher(uuid.uuid4())

    async def test_search_filters_and_orders_by_experience(self, profiles, make_teacher):
        veteran = await make_teacher("Veteran", experience_years=20, qualifications=["M.Ed"])
        mid = await make_teacher("Mid", experience_years=8, qualifications=["B.Ed", "TEFL"])
        await make_teacher("Junior", experience_years=1)
        await make_teacher("Scientist", subjects=["Science"], experience_years=15)
        await make_teacher("Primary", experience_years=10, teaching_grade=3)

        by_subject = await profiles.search_teachers(TeacherSearch(subject="Math", grade_level=5))
        assert [t.id for t in by_subject][:2] == [veteran, mid]
        assert all("Math" in t.subjects for t in by_subject)
        assert all(t.teaching_grade >= 5 for t in by_subject)

        ranged = await profiles.search_teachers(TeacherSearch(min_experience=5, max_experience=10))
        assert {t.full_name for t in ranged} == {"Mid", "Primary"}

        qualified = await profiles.search_teachers(TeacherSearch(qualifications=["TEFL", "PhD"]))
        assert [t.id for t in qualified] == [mid]

    async def test_search_by_min_rating(self, profiles, make_teacher):
        await make_teacher("Low", avg_rating=2.0)
        high = await make_teacher("High", avg_rating=4.7)

        result = await profiles.search_teachers(TeacherSearch(min_rating=4.0))

        assert [t.id for t in result] == [high]


class TestConcurrentResponse:
    async def test_response_on_stale_version_loses(self, session_factory, request_service, parties, schedule):
        school, teacher = await parties()
        request, _ = await request_service.create_direct(school, teacher, "Math", schedule)
        await request_service.respond(request.id, teacher, accept=True)

        async with session_factory() as session:
            with pytest.raises(StaleStateError):
                await request_service.store.conditional_update(
                    session,
                    request.id,
                    expected_version=request.version,
                    expected_statuses=[RequestStatus.PENDING],
                    values={"status": RequestStatus.REJECTED},
                )
