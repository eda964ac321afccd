from __future__ import annotations

from datetime import datetime, timezone

import pytest

from connect_career.app.errors import PreconditionFailedError
from connect_career.app.models import (
    InterviewCreateRequest,
    InterviewFeedbackRequest,
    InterviewRescheduleRequest,
    InterviewStatus,
    InterviewType,
    InterviewUpdateRequest,
    Recommendation,
    StageUpdateRequest,
)
from connect_career.app.services.interviews import build_venue
from pipeline_builders import interview_payload


def _at_interview_stage(store, application):
    return store.update_application_stage(application.id, StageUpdateRequest(stage_key="interview"))


def _schedule(store, application, **overrides):
    request = InterviewCreateRequest.model_validate(interview_payload(**overrides))
    updated = store.create_interview(application.id, request)
    return updated, updated.interviews[-1]


def test_build_venue_keeps_only_the_matching_field() -> None:
    video = build_venue(InterviewType.video, location="HQ", meeting_link="https://meet/x")
    assert video.type == "video"
    assert video.meeting_link == "https://meet/x"
    assert not hasattr(video, "location")

    in_person = build_venue(InterviewType.in_person, location="HQ", meeting_link="https://meet/x")
    assert in_person.location == "HQ"
    assert not hasattr(in_person, "meeting_link")

    phone = build_venue(InterviewType.phone, location="HQ", meeting_link="https://meet/x")
    assert phone.type == "phone"


def test_interview_can_only_be_added_at_interview_stage(store, seeded_application) -> None:
    with pytest.raises(PreconditionFailedError):
        _schedule(store, seeded_application)
    assert store.get_application(seeded_application.id).interviews == []


def test_video_interview_drops_location_on_create(store, seeded_application) -> None:
    _at_interview_stage(store, seeded_application)
    application, interview = _schedule(store, seeded_application, location="Room 4")

    assert interview.type == InterviewType.video
    assert interview.location is None
    assert interview.meeting_link == "https://meet.example.com/abc"
    assert interview.interview_round == "Interview"
    assert interview.duration == 60
    assert interview.status == InterviewStatus.scheduled
    assert application.current_stage_key == "interview"


def test_switching_to_in_person_drops_meeting_link(store, seeded_application) -> None:
    _at_interview_stage(store, seeded_application)
    _, interview = _schedule(store, seeded_application)

    application = store.update_interview(
        interview.id,
        InterviewUpdateRequest(type=InterviewType.in_person, location="Room 4"),
    )
    edited = application.interviews[0]
    assert edited.type == InterviewType.in_person
    assert edited.location == "Room 4"
    assert edited.meeting_link is None
    assert edited.interviewer_name == "Dana Lee"

    dumped = edited.model_dump(mode="json")
    assert dumped["type"] == "in-person"
    assert dumped["meeting_link"] is None


def test_edit_without_type_keeps_stored_type(store, seeded_application) -> None:
    _at_interview_stage(store, seeded_application)
    _, interview = _schedule(store, seeded_application)

    application = store.update_interview(
        interview.id, InterviewUpdateRequest(location="Ignored", duration=45)
    )
    edited = application.interviews[0]
    assert edited.type == InterviewType.video
    assert edited.location is None
    assert edited.meeting_link == "https://meet.example.com/abc"
    assert edited.duration == 45


def test_reschedule_records_reason_and_status(store, seeded_application) -> None:
    _at_interview_stage(store, seeded_application)
    _, interview = _schedule(store, seeded_application)
    new_date = datetime(2026, 11, 9, 15, 0, tzinfo=timezone.utc)

    application = store.reschedule_interview(
        interview.id,
        InterviewRescheduleRequest(new_scheduled_date=new_date, reason="Interviewer sick"),
    )
    rescheduled = application.interviews[0]
    assert rescheduled.status == InterviewStatus.rescheduled
    assert rescheduled.scheduled_date == new_date
    assert rescheduled.reschedule_reason == "Interviewer sick"


def test_feedback_completes_interview_and_locks_it(store, seeded_application) -> None:
    _at_interview_stage(store, seeded_application)
    _, interview = _schedule(store, seeded_application)

    application = store.add_interview_feedback(
        interview.id,
        InterviewFeedbackRequest(
            rating=4,
            recommendation=Recommendation.strongly_recommend,
            strengths=["system design"],
        ),
    )
    completed = application.interviews[0]
    assert completed.status == InterviewStatus.completed
    assert completed.feedback.rating == 4
    assert completed.feedback.submitted_at_utc is not None
    assert application.current_stage_key == "interview"

    with pytest.raises(PreconditionFailedError):
        store.add_interview_feedback(interview.id, InterviewFeedbackRequest(rating=2))
    with pytest.raises(PreconditionFailedError):
        store.update_interview(interview.id, InterviewUpdateRequest(duration=30))
    with pytest.raises(PreconditionFailedError):
        store.delete_interview(interview.id)


def test_cancelled_interview_cannot_be_rescheduled(store, seeded_application) -> None:
    _at_interview_stage(store, seeded_application)
    _, interview = _schedule(store, seeded_application)

    application = store.cancel_interview(interview.id)
    assert application.interviews[0].status == InterviewStatus.cancelled

    with pytest.raises(PreconditionFailedError):
        store.reschedule_interview(
            interview.id,
            InterviewRescheduleRequest(new_scheduled_date=datetime(2026, 12, 1, tzinfo=timezone.utc)),
        )


def test_interview_mutations_bump_version(store, seeded_application) -> None:
    moved = _at_interview_stage(store, seeded_application)
    version = moved.version
    application, interview = _schedule(store, seeded_application)
    assert application.version == version + 1

    application = store.delete_interview(interview.id)
    assert application.interviews == []
    assert application.version == version + 2
