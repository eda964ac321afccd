from __future__ import annotations

from typing import Optional

from connect_career.app.errors import PreconditionFailedError
from connect_career.app.models import (
    InPersonVenue,
    InterviewRecord,
    InterviewStatus,
    InterviewType,
    InterviewUpdateRequest,
    PhoneVenue,
    PipelineStage,
    StageType,
    VideoVenue,
)

OPEN_STATUSES = {InterviewStatus.scheduled, InterviewStatus.rescheduled}


def build_venue(
    interview_type: InterviewType,
    *,
    location: Optional[str] = None,
    meeting_link: Optional[str] = None,
) -> VideoVenue | InPersonVenue | PhoneVenue:
    # Only the field matching the type survives; the other is dropped.
    if interview_type == InterviewType.video:
        return VideoVenue(meeting_link=(meeting_link or None))
    if interview_type == InterviewType.in_person:
        return InPersonVenue(location=(location or None))
    return PhoneVenue()


def merged_venue(
    interview: InterviewRecord, changes: InterviewUpdateRequest
) -> VideoVenue | InPersonVenue | PhoneVenue:
    fields = changes.model_fields_set
    interview_type = changes.type or interview.type
    location = changes.location if "location" in fields else interview.location
    meeting_link = changes.meeting_link if "meeting_link" in fields else interview.meeting_link
    return build_venue(interview_type, location=location, meeting_link=meeting_link)


def can_add_interview(stage: PipelineStage) -> bool:
    return stage.type == StageType.interview


def is_open(interview: InterviewRecord) -> bool:
    return interview.status in OPEN_STATUSES


def ensure_can_add(stage: PipelineStage) -> None:
    if not can_add_interview(stage):
        raise PreconditionFailedError(
            f"interviews can only be added in an interview stage, current stage: {stage.name}"
        )


def ensure_open(interview: InterviewRecord) -> None:
    if not is_open(interview):
        raise PreconditionFailedError(
            f"interview {interview.id} is {interview.status.value} and can no longer be changed"
        )


def ensure_can_give_feedback(interview: InterviewRecord) -> None:
    ensure_open(interview)
    if interview.feedback is not None:
        raise PreconditionFailedError(f"interview {interview.id} already has feedback")
