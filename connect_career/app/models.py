from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StageType(str, Enum):
    sourcing = "sourcing"
    screening = "screening"
    interview = "interview"
    offer = "offer"
    hired = "hired"
    rejected = "rejected"


class ApplicationStatus(str, Enum):
    applied = "applied"
    under_review = "under_review"
    interviewing = "interviewing"
    offered = "offered"
    hired = "hired"
    rejected = "rejected"


class InterviewType(str, Enum):
    video = "video"
    phone = "phone"
    in_person = "in-person"


class InterviewStatus(str, Enum):
    scheduled = "scheduled"
    rescheduled = "rescheduled"
    completed = "completed"
    cancelled = "cancelled"


class Recommendation(str, Enum):
    strongly_recommend = "strongly_recommend"
    recommend = "recommend"
    neutral = "neutral"
    do_not_recommend = "do_not_recommend"


class SalaryPeriod(str, Enum):
    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"
    project = "project"


class OfferStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    cancelled = "cancelled"
    countered = "countered"


class OfferParty(str, Enum):
    recruiter = "recruiter"
    candidate = "candidate"


class PipelineStage(BaseModel):
    key: str = Field(min_length=1, max_length=80)
    name: str = Field(min_length=1, max_length=120)
    type: StageType
    order: int = 0
    terminal: bool = False


class PipelineTransition(BaseModel):
    from_stage_key: str = Field(min_length=1, max_length=80)
    to_stage_key: str = Field(min_length=1, max_length=80)
    action_name: Optional[str] = Field(default=None, max_length=120)


def validate_stage_graph(
    stages: list[PipelineStage], transitions: list[PipelineTransition]
) -> None:
    if not stages:
        raise ValueError("pipeline must define at least one stage")
    keys = [stage.key for stage in stages]
    duplicates = sorted({key for key in keys if keys.count(key) > 1})
    if duplicates:
        raise ValueError(f"duplicate stage keys: {duplicates}")
    for stage in stages:
        if stage.key == "rejected" and stage.type != StageType.rejected:
            raise ValueError("stage 'rejected' must have type 'rejected'")
    known = set(keys)
    for transition in transitions:
        for key in (transition.from_stage_key, transition.to_stage_key):
            if key not in known:
                raise ValueError(f"transition references unknown stage: {key}")


class PipelineCreateRequest(BaseModel):
    organization_id: str = Field(min_length=1, max_length=120)
    name: str = Field(min_length=2, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    active: bool = True
    stages: list[PipelineStage]
    transitions: list[PipelineTransition] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_graph(self) -> "PipelineCreateRequest":
        validate_stage_graph(self.stages, self.transitions)
        return self


class Pipeline(BaseModel):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    active: bool = True
    stages: list[PipelineStage]
    transitions: list[PipelineTransition]
    created_at_utc: datetime
    updated_at_utc: datetime

    @model_validator(mode="after")
    def validate_graph(self) -> "Pipeline":
        validate_stage_graph(self.stages, self.transitions)
        return self


class JobCreateRequest(BaseModel):
    organization_id: str = Field(min_length=1, max_length=120)
    title: str = Field(min_length=2, max_length=120)
    pipeline_id: str


class JobRecord(BaseModel):
    id: str
    organization_id: str
    title: str
    pipeline_id: str
    created_at_utc: datetime


class VideoVenue(BaseModel):
    type: Literal["video"] = "video"
    meeting_link: Optional[str] = None


class InPersonVenue(BaseModel):
    type: Literal["in-person"] = "in-person"
    location: Optional[str] = None


class PhoneVenue(BaseModel):
    type: Literal["phone"] = "phone"


InterviewVenue = Annotated[
    Union[VideoVenue, InPersonVenue, PhoneVenue],
    Field(discriminator="type"),
]


class InterviewFeedbackRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    recommendation: Recommendation = Recommendation.recommend
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    comments: Optional[str] = Field(default=None, max_length=2000)
    submitted_by: Optional[str] = Field(default=None, max_length=120)


class InterviewFeedback(InterviewFeedbackRequest):
    submitted_at_utc: datetime


class InterviewCreateRequest(BaseModel):
    interviewer_name: str = Field(min_length=2, max_length=120)
    interviewer_email: Optional[str] = Field(default=None, max_length=254)
    scheduled_date: datetime
    type: InterviewType = InterviewType.video
    interview_round: Optional[str] = Field(default=None, max_length=120)
    duration: int = Field(default=60, ge=1, le=480)
    location: Optional[str] = Field(default=None, max_length=250)
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)


class InterviewUpdateRequest(BaseModel):
    interviewer_name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    interviewer_email: Optional[str] = Field(default=None, max_length=254)
    scheduled_date: Optional[datetime] = None
    type: Optional[InterviewType] = None
    interview_round: Optional[str] = Field(default=None, max_length=120)
    duration: Optional[int] = Field(default=None, ge=1, le=480)
    location: Optional[str] = Field(default=None, max_length=250)
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)


class InterviewRescheduleRequest(BaseModel):
    new_scheduled_date: datetime
    reason: Optional[str] = Field(default=None, max_length=250)
    rescheduled_by: Optional[str] = Field(default=None, max_length=120)


class InterviewRecord(BaseModel):
    id: str
    application_id: str
    scheduled_date: datetime
    interviewer_name: str
    interviewer_email: Optional[str] = None
    interview_round: Optional[str] = None
    duration: int = 60
    venue: InterviewVenue
    notes: Optional[str] = None
    status: InterviewStatus = InterviewStatus.scheduled
    feedback: Optional[InterviewFeedback] = None
    reschedule_reason: Optional[str] = None
    created_at_utc: datetime
    updated_at_utc: datetime

    @computed_field
    @property
    def type(self) -> InterviewType:
        return InterviewType(self.venue.type)

    @computed_field
    @property
    def location(self) -> Optional[str]:
        if isinstance(self.venue, InPersonVenue):
            return self.venue.location
        return None

    @computed_field
    @property
    def meeting_link(self) -> Optional[str]:
        if isinstance(self.venue, VideoVenue):
            return self.venue.meeting_link
        return None


class OfferCreateRequest(BaseModel):
    base_salary: float = Field(gt=0)
    currency: str = Field(default="VND", min_length=3, max_length=3)
    salary_period: SalaryPeriod = SalaryPeriod.yearly
    signing_bonus: Optional[float] = Field(default=None, ge=0)
    equity: Optional[str] = Field(default=None, max_length=120)
    benefits: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)
    offered_by: Optional[str] = Field(default=None, max_length=120)
    is_negotiable: bool = False


class OfferUpdateRequest(BaseModel):
    base_salary: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    salary_period: Optional[SalaryPeriod] = None
    signing_bonus: Optional[float] = Field(default=None, ge=0)
    equity: Optional[str] = Field(default=None, max_length=120)
    benefits: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_negotiable: Optional[bool] = None


class OfferResponseRequest(BaseModel):
    party: OfferParty = OfferParty.recruiter
    notes: Optional[str] = Field(default=None, max_length=1000)


class OfferCounterRequest(OfferCreateRequest):
    party: OfferParty = OfferParty.recruiter


class OfferRecord(BaseModel):
    id: str
    application_id: str
    base_salary: float
    currency: str
    salary_period: SalaryPeriod = SalaryPeriod.yearly
    signing_bonus: Optional[float] = None
    equity: Optional[str] = None
    benefits: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    offered_by: Optional[str] = None
    is_negotiable: bool = False
    is_offered_by_candidate: bool = False
    status: OfferStatus = OfferStatus.pending
    response_notes: Optional[str] = None
    responded_at_utc: Optional[datetime] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class StatusChangeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    from_stage_key: Optional[str] = None
    to_stage_key: str
    reason: str
    notes: str = ""
    changed_by: Optional[str] = None
    created_at_utc: datetime


class StageUpdateRequest(BaseModel):
    stage_key: str = Field(min_length=1, max_length=80)
    reason: str = Field(default="", max_length=200)
    notes: str = Field(default="", max_length=1000)
    expected_version: Optional[int] = Field(default=None, ge=1)


class ApplicationCreateRequest(BaseModel):
    job_id: str
    candidate_id: str = Field(min_length=1, max_length=120)
    cover_letter: Optional[str] = Field(default=None, max_length=5000)
    notes: Optional[str] = Field(default=None, max_length=1000)


class ApplicationRecord(BaseModel):
    id: str
    job_id: str
    candidate_id: str
    current_stage_key: str
    status: ApplicationStatus = ApplicationStatus.applied
    applied_date: datetime
    cover_letter: Optional[str] = None
    notes: Optional[str] = None
    version: int = 1
    interviews: list[InterviewRecord] = Field(default_factory=list)
    offers: list[OfferRecord] = Field(default_factory=list)
    status_history: list[StatusChangeEntry] = Field(default_factory=list)
    created_at_utc: datetime
    updated_at_utc: datetime
