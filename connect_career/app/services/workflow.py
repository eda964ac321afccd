from __future__ import annotations

from typing import Optional

from connect_career.app.errors import (
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
)
from connect_career.app.models import (
    ApplicationRecord,
    ApplicationStatus,
    OfferStatus,
    Pipeline,
    PipelineStage,
    PipelineTransition,
    StageType,
    StageUpdateRequest,
)

STATUS_BY_STAGE_TYPE = {
    StageType.sourcing: ApplicationStatus.applied,
    StageType.screening: ApplicationStatus.under_review,
    StageType.interview: ApplicationStatus.interviewing,
    StageType.offer: ApplicationStatus.offered,
    StageType.hired: ApplicationStatus.hired,
    StageType.rejected: ApplicationStatus.rejected,
}

ACCEPTED_OFFER_REQUIRED = "Cannot proceed without an accepted offer"


def find_stage(pipeline: Pipeline, stage_key: str) -> Optional[PipelineStage]:
    for stage in pipeline.stages:
        if stage.key == stage_key:
            return stage
    return None


def initial_stage(pipeline: Pipeline) -> PipelineStage:
    indexed = list(enumerate(pipeline.stages))
    indexed.sort(key=lambda item: (item[1].order, item[0]))
    return indexed[0][1]


def current_stage(pipeline: Pipeline, application: ApplicationRecord) -> PipelineStage:
    stage = find_stage(pipeline, application.current_stage_key)
    if not stage:
        raise NotFoundError(
            f"stage not found in pipeline {pipeline.id}: {application.current_stage_key}"
        )
    return stage


def available_transitions(
    pipeline: Pipeline, application: ApplicationRecord
) -> list[PipelineTransition]:
    return [
        transition
        for transition in pipeline.transitions
        if transition.from_stage_key == application.current_stage_key
    ]


def find_transition(
    pipeline: Pipeline, *, from_stage_key: str, to_stage_key: str
) -> Optional[PipelineTransition]:
    for transition in pipeline.transitions:
        if (
            transition.from_stage_key == from_stage_key
            and transition.to_stage_key == to_stage_key
        ):
            return transition
    return None


def has_accepted_offer(application: ApplicationRecord) -> bool:
    return any(offer.status == OfferStatus.accepted for offer in application.offers)


def is_rejection(stage: PipelineStage) -> bool:
    return stage.type == StageType.rejected


def check_transition(
    pipeline: Pipeline,
    application: ApplicationRecord,
    transition: PipelineTransition,
) -> PipelineStage:
    """Validate a requested move and return the stage it lands on.

    Leaving an offer stage needs an accepted offer unless the move is a
    rejection. Nothing is mutated here; callers apply the move only when this
    returns.
    """
    from_stage = current_stage(pipeline, application)
    to_stage = find_stage(pipeline, transition.to_stage_key)
    if not to_stage:
        raise InvalidTransitionError(
            f"target stage not found in pipeline: {transition.to_stage_key}"
        )
    if transition.from_stage_key != from_stage.key:
        raise InvalidTransitionError(
            f"transition starts at {transition.from_stage_key}, "
            f"application is at {from_stage.key}"
        )
    if (
        from_stage.type == StageType.offer
        and not is_rejection(to_stage)
        and not has_accepted_offer(application)
    ):
        raise PreconditionFailedError(ACCEPTED_OFFER_REQUIRED)
    return to_stage


def stage_update_for(
    to_stage: PipelineStage, *, expected_version: Optional[int] = None
) -> StageUpdateRequest:
    return StageUpdateRequest(
        stage_key=to_stage.key,
        reason=f"Moved to {to_stage.name} stage",
        notes="",
        expected_version=expected_version,
    )


def status_for_stage(stage: PipelineStage) -> ApplicationStatus:
    return STATUS_BY_STAGE_TYPE[stage.type]
