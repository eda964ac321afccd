from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from connect_career.app.errors import ConflictError, NotFoundError, PipelineError
from connect_career.app.models import (
    ApplicationRecord,
    InterviewCreateRequest,
    InterviewFeedbackRequest,
    InterviewRecord,
    InterviewRescheduleRequest,
    InterviewUpdateRequest,
    OfferCounterRequest,
    OfferCreateRequest,
    OfferParty,
    OfferRecord,
    OfferResponseRequest,
    OfferUpdateRequest,
    Pipeline,
    PipelineStage,
    PipelineTransition,
)
from connect_career.app.services import interviews as interview_rules
from connect_career.app.services import offers as offer_rules
from connect_career.app.services.workflow import (
    available_transitions,
    check_transition,
    current_stage,
    stage_update_for,
)
from connect_career.client.api import PipelineApiClient

logger = logging.getLogger("connect_career.client.application_detail")


class LoadState(str, Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    not_found = "not_found"
    failed = "failed"


class DialogKind(str, Enum):
    schedule_interview = "schedule_interview"
    edit_interview = "edit_interview"
    reschedule_interview = "reschedule_interview"
    interview_feedback = "interview_feedback"
    create_offer = "create_offer"
    edit_offer = "edit_offer"
    counter_offer = "counter_offer"
    respond_offer = "respond_offer"


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


@dataclass
class DialogState:
    kind: Optional[DialogKind] = None
    selected_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.kind is not None


@dataclass(frozen=True)
class OfferView:
    offer: OfferRecord
    index: int
    can_edit: bool
    can_respond: bool
    can_cancel: bool


@dataclass
class ApplicationDetailController:
    """
    View-model behind the recruiter's application detail screen.

    Every action validates locally, performs at most one mutation, then refetches the
    application. Failures never propagate: they become entries in `notifications`.
    """

    api: PipelineApiClient
    application_id: str
    job_id: Optional[str] = None
    party: OfferParty = OfferParty.recruiter
    state: LoadState = LoadState.idle
    pipeline: Optional[Pipeline] = None
    application: Optional[ApplicationRecord] = None
    dialog: DialogState = field(default_factory=DialogState)
    notifications: list[Notification] = field(default_factory=list)

    def load(self) -> LoadState:
        self.state = LoadState.loading
        try:
            application = self.api.get_application(self.application_id)
            job_id = self.job_id or application.job_id
            pipeline = self.api.get_pipeline_by_job_id(job_id)
        except NotFoundError as exc:
            logger.warning(
                "application_detail_not_found application_id=%s error=%s",
                self.application_id,
                exc.message,
            )
            self.state = LoadState.not_found
            self._notify("error", exc.message)
            return self.state
        except PipelineError as exc:
            logger.warning(
                "application_detail_load_failed application_id=%s code=%s error=%s",
                self.application_id,
                exc.code,
                exc.message,
            )
            self.state = LoadState.failed
            self._notify("error", exc.message)
            return self.state
        self.application = application
        self.job_id = job_id
        self.pipeline = pipeline
        self.state = LoadState.ready
        return self.state

    def refresh(self) -> None:
        try:
            self.application = self.api.get_application(self.application_id)
        except PipelineError as exc:
            logger.warning(
                "application_detail_refresh_failed application_id=%s code=%s",
                self.application_id,
                exc.code,
            )
            self._notify("error", exc.message)

    @property
    def current_stage(self) -> Optional[PipelineStage]:
        if not self.pipeline or not self.application:
            return None
        try:
            return current_stage(self.pipeline, self.application)
        except NotFoundError:
            return None

    @property
    def available_transitions(self) -> list[PipelineTransition]:
        if not self.pipeline or not self.application:
            return []
        return available_transitions(self.pipeline, self.application)

    @property
    def is_terminal(self) -> bool:
        return self.state == LoadState.ready and not self.available_transitions

    @property
    def can_add_interview(self) -> bool:
        stage = self.current_stage
        return stage is not None and interview_rules.can_add_interview(stage)

    @property
    def can_create_offer(self) -> bool:
        stage = self.current_stage
        if stage is None or self.application is None:
            return False
        return offer_rules.can_create_offer(stage, self.application)

    @property
    def interviews(self) -> list[InterviewRecord]:
        if not self.application:
            return []
        return sorted(self.application.interviews, key=lambda item: item.scheduled_date)

    @property
    def offers(self) -> list[OfferView]:
        if not self.application:
            return []
        return [
            OfferView(
                offer=offer,
                index=idx,
                can_edit=offer_rules.can_edit_offer(offer),
                can_respond=offer_rules.can_respond(offer, idx, self.party),
                can_cancel=offer_rules.can_cancel_offer(offer, idx),
            )
            for idx, offer in enumerate(offer_rules.sort_offers(self.application.offers))
        ]

    def open_dialog(self, kind: DialogKind, selected_id: Optional[str] = None) -> None:
        self.dialog = DialogState(kind=kind, selected_id=selected_id)

    def close_dialog(self) -> None:
        self.dialog = DialogState()

    def request_transition(self, transition: PipelineTransition) -> bool:
        def run() -> ApplicationRecord:
            application, pipeline = self._require_loaded()
            to_stage = check_transition(pipeline, application, transition)
            update = stage_update_for(to_stage, expected_version=application.version)
            return self.api.update_application_stage(application.id, update)

        return self._perform("stage_transition", run, success="Application stage updated")

    def schedule_interview(self, request: InterviewCreateRequest) -> bool:
        def run() -> ApplicationRecord:
            application, pipeline = self._require_loaded()
            interview_rules.ensure_can_add(current_stage(pipeline, application))
            return self.api.create_interview(application.id, request)

        return self._perform("schedule_interview", run, success="Interview scheduled")

    def edit_interview(self, interview_id: str, request: InterviewUpdateRequest) -> bool:
        def run() -> ApplicationRecord:
            interview_rules.ensure_open(self._interview(interview_id))
            return self.api.update_interview(interview_id, request)

        return self._perform("edit_interview", run, success="Interview updated")

    def delete_interview(self, interview_id: str) -> bool:
        def run() -> ApplicationRecord:
            interview_rules.ensure_open(self._interview(interview_id))
            return self.api.delete_interview(interview_id)

        return self._perform("delete_interview", run, success="Interview deleted")

    def reschedule_interview(self, interview_id: str, request: InterviewRescheduleRequest) -> bool:
        def run() -> ApplicationRecord:
            interview_rules.ensure_open(self._interview(interview_id))
            return self.api.reschedule_interview(interview_id, request)

        return self._perform("reschedule_interview", run, success="Interview rescheduled")

    def cancel_interview(self, interview_id: str) -> bool:
        def run() -> ApplicationRecord:
            interview_rules.ensure_open(self._interview(interview_id))
            return self.api.cancel_interview(interview_id)

        return self._perform("cancel_interview", run, success="Interview cancelled")

    def submit_feedback(self, interview_id: str, request: InterviewFeedbackRequest) -> bool:
        def run() -> ApplicationRecord:
            interview_rules.ensure_can_give_feedback(self._interview(interview_id))
            return self.api.add_interview_feedback(interview_id, request)

        return self._perform("interview_feedback", run, success="Feedback submitted")

    def create_offer(self, request: OfferCreateRequest) -> bool:
        def run() -> ApplicationRecord:
            application, pipeline = self._require_loaded()
            offer_rules.ensure_can_create(current_stage(pipeline, application), application)
            return self.api.create_offer(application.id, request)

        return self._perform("create_offer", run, success="Offer sent")

    def edit_offer(self, offer_id: str, request: OfferUpdateRequest) -> bool:
        def run() -> ApplicationRecord:
            offer_rules.ensure_can_edit(self._offer(offer_id))
            return self.api.update_offer(offer_id, request)

        return self._perform("edit_offer", run, success="Offer updated")

    def delete_offer(self, offer_id: str) -> bool:
        def run() -> ApplicationRecord:
            offer_rules.ensure_can_edit(self._offer(offer_id))
            return self.api.delete_offer(offer_id)

        return self._perform("delete_offer", run, success="Offer deleted")

    def accept_offer(self, offer_id: str, notes: Optional[str] = None) -> bool:
        def run() -> ApplicationRecord:
            application, _ = self._require_loaded()
            offer_rules.ensure_can_respond(application, self._offer(offer_id), self.party)
            return self.api.accept_offer(
                offer_id, OfferResponseRequest(party=self.party, notes=notes)
            )

        return self._perform("accept_offer", run, success="Offer accepted")

    def reject_offer(self, offer_id: str, notes: Optional[str] = None) -> bool:
        def run() -> ApplicationRecord:
            application, _ = self._require_loaded()
            offer_rules.ensure_can_respond(application, self._offer(offer_id), self.party)
            return self.api.reject_offer(
                offer_id, OfferResponseRequest(party=self.party, notes=notes)
            )

        return self._perform("reject_offer", run, success="Offer rejected")

    def cancel_offer(self, offer_id: str) -> bool:
        def run() -> ApplicationRecord:
            application, _ = self._require_loaded()
            offer_rules.ensure_can_cancel(application, self._offer(offer_id))
            return self.api.cancel_offer(offer_id)

        return self._perform("cancel_offer", run, success="Offer cancelled")

    def counter_offer(self, offer_id: str, request: OfferCreateRequest) -> bool:
        def run() -> ApplicationRecord:
            application, _ = self._require_loaded()
            offer_rules.ensure_can_respond(application, self._offer(offer_id), self.party)
            counter = OfferCounterRequest(**request.model_dump(exclude={"party"}), party=self.party)
            return self.api.counter_offer(offer_id, counter)

        return self._perform("counter_offer", run, success="Counter offer sent")

    def _perform(
        self, action: str, run: Callable[[], ApplicationRecord], *, success: str
    ) -> bool:
        try:
            run()
        except ConflictError as exc:
            logger.warning(
                "application_action_conflict action=%s application_id=%s error=%s",
                action,
                self.application_id,
                exc.message,
            )
            self.refresh()
            self._notify("error", "The application was changed by someone else. Please retry.")
            return False
        except PipelineError as exc:
            logger.warning(
                "application_action_failed action=%s application_id=%s code=%s error=%s",
                action,
                self.application_id,
                exc.code,
                exc.message,
            )
            self._notify("error", exc.message)
            return False
        self.refresh()
        self.close_dialog()
        self._notify("success", success)
        return True

    def _require_loaded(self) -> tuple[ApplicationRecord, Pipeline]:
        if self.application is None or self.pipeline is None:
            raise NotFoundError(f"application {self.application_id} is not loaded")
        return self.application, self.pipeline

    def _interview(self, interview_id: str) -> InterviewRecord:
        application, _ = self._require_loaded()
        for interview in application.interviews:
            if interview.id == interview_id:
                return interview
        raise NotFoundError(f"interview not found: {interview_id}")

    def _offer(self, offer_id: str) -> OfferRecord:
        application, _ = self._require_loaded()
        for offer in application.offers:
            if offer.id == offer_id:
                return offer
        raise NotFoundError(f"offer not found: {offer_id}")

    def _notify(self, level: str, message: str) -> None:
        self.notifications.append(Notification(level=level, message=message))
