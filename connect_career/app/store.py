from __future__ import annotations

import logging
from threading import RLock
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from connect_career.app.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PipelineError,
)
from connect_career.app.models import (
    ApplicationCreateRequest,
    ApplicationRecord,
    InterviewCreateRequest,
    InterviewFeedback,
    InterviewFeedbackRequest,
    InterviewRecord,
    InterviewRescheduleRequest,
    InterviewStatus,
    InterviewUpdateRequest,
    JobCreateRequest,
    JobRecord,
    OfferCounterRequest,
    OfferCreateRequest,
    OfferParty,
    OfferRecord,
    OfferResponseRequest,
    OfferStatus,
    OfferUpdateRequest,
    Pipeline,
    PipelineCreateRequest,
    PipelineStage,
    PipelineTransition,
    StageUpdateRequest,
    StatusChangeEntry,
    utc_now,
)
from connect_career.app.services import interviews as interview_rules
from connect_career.app.services import offers as offer_rules
from connect_career.app.services.workflow import (
    available_transitions,
    check_transition,
    current_stage,
    find_transition,
    initial_stage,
    status_for_stage,
)

if TYPE_CHECKING:
    from connect_career.app.persistence import SnapshotPersistence

logger = logging.getLogger("connect_career.store")

REQUIRED_INTERVIEW_FIELDS = ("interviewer_name", "scheduled_date", "duration")
REQUIRED_OFFER_FIELDS = ("base_salary", "currency", "salary_period", "benefits", "is_negotiable")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:10]}"


class InMemoryStore:
    def __init__(self, persistence: Optional["SnapshotPersistence"] = None) -> None:
        self._lock = RLock()
        self.persistence = persistence
        self.pipelines: dict[str, Pipeline] = {}
        self.jobs: dict[str, JobRecord] = {}
        self.applications: dict[str, ApplicationRecord] = {}
        self._interview_owners: dict[str, str] = {}
        self._offer_owners: dict[str, str] = {}

        if self.persistence:
            snapshot = self.persistence.load_snapshot()
            if snapshot:
                self._hydrate_from_snapshot(snapshot)

    def create_pipeline(self, request: PipelineCreateRequest) -> Pipeline:
        with self._lock:
            now = utc_now()
            pipeline = Pipeline(
                id=new_id("pip"),
                organization_id=request.organization_id.strip(),
                name=request.name.strip(),
                description=request.description,
                active=request.active,
                stages=request.stages,
                transitions=request.transitions,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.pipelines[pipeline.id] = pipeline
            self._persist_state()
            return pipeline

    def get_pipeline(self, pipeline_id: str) -> Pipeline:
        pipeline = self.pipelines.get(pipeline_id)
        if not pipeline:
            raise NotFoundError(f"pipeline not found: {pipeline_id}")
        return pipeline

    def delete_pipeline(self, pipeline_id: str) -> None:
        with self._lock:
            self.get_pipeline(pipeline_id)
            bound_jobs = sorted(
                job.id for job in self.jobs.values() if job.pipeline_id == pipeline_id
            )
            if bound_jobs:
                raise ConflictError(f"pipeline {pipeline_id} is used by jobs: {bound_jobs}")
            del self.pipelines[pipeline_id]
            self._persist_state()

    def create_job(self, request: JobCreateRequest) -> JobRecord:
        with self._lock:
            pipeline = self.get_pipeline(request.pipeline_id)
            job = JobRecord(
                id=new_id("job"),
                organization_id=request.organization_id.strip(),
                title=request.title.strip(),
                pipeline_id=pipeline.id,
                created_at_utc=utc_now(),
            )
            self.jobs[job.id] = job
            self._persist_state()
            return job

    def get_job(self, job_id: str) -> JobRecord:
        job = self.jobs.get(job_id)
        if not job:
            raise NotFoundError(f"job not found: {job_id}")
        return job

    def get_pipeline_by_job_id(self, job_id: str) -> Pipeline:
        if not job_id or not job_id.strip():
            raise NotFoundError("job id is required")
        job = self.get_job(job_id)
        pipeline = self.pipelines.get(job.pipeline_id)
        if not pipeline:
            raise NotFoundError(f"no pipeline bound to job: {job_id}")
        return pipeline

    def create_application(
        self, request: ApplicationCreateRequest, *, submitted_by: Optional[str] = None
    ) -> ApplicationRecord:
        with self._lock:
            candidate_id = request.candidate_id.strip()
            for application in self.applications.values():
                if application.job_id == request.job_id and application.candidate_id == candidate_id:
                    return application

            stage = initial_stage(self.get_pipeline_by_job_id(request.job_id))
            now = utc_now()
            application = ApplicationRecord(
                id=new_id("app"),
                job_id=request.job_id,
                candidate_id=candidate_id,
                current_stage_key=stage.key,
                status=status_for_stage(stage),
                applied_date=now,
                cover_letter=request.cover_letter,
                notes=request.notes,
                created_at_utc=now,
                updated_at_utc=now,
            )
            application.status_history.append(
                self._history_entry(
                    from_stage_key=None,
                    to_stage=stage,
                    reason="Application submitted",
                    notes="",
                    changed_by=submitted_by,
                )
            )
            self.applications[application.id] = application
            self._persist_state()
            return application

    def get_application(self, application_id: str) -> ApplicationRecord:
        application = self.applications.get(application_id)
        if not application:
            raise NotFoundError(f"application not found: {application_id}")
        return application

    def list_available_transitions(self, application_id: str) -> list[PipelineTransition]:
        application = self.get_application(application_id)
        pipeline = self.get_pipeline_by_job_id(application.job_id)
        return available_transitions(pipeline, application)

    def update_application_stage(
        self,
        application_id: str,
        request: StageUpdateRequest,
        *,
        changed_by: Optional[str] = None,
    ) -> ApplicationRecord:
        with self._lock:
            application = self.get_application(application_id)
            pipeline = self.get_pipeline_by_job_id(application.job_id)
            from_stage_key = application.current_stage_key
            if request.expected_version is not None and request.expected_version != application.version:
                raise ConflictError(
                    f"application {application.id} is at version {application.version}, "
                    f"expected {request.expected_version}"
                )
            try:
                transition = find_transition(
                    pipeline, from_stage_key=from_stage_key, to_stage_key=request.stage_key
                )
                if not transition:
                    raise InvalidTransitionError(
                        f"invalid transition {from_stage_key} -> {request.stage_key}"
                    )
                to_stage = check_transition(pipeline, application, transition)
            except PipelineError as exc:
                logger.warning(
                    "stage_transition_blocked application_id=%s from=%s to=%s code=%s",
                    application.id,
                    from_stage_key,
                    request.stage_key,
                    exc.code,
                )
                raise

            application.current_stage_key = to_stage.key
            application.status = status_for_stage(to_stage)
            application.status_history.append(
                self._history_entry(
                    from_stage_key=from_stage_key,
                    to_stage=to_stage,
                    reason=request.reason or f"Moved to {to_stage.name} stage",
                    notes=request.notes,
                    changed_by=changed_by,
                )
            )
            self._commit(application)
            logger.info(
                "stage_transition application_id=%s from=%s to=%s version=%s",
                application.id,
                from_stage_key,
                to_stage.key,
                application.version,
            )
            return application

    def create_interview(
        self, application_id: str, request: InterviewCreateRequest
    ) -> ApplicationRecord:
        with self._lock:
            application = self.get_application(application_id)
            stage = current_stage(self.get_pipeline_by_job_id(application.job_id), application)
            interview_rules.ensure_can_add(stage)
            now = utc_now()
            interview = InterviewRecord(
                id=new_id("int"),
                application_id=application.id,
                scheduled_date=request.scheduled_date,
                interviewer_name=request.interviewer_name.strip(),
                interviewer_email=request.interviewer_email or None,
                interview_round=request.interview_round or stage.name,
                duration=request.duration,
                venue=interview_rules.build_venue(
                    request.type,
                    location=request.location,
                    meeting_link=request.meeting_link,
                ),
                notes=request.notes or None,
                created_at_utc=now,
                updated_at_utc=now,
            )
            application.interviews.append(interview)
            self._interview_owners[interview.id] = application.id
            self._commit(application)
            return application

    def update_interview(
        self, interview_id: str, request: InterviewUpdateRequest
    ) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_interview(interview_id)
            interview = application.interviews[idx]
            interview_rules.ensure_open(interview)
            changes = request.model_dump(
                exclude_unset=True, exclude={"type", "location", "meeting_link"}
            )
            for field in REQUIRED_INTERVIEW_FIELDS:
                if changes.get(field) is None:
                    changes.pop(field, None)
            changes["venue"] = interview_rules.merged_venue(interview, request)
            changes["updated_at_utc"] = utc_now()
            application.interviews[idx] = interview.model_copy(update=changes)
            self._commit(application)
            return application

    def delete_interview(self, interview_id: str) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_interview(interview_id)
            interview_rules.ensure_open(application.interviews[idx])
            application.interviews.pop(idx)
            self._interview_owners.pop(interview_id, None)
            self._commit(application)
            return application

    def add_interview_feedback(
        self, interview_id: str, request: InterviewFeedbackRequest
    ) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_interview(interview_id)
            interview = application.interviews[idx]
            interview_rules.ensure_can_give_feedback(interview)
            now = utc_now()
            feedback = InterviewFeedback(**request.model_dump(), submitted_at_utc=now)
            application.interviews[idx] = interview.model_copy(
                update={
                    "feedback": feedback,
                    "status": InterviewStatus.completed,
                    "updated_at_utc": now,
                }
            )
            self._commit(application)
            return application

    def reschedule_interview(
        self, interview_id: str, request: InterviewRescheduleRequest
    ) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_interview(interview_id)
            interview = application.interviews[idx]
            interview_rules.ensure_open(interview)
            application.interviews[idx] = interview.model_copy(
                update={
                    "scheduled_date": request.new_scheduled_date,
                    "status": InterviewStatus.rescheduled,
                    "reschedule_reason": request.reason,
                    "updated_at_utc": utc_now(),
                }
            )
            self._commit(application)
            return application

    def cancel_interview(self, interview_id: str) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_interview(interview_id)
            interview = application.interviews[idx]
            interview_rules.ensure_open(interview)
            application.interviews[idx] = interview.model_copy(
                update={"status": InterviewStatus.cancelled, "updated_at_utc": utc_now()}
            )
            self._commit(application)
            return application

    def create_offer(
        self,
        application_id: str,
        request: OfferCreateRequest,
        *,
        offered_by: Optional[str] = None,
    ) -> ApplicationRecord:
        with self._lock:
            application = self.get_application(application_id)
            stage = current_stage(self.get_pipeline_by_job_id(application.job_id), application)
            offer_rules.ensure_can_create(stage, application)
            offer = self._new_offer(
                application,
                request,
                offered_by=request.offered_by or offered_by,
                by_candidate=False,
            )
            application.offers.append(offer)
            self._offer_owners[offer.id] = application.id
            self._commit(application)
            return application

    def update_offer(self, offer_id: str, request: OfferUpdateRequest) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_offer(offer_id)
            offer = application.offers[idx]
            offer_rules.ensure_can_edit(offer)
            changes = request.model_dump(exclude_unset=True)
            for field in REQUIRED_OFFER_FIELDS:
                if changes.get(field) is None:
                    changes.pop(field, None)
            changes["updated_at_utc"] = utc_now()
            application.offers[idx] = offer.model_copy(update=changes)
            self._commit(application)
            return application

    def delete_offer(self, offer_id: str) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_offer(offer_id)
            offer_rules.ensure_can_edit(application.offers[idx])
            application.offers.pop(idx)
            self._offer_owners.pop(offer_id, None)
            self._commit(application)
            return application

    def accept_offer(self, offer_id: str, request: OfferResponseRequest) -> ApplicationRecord:
        return self._respond_to_offer(offer_id, request, OfferStatus.accepted)

    def reject_offer(self, offer_id: str, request: OfferResponseRequest) -> ApplicationRecord:
        return self._respond_to_offer(offer_id, request, OfferStatus.rejected)

    def cancel_offer(self, offer_id: str) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_offer(offer_id)
            offer = application.offers[idx]
            offer_rules.ensure_can_cancel(application, offer)
            application.offers[idx] = offer.model_copy(
                update={"status": OfferStatus.cancelled, "updated_at_utc": utc_now()}
            )
            self._commit(application)
            return application

    def counter_offer(
        self,
        offer_id: str,
        request: OfferCounterRequest,
        *,
        offered_by: Optional[str] = None,
    ) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_offer(offer_id)
            offer = application.offers[idx]
            offer_rules.ensure_can_respond(application, offer, request.party)
            now = utc_now()
            application.offers[idx] = offer.model_copy(
                update={
                    "status": OfferStatus.countered,
                    "responded_at_utc": now,
                    "updated_at_utc": now,
                }
            )
            counter = self._new_offer(
                application,
                request,
                offered_by=request.offered_by or offered_by,
                by_candidate=request.party == OfferParty.candidate,
            )
            application.offers.append(counter)
            self._offer_owners[counter.id] = application.id
            self._commit(application)
            logger.info(
                "offer_countered application_id=%s offer_id=%s counter_id=%s party=%s",
                application.id,
                offer.id,
                counter.id,
                request.party.value,
            )
            return application

    def _respond_to_offer(
        self, offer_id: str, request: OfferResponseRequest, status: OfferStatus
    ) -> ApplicationRecord:
        with self._lock:
            application, idx = self._find_offer(offer_id)
            offer = application.offers[idx]
            offer_rules.ensure_can_respond(application, offer, request.party)
            now = utc_now()
            application.offers[idx] = offer.model_copy(
                update={
                    "status": status,
                    "response_notes": request.notes,
                    "responded_at_utc": now,
                    "updated_at_utc": now,
                }
            )
            self._commit(application)
            logger.info(
                "offer_response application_id=%s offer_id=%s status=%s party=%s",
                application.id,
                offer.id,
                status.value,
                request.party.value,
            )
            return application

    def _new_offer(
        self,
        application: ApplicationRecord,
        request: OfferCreateRequest,
        *,
        offered_by: Optional[str],
        by_candidate: bool,
    ) -> OfferRecord:
        now = utc_now()
        terms = request.model_dump(include=set(OfferCreateRequest.model_fields))
        terms["offered_by"] = offered_by
        return OfferRecord(
            id=new_id("off"),
            application_id=application.id,
            is_offered_by_candidate=by_candidate,
            status=OfferStatus.pending,
            created_at_utc=now,
            updated_at_utc=now,
            **terms,
        )

    def _find_interview(self, interview_id: str) -> tuple[ApplicationRecord, int]:
        application = self.applications.get(self._interview_owners.get(interview_id, ""))
        if application:
            for idx, interview in enumerate(application.interviews):
                if interview.id == interview_id:
                    return application, idx
        raise NotFoundError(f"interview not found: {interview_id}")

    def _find_offer(self, offer_id: str) -> tuple[ApplicationRecord, int]:
        application = self.applications.get(self._offer_owners.get(offer_id, ""))
        if application:
            for idx, offer in enumerate(application.offers):
                if offer.id == offer_id:
                    return application, idx
        raise NotFoundError(f"offer not found: {offer_id}")

    @staticmethod
    def _history_entry(
        *,
        from_stage_key: Optional[str],
        to_stage: PipelineStage,
        reason: str,
        notes: str,
        changed_by: Optional[str],
    ) -> StatusChangeEntry:
        return StatusChangeEntry(
            id=new_id("hst"),
            from_stage_key=from_stage_key,
            to_stage_key=to_stage.key,
            reason=reason,
            notes=notes,
            changed_by=changed_by,
            created_at_utc=utc_now(),
        )

    def _commit(self, application: ApplicationRecord) -> None:
        application.version += 1
        application.updated_at_utc = utc_now()
        self.applications[application.id] = application
        self._persist_state()

    def _persist_state(self) -> None:
        if not self.persistence:
            return
        with self._lock:
            self.persistence.save_snapshot(self._snapshot_data())

    def _snapshot_data(self) -> dict:
        return {
            "pipelines": [record.model_dump(mode="json") for record in self.pipelines.values()],
            "jobs": [record.model_dump(mode="json") for record in self.jobs.values()],
            "applications": [
                record.model_dump(mode="json") for record in self.applications.values()
            ],
        }

    def _hydrate_from_snapshot(self, snapshot: dict) -> None:
        self.pipelines = {
            record["id"]: Pipeline.model_validate(record)
            for record in snapshot.get("pipelines", [])
        }
        self.jobs = {
            record["id"]: JobRecord.model_validate(record)
            for record in snapshot.get("jobs", [])
        }
        self.applications = {
            record["id"]: ApplicationRecord.model_validate(record)
            for record in snapshot.get("applications", [])
        }
        self._interview_owners = {
            interview.id: application.id
            for application in self.applications.values()
            for interview in application.interviews
        }
        self._offer_owners = {
            offer.id: application.id
            for application in self.applications.values()
            for offer in application.offers
        }
