from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from connect_career.app.auth import (
    APPLICANT_ROLES,
    OFFER_PARTY_ROLES,
    PIPELINE_ADMIN_ROLES,
    RECRUITER_ROLES,
    AuthContext,
    ensure_party,
    require_roles,
)
from connect_career.app.errors import PipelineError, pipeline_error_handler
from connect_career.app.models import (
    ApplicationCreateRequest,
    ApplicationRecord,
    InterviewCreateRequest,
    InterviewFeedbackRequest,
    InterviewRescheduleRequest,
    InterviewUpdateRequest,
    JobCreateRequest,
    JobRecord,
    OfferCounterRequest,
    OfferCreateRequest,
    OfferResponseRequest,
    OfferUpdateRequest,
    Pipeline,
    PipelineCreateRequest,
    PipelineTransition,
    StageUpdateRequest,
)
from connect_career.app.observability import MetricsRegistry, configure_logging, observe_request
from connect_career.app.persistence import SnapshotPersistence
from connect_career.app.settings import Settings, load_settings
from connect_career.app.store import InMemoryStore


def create_app() -> FastAPI:
    app = FastAPI(title="Connect Career Pipeline API", version="0.1.0")
    configure_logging()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    settings = load_settings()
    persistence = SnapshotPersistence(settings.database_url) if settings.persistence_enabled else None
    app.state.store = InMemoryStore(persistence=persistence)
    app.state.settings = settings
    app.state.metrics = MetricsRegistry()

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        return await observe_request(request, call_next, metrics=app.state.metrics)

    @app.exception_handler(PipelineError)
    async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
        app.state.metrics.record_pipeline_error(exc.code)
        return await pipeline_error_handler(request, exc)

    app.include_router(build_router())
    return app


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics


def build_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/health/ready")
    def readiness(request: Request) -> dict[str, str]:
        settings = get_settings(request)
        persistence = getattr(request.app.state.store, "persistence", None)
        if settings.persistence_enabled and persistence and not persistence.ping():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="database unavailable",
            )
        return {"status": "ready"}

    @router.get("/metrics", response_class=PlainTextResponse)
    def metrics(request: Request) -> Response:
        registry = get_metrics(request)
        return PlainTextResponse(registry.to_prometheus())

    @router.post("/pipelines", response_model=Pipeline, status_code=status.HTTP_201_CREATED)
    def create_pipeline(
        payload: PipelineCreateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*PIPELINE_ADMIN_ROLES)),
    ) -> Pipeline:
        return get_store(request).create_pipeline(payload)

    @router.get("/pipelines/jobs/{job_id}", response_model=Pipeline)
    def pipeline_for_job(
        job_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> Pipeline:
        return get_store(request).get_pipeline_by_job_id(job_id)

    @router.get("/pipelines/{pipeline_id}", response_model=Pipeline)
    def get_pipeline(
        pipeline_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> Pipeline:
        return get_store(request).get_pipeline(pipeline_id)

    @router.delete("/pipelines/{pipeline_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_pipeline(
        pipeline_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*PIPELINE_ADMIN_ROLES)),
    ) -> Response:
        get_store(request).delete_pipeline(pipeline_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/jobs", response_model=JobRecord, status_code=status.HTTP_201_CREATED)
    def create_job(
        payload: JobCreateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*PIPELINE_ADMIN_ROLES)),
    ) -> JobRecord:
        return get_store(request).create_job(payload)

    @router.post(
        "/applications", response_model=ApplicationRecord, status_code=status.HTTP_201_CREATED
    )
    def submit_application(
        payload: ApplicationCreateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*APPLICANT_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).create_application(payload, submitted_by=context.user_id)

    @router.get("/applications/{application_id}", response_model=ApplicationRecord)
    def get_application(
        application_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*OFFER_PARTY_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).get_application(application_id)

    @router.get(
        "/applications/{application_id}/transitions", response_model=list[PipelineTransition]
    )
    def list_transitions(
        application_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> list[PipelineTransition]:
        return get_store(request).list_available_transitions(application_id)

    @router.post("/applications/{application_id}/stage", response_model=ApplicationRecord)
    def update_stage(
        application_id: str,
        payload: StageUpdateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).update_application_stage(
            application_id, payload, changed_by=context.user_id
        )

    @router.post(
        "/applications/{application_id}/interviews",
        response_model=ApplicationRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def create_interview(
        application_id: str,
        payload: InterviewCreateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).create_interview(application_id, payload)

    @router.put("/interviews/{interview_id}", response_model=ApplicationRecord)
    def update_interview(
        interview_id: str,
        payload: InterviewUpdateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).update_interview(interview_id, payload)

    @router.delete("/interviews/{interview_id}", response_model=ApplicationRecord)
    def delete_interview(
        interview_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).delete_interview(interview_id)

    @router.post("/interviews/{interview_id}/feedback", response_model=ApplicationRecord)
    def add_interview_feedback(
        interview_id: str,
        payload: InterviewFeedbackRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        if not payload.submitted_by:
            payload = payload.model_copy(update={"submitted_by": context.user_id})
        return get_store(request).add_interview_feedback(interview_id, payload)

    @router.post("/interviews/{interview_id}/reschedule", response_model=ApplicationRecord)
    def reschedule_interview(
        interview_id: str,
        payload: InterviewRescheduleRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).reschedule_interview(interview_id, payload)

    @router.post("/interviews/{interview_id}/cancel", response_model=ApplicationRecord)
    def cancel_interview(
        interview_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).cancel_interview(interview_id)

    @router.post(
        "/applications/{application_id}/offers",
        response_model=ApplicationRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def create_offer(
        application_id: str,
        payload: OfferCreateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).create_offer(
            application_id, payload, offered_by=context.user_id
        )

    @router.put("/offers/{offer_id}", response_model=ApplicationRecord)
    def update_offer(
        offer_id: str,
        payload: OfferUpdateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).update_offer(offer_id, payload)

    @router.delete("/offers/{offer_id}", response_model=ApplicationRecord)
    def delete_offer(
        offer_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).delete_offer(offer_id)

    @router.post("/offers/{offer_id}/accept", response_model=ApplicationRecord)
    def accept_offer(
        offer_id: str,
        payload: OfferResponseRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*OFFER_PARTY_ROLES)),
    ) -> ApplicationRecord:
        ensure_party(context, payload.party)
        return get_store(request).accept_offer(offer_id, payload)

    @router.post("/offers/{offer_id}/reject", response_model=ApplicationRecord)
    def reject_offer(
        offer_id: str,
        payload: OfferResponseRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*OFFER_PARTY_ROLES)),
    ) -> ApplicationRecord:
        ensure_party(context, payload.party)
        return get_store(request).reject_offer(offer_id, payload)

    @router.post("/offers/{offer_id}/cancel", response_model=ApplicationRecord)
    def cancel_offer(
        offer_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*RECRUITER_ROLES)),
    ) -> ApplicationRecord:
        return get_store(request).cancel_offer(offer_id)

    @router.post("/offers/{offer_id}/counter", response_model=ApplicationRecord)
    def counter_offer(
        offer_id: str,
        payload: OfferCounterRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*OFFER_PARTY_ROLES)),
    ) -> ApplicationRecord:
        ensure_party(context, payload.party)
        return get_store(request).counter_offer(offer_id, payload, offered_by=context.user_id)

    return router


app = create_app()
