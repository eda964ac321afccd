from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from connect_career.app.errors import ERRORS_BY_CODE, ERRORS_BY_STATUS, ApiError, PipelineError
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
from connect_career.app.settings import ClientSettings, load_client_settings

logger = logging.getLogger("connect_career.client")


def _error_from_response(response: httpx.Response) -> PipelineError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    detail = response.text or response.reason_phrase
    code = None
    if isinstance(payload, dict):
        code = payload.get("code")
        raw_detail = payload.get("detail")
        if isinstance(raw_detail, str):
            detail = raw_detail
        elif raw_detail is not None:
            detail = str(raw_detail)

    error_class = ERRORS_BY_CODE.get(code) if isinstance(code, str) else None
    if error_class is None:
        error_class = ERRORS_BY_STATUS.get(response.status_code)
    if error_class is None:
        return ApiError(f"HTTP {response.status_code}: {detail}", status_code=response.status_code)
    return error_class(detail)


class PipelineApiClient:
    """
    Typed access to the pipeline service.

    Accepts any httpx.Client, including Starlette's TestClient. Pipelines are
    cached per job id until invalidate_pipeline() is called.
    """

    def __init__(self, http: httpx.Client) -> None:
        self.http = http
        self._pipelines_by_job: dict[str, Pipeline] = {}

    @classmethod
    def from_settings(cls, settings: Optional[ClientSettings] = None) -> "PipelineApiClient":
        settings = settings or load_client_settings()
        headers = {"Accept": "application/json"}
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        return cls(
            httpx.Client(
                base_url=settings.base_url,
                headers=headers,
                timeout=settings.timeout_seconds,
            )
        )

    @classmethod
    def from_base_url(cls, base_url: str, *, token: Optional[str] = None) -> "PipelineApiClient":
        return cls.from_settings(
            ClientSettings(base_url=base_url.rstrip("/"), token=token, timeout_seconds=20.0)
        )

    def close(self) -> None:
        self.http.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[BaseModel] = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {}
        if payload is not None:
            kwargs["json"] = payload.model_dump(mode="json", exclude_unset=True)
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("api_transport_error method=%s path=%s error=%s", method, path, exc)
            raise ApiError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.warning(
                "api_error method=%s path=%s status=%s code=%s",
                method,
                path,
                response.status_code,
                error.code,
            )
            raise error
        return response

    def _application(
        self, method: str, path: str, payload: Optional[BaseModel] = None
    ) -> ApplicationRecord:
        response = self._request(method, path, payload=payload)
        return ApplicationRecord.model_validate(response.json())

    def health(self) -> dict:
        return self._request("GET", "/health").json()

    def readiness(self) -> dict:
        return self._request("GET", "/health/ready").json()

    def metrics(self) -> str:
        return self._request("GET", "/metrics").text

    def create_pipeline(self, request: PipelineCreateRequest) -> Pipeline:
        response = self._request("POST", "/pipelines", payload=request)
        return Pipeline.model_validate(response.json())

    def get_pipeline(self, pipeline_id: str) -> Pipeline:
        response = self._request("GET", f"/pipelines/{pipeline_id}")
        return Pipeline.model_validate(response.json())

    def delete_pipeline(self, pipeline_id: str) -> None:
        self._request("DELETE", f"/pipelines/{pipeline_id}")
        for job_id, pipeline in list(self._pipelines_by_job.items()):
            if pipeline.id == pipeline_id:
                self._pipelines_by_job.pop(job_id, None)

    def get_pipeline_by_job_id(self, job_id: str, *, refresh: bool = False) -> Pipeline:
        if not refresh and job_id in self._pipelines_by_job:
            return self._pipelines_by_job[job_id]
        response = self._request("GET", f"/pipelines/jobs/{job_id}")
        pipeline = Pipeline.model_validate(response.json())
        self._pipelines_by_job[job_id] = pipeline
        return pipeline

    def invalidate_pipeline(self, job_id: Optional[str] = None) -> None:
        if job_id is None:
            self._pipelines_by_job.clear()
        else:
            self._pipelines_by_job.pop(job_id, None)

    def create_job(self, request: JobCreateRequest) -> JobRecord:
        response = self._request("POST", "/jobs", payload=request)
        return JobRecord.model_validate(response.json())

    def submit_application(self, request: ApplicationCreateRequest) -> ApplicationRecord:
        return self._application("POST", "/applications", request)

    def get_application(self, application_id: str) -> ApplicationRecord:
        return self._application("GET", f"/applications/{application_id}")

    def list_available_transitions(self, application_id: str) -> list[PipelineTransition]:
        response = self._request("GET", f"/applications/{application_id}/transitions")
        return [PipelineTransition.model_validate(item) for item in response.json()]

    def update_application_stage(
        self, application_id: str, request: StageUpdateRequest
    ) -> ApplicationRecord:
        return self._application("POST", f"/applications/{application_id}/stage", request)

    def create_interview(
        self, application_id: str, request: InterviewCreateRequest
    ) -> ApplicationRecord:
        return self._application("POST", f"/applications/{application_id}/interviews", request)

    def update_interview(
        self, interview_id: str, request: InterviewUpdateRequest
    ) -> ApplicationRecord:
        return self._application("PUT", f"/interviews/{interview_id}", request)

    def delete_interview(self, interview_id: str) -> ApplicationRecord:
        return self._application("DELETE", f"/interviews/{interview_id}")

    def add_interview_feedback(
        self, interview_id: str, request: InterviewFeedbackRequest
    ) -> ApplicationRecord:
        return self._application("POST", f"/interviews/{interview_id}/feedback", request)

    def reschedule_interview(
        self, interview_id: str, request: InterviewRescheduleRequest
    ) -> ApplicationRecord:
        return self._application("POST", f"/interviews/{interview_id}/reschedule", request)

    def cancel_interview(self, interview_id: str) -> ApplicationRecord:
        return self._application("POST", f"/interviews/{interview_id}/cancel")

    def create_offer(self, application_id: str, request: OfferCreateRequest) -> ApplicationRecord:
        return self._application("POST", f"/applications/{application_id}/offers", request)

    def update_offer(self, offer_id: str, request: OfferUpdateRequest) -> ApplicationRecord:
        return self._application("PUT", f"/offers/{offer_id}", request)

    def delete_offer(self, offer_id: str) -> ApplicationRecord:
        return self._application("DELETE", f"/offers/{offer_id}")

    def accept_offer(
        self, offer_id: str, request: Optional[OfferResponseRequest] = None
    ) -> ApplicationRecord:
        return self._application(
            "POST", f"/offers/{offer_id}/accept", request or OfferResponseRequest()
        )

    def reject_offer(
        self, offer_id: str, request: Optional[OfferResponseRequest] = None
    ) -> ApplicationRecord:
        return self._application(
            "POST", f"/offers/{offer_id}/reject", request or OfferResponseRequest()
        )

    def cancel_offer(self, offer_id: str) -> ApplicationRecord:
        return self._application("POST", f"/offers/{offer_id}/cancel")

    def counter_offer(self, offer_id: str, request: OfferCounterRequest) -> ApplicationRecord:
        return self._application("POST", f"/offers/{offer_id}/counter", request)
