from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from connect_career.app.main import create_app
from connect_career.app.models import (
    ApplicationCreateRequest,
    ApplicationRecord,
    JobCreateRequest,
    PipelineCreateRequest,
)
from connect_career.app.store import InMemoryStore
from connect_career.client.api import PipelineApiClient
from pipeline_builders import hiring_pipeline_payload


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("PERSISTENCE_ENABLED", "false")
    monkeypatch.setenv("AUTH_ENABLED", "false")
    app = create_app()
    return TestClient(app)


@pytest.fixture()
def api(client: TestClient) -> PipelineApiClient:
    return PipelineApiClient(client)


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def seeded_application(store: InMemoryStore) -> ApplicationRecord:
    pipeline = store.create_pipeline(PipelineCreateRequest.model_validate(hiring_pipeline_payload()))
    job = store.create_job(
        JobCreateRequest(organization_id="org_acme", title="Backend Engineer", pipeline_id=pipeline.id)
    )
    return store.create_application(
        ApplicationCreateRequest(job_id=job.id, candidate_id="cand_001"),
        submitted_by="cand_001",
    )


@pytest.fixture()
def seed_via_api(client: TestClient):
    def seed(candidate_id: str = "cand_001") -> dict:
        pipeline = client.post("/pipelines", json=hiring_pipeline_payload())
        assert pipeline.status_code == 201
        job = client.post(
            "/jobs",
            json={
                "organization_id": "org_acme",
                "title": "Backend Engineer",
                "pipeline_id": pipeline.json()["id"],
            },
        )
        assert job.status_code == 201
        application = client.post(
            "/applications",
            json={"job_id": job.json()["id"], "candidate_id": candidate_id},
        )
        assert application.status_code == 201
        return {
            "pipeline": pipeline.json(),
            "job": job.json(),
            "application": application.json(),
        }

    return seed
