from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from connect_career.app.main import create_app
from pipeline_builders import hiring_pipeline_payload, offer_payload


def _token(secret: str, subject: str, roles: list[str]) -> str:
    payload = {
        "sub": subject,
        "roles": roles,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _auth_client(monkeypatch) -> TestClient:
    monkeypatch.setenv("PERSISTENCE_ENABLED", "false")
    monkeypatch.setenv("AUTH_ENABLED", "true")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    return TestClient(create_app())


def _headers(subject: str, roles: list[str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {_token('test-secret', subject, roles)}"}


def test_auth_blocks_missing_token_when_enabled(monkeypatch) -> None:
    client = _auth_client(monkeypatch)
    response = client.post("/pipelines", json=hiring_pipeline_payload())
    assert response.status_code == 401


def test_auth_rejects_token_signed_with_other_secret(monkeypatch) -> None:
    client = _auth_client(monkeypatch)
    token = _token("wrong-secret", "employer-1", ["employer"])
    response = client.post(
        "/pipelines",
        headers={"Authorization": f"Bearer {token}"},
        json=hiring_pipeline_payload(),
    )
    assert response.status_code == 401


def test_recruiter_cannot_define_pipelines(monkeypatch) -> None:
    client = _auth_client(monkeypatch)
    response = client.post(
        "/pipelines",
        headers=_headers("recruiter-1", ["recruiter"]),
        json=hiring_pipeline_payload(),
    )
    assert response.status_code == 403


def test_roles_across_the_hiring_flow(monkeypatch) -> None:
    client = _auth_client(monkeypatch)
    employer = _headers("employer-1", ["employer"])
    recruiter = _headers("recruiter-1", ["recruiter"])
    candidate = _headers("cand-1", ["candidate"])

    pipeline = client.post("/pipelines", headers=employer, json=hiring_pipeline_payload())
    assert pipeline.status_code == 201
    job = client.post(
        "/jobs",
        headers=employer,
        json={"organization_id": "org_acme", "title": "QA", "pipeline_id": pipeline.json()["id"]},
    )
    assert job.status_code == 201

    application = client.post(
        "/applications",
        headers=candidate,
        json={"job_id": job.json()["id"], "candidate_id": "cand-1"},
    )
    assert application.status_code == 201
    application_id = application.json()["id"]
    assert application.json()["status_history"][0]["changed_by"] == "cand-1"

    forbidden = client.post(
        f"/applications/{application_id}/stage",
        headers=candidate,
        json={"stage_key": "interview"},
    )
    assert forbidden.status_code == 403

    for stage_key in ("interview", "offer"):
        moved = client.post(
            f"/applications/{application_id}/stage",
            headers=recruiter,
            json={"stage_key": stage_key},
        )
        assert moved.status_code == 200
    assert moved.json()["status_history"][-1]["changed_by"] == "recruiter-1"

    offer = client.post(
        f"/applications/{application_id}/offers", headers=recruiter, json=offer_payload()
    )
    assert offer.status_code == 201
    offer_id = offer.json()["offers"][0]["id"]
    assert offer.json()["offers"][0]["offered_by"] == "recruiter-1"

    impersonated = client.post(
        f"/offers/{offer_id}/accept", headers=recruiter, json={"party": "candidate"}
    )
    assert impersonated.status_code == 403

    accepted = client.post(
        f"/offers/{offer_id}/accept", headers=candidate, json={"party": "candidate"}
    )
    assert accepted.status_code == 200
    assert accepted.json()["offers"][0]["status"] == "accepted"
