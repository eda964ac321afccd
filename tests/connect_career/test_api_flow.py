from __future__ import annotations

from pipeline_builders import hiring_pipeline_payload, interview_payload, offer_payload


def _move(client, application_id: str, stage_key: str, **extra):
    return client.post(
        f"/applications/{application_id}/stage",
        json={"stage_key": stage_key, **extra},
    )


def test_pipeline_graph_validation(client) -> None:
    payload = hiring_pipeline_payload()
    payload["transitions"].append({"from_stage_key": "offer", "to_stage_key": "onboarding"})
    response = client.post("/pipelines", json=payload)
    assert response.status_code == 422

    payload = hiring_pipeline_payload()
    payload["stages"].append({"key": "offer", "name": "Offer again", "type": "offer"})
    assert client.post("/pipelines", json=payload).status_code == 422

    payload = hiring_pipeline_payload()
    payload["stages"] = []
    payload["transitions"] = []
    assert client.post("/pipelines", json=payload).status_code == 422


def test_pipeline_lookup_by_job(client, seed_via_api) -> None:
    seeded = seed_via_api()
    response = client.get(f"/pipelines/jobs/{seeded['job']['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == seeded["pipeline"]["id"]
    assert [stage["key"] for stage in response.json()["stages"]] == [
        "sourcing",
        "interview",
        "offer",
        "hired",
        "rejected",
    ]

    missing = client.get("/pipelines/jobs/job_missing")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"


def test_pipeline_bound_to_job_cannot_be_deleted(client, seed_via_api) -> None:
    seeded = seed_via_api()
    response = client.delete(f"/pipelines/{seeded['pipeline']['id']}")
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"

    unbound = client.post("/pipelines", json=hiring_pipeline_payload()).json()
    assert client.delete(f"/pipelines/{unbound['id']}").status_code == 204
    assert client.get(f"/pipelines/{unbound['id']}").status_code == 404


def test_application_submission_is_deduplicated(client, seed_via_api) -> None:
    seeded = seed_via_api()
    application = seeded["application"]
    assert application["current_stage_key"] == "sourcing"
    assert application["status"] == "applied"
    assert application["version"] == 1
    assert application["status_history"][0]["reason"] == "Application submitted"

    again = client.post(
        "/applications",
        json={"job_id": seeded["job"]["id"], "candidate_id": "cand_001"},
    )
    assert again.status_code == 201
    assert again.json()["id"] == application["id"]


def test_available_transitions_endpoint(client, seed_via_api) -> None:
    application_id = seed_via_api()["application"]["id"]
    response = client.get(f"/applications/{application_id}/transitions")
    assert response.status_code == 200
    assert [item["to_stage_key"] for item in response.json()] == ["interview", "rejected"]
    assert [item["action_name"] for item in response.json()] == ["Invite", "Reject"]


def test_undeclared_transition_is_rejected(client, seed_via_api) -> None:
    application_id = seed_via_api()["application"]["id"]
    response = _move(client, application_id, "hired")
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_transition"
    assert client.get(f"/applications/{application_id}").json()["version"] == 1


def test_offer_stage_gate_end_to_end(client, seed_via_api) -> None:
    application_id = seed_via_api()["application"]["id"]
    assert _move(client, application_id, "interview").status_code == 200

    interview = client.post(
        f"/applications/{application_id}/interviews",
        json=interview_payload(type="in-person", location="HQ", meeting_link="https://x"),
    )
    assert interview.status_code == 201
    created = interview.json()["interviews"][0]
    assert created["type"] == "in-person"
    assert created["location"] == "HQ"
    assert created["meeting_link"] is None

    assert _move(client, application_id, "offer").status_code == 200
    offer = client.post(f"/applications/{application_id}/offers", json=offer_payload())
    assert offer.status_code == 201
    assert offer.json()["offers"][0]["status"] == "pending"

    blocked = _move(client, application_id, "hired")
    assert blocked.status_code == 412
    assert blocked.json() == {
        "detail": "Cannot proceed without an accepted offer",
        "code": "precondition_failed",
    }
    still_offer = client.get(f"/applications/{application_id}").json()
    assert still_offer["current_stage_key"] == "offer"

    rejected = _move(client, application_id, "rejected", reason="Moved to Rejected stage")
    assert rejected.status_code == 200
    body = rejected.json()
    assert body["current_stage_key"] == "rejected"
    assert body["status"] == "rejected"
    last_entry = body["status_history"][-1]
    assert last_entry["from_stage_key"] == "offer"
    assert last_entry["to_stage_key"] == "rejected"
    assert last_entry["reason"] == "Moved to Rejected stage"
    assert last_entry["changed_by"] == "dev-local"

    transitions = client.get(f"/applications/{application_id}/transitions")
    assert transitions.json() == []


def test_stale_version_is_a_conflict(client, seed_via_api) -> None:
    application_id = seed_via_api()["application"]["id"]
    first = _move(client, application_id, "interview", expected_version=1)
    assert first.status_code == 200
    assert first.json()["version"] == 2

    stale = _move(client, application_id, "rejected", expected_version=1)
    assert stale.status_code == 409
    assert stale.json()["code"] == "conflict"
    assert client.get(f"/applications/{application_id}").json()["current_stage_key"] == "interview"


def test_candidate_counter_and_accept_over_http(client, seed_via_api) -> None:
    application_id = seed_via_api()["application"]["id"]
    _move(client, application_id, "interview")
    _move(client, application_id, "offer")
    offer_id = client.post(
        f"/applications/{application_id}/offers", json=offer_payload()
    ).json()["offers"][0]["id"]

    own = client.post(f"/offers/{offer_id}/accept", json={})
    assert own.status_code == 412

    countered = client.post(
        f"/offers/{offer_id}/counter",
        json={**offer_payload(base_salary=150000), "party": "candidate"},
    )
    assert countered.status_code == 200
    offers = countered.json()["offers"]
    counter_id = [item for item in offers if item["id"] != offer_id][0]["id"]

    accepted = client.post(f"/offers/{counter_id}/accept", json={"notes": "Agreed"})
    assert accepted.status_code == 200

    hired = _move(client, application_id, "hired")
    assert hired.status_code == 200
    assert hired.json()["status"] == "hired"


def test_unknown_interview_and_offer_ids(client) -> None:
    assert client.post("/interviews/int_missing/cancel").status_code == 404
    assert client.delete("/offers/off_missing").json()["code"] == "not_found"


def test_pipeline_errors_are_counted_in_metrics(client, seed_via_api) -> None:
    application_id = seed_via_api()["application"]["id"]
    _move(client, application_id, "hired")
    body = client.get("/metrics").text
    assert 'connect_career_pipeline_errors_total{code="invalid_transition"} 1' in body
