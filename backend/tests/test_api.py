from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from promptsite.main import app, get_orchestrator
from promptsite.models import GenerationJob, JobStatus, utcnow


HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_user_header_is_unauthorized(client):
    response = client.post("/projects/proj-1/generate", json={"prompt": "a bakery"})
    assert response.status_code == 401


def test_generate_creates_job(client, jobs):
    response = client.post(
        "/projects/proj-1/generate",
        json={"prompt": "a bakery", "messages": [{"role": "user", "content": "a bakery"}]},
        headers=HEADERS,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["jobId"] in jobs.rows


def test_generate_rejects_empty_prompt(client):
    response = client.post("/projects/proj-1/generate", json={"prompt": "  "}, headers=HEADERS)
    assert response.status_code == 400


def test_generate_over_quota_is_402(client, profiles):
    profiles.profiles["user-1"] = {"generation_count": 5, "generation_reset_at": utcnow().isoformat()}
    response = client.post("/projects/proj-1/generate", json={"prompt": "a bakery"}, headers=HEADERS)
    assert response.status_code == 402
    assert response.json()["limitReached"] is True


def test_job_status_and_active_job(client):
    job_id = client.post("/projects/proj-1/generate", json={"prompt": "a bakery"},
                         headers=HEADERS).json()["jobId"]

    status = client.get(f"/jobs/{job_id}", headers=HEADERS)
    assert status.status_code == 200
    assert status.json()["status"] == "pending"
    assert status.json()["currentStep"] == "Initializing..."

    active = client.get("/projects/proj-1/active-job", headers=HEADERS).json()
    assert active["job"]["id"] == job_id

    assert client.get(f"/jobs/{job_id}", headers={"X-User-Id": "intruder"}).status_code == 404


def test_stale_job_is_404(client, jobs):
    job = GenerationJob(id="gen_1_old", project_id="proj-1", user_id="user-1",
                        status=JobStatus.PROCESSING, created_at=utcnow() - timedelta(minutes=11))
    jobs.rows[job.id] = job.to_row()

    assert client.get(f"/jobs/{job.id}", headers=HEADERS).status_code == 404
    assert client.get("/projects/proj-1/active-job", headers=HEADERS).json() == {"job": None}


def test_usage(client):
    body = client.get("/usage", headers=HEADERS).json()
    assert body["plan_name"] == "Free"
    assert body["generations_remaining"] == 2
    assert body["max_pages_per_site"] == 3


def test_project_name(client, provider):
    provider.complete.return_value = "Sweet Crumbs"
    response = client.post("/project-name", json={"prompt": "a bakery"}, headers=HEADERS)
    assert response.json() == {"name": "Sweet Crumbs"}
