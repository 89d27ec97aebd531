from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, cast

from fastapi import Request
from fastapi.testclient import TestClient

from beacon_server.dependencies import get_settings


def _job_body(**overrides: Any) -> dict:
    body: dict[str, Any] = {
        "title": "Launch reminder",
        "body": "Your campaign goes live in one hour",
        "user_ids": ["user_1"],
        "scheduled_time": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
        "created_by": "admin_1",
    }
    body.update(overrides)
    return body


def _create(client: TestClient, **overrides: Any) -> str:
    response = client.post("/v1/notifications/jobs", json=_job_body(**overrides))
    assert response.status_code == 200, response.text
    return response.json()["id"]


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_get_job(client: TestClient) -> None:
    job_id = _create(client, tag="launch")

    response = client.get(f"/v1/notifications/jobs/{job_id}")
    assert response.status_code == 200
    job = response.json()
    assert job["status"] == "pending"
    assert job["attempts"] == 0
    assert job["max_attempts"] == 3
    assert job["tag"] == "launch"
    assert job["created_by"] == "admin_1"


def test_create_job_wakes_stopped_processor(client: TestClient) -> None:
    assert client.get("/v1/notifications/processor").json()["running"] is False

    _create(client)

    assert client.get("/v1/notifications/processor").json()["running"] is True


def test_get_missing_job_returns_404(client: TestClient) -> None:
    response = client.get("/v1/notifications/jobs/notif_missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found"


def test_create_job_rejects_past_schedule(client: TestClient) -> None:
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    response = client.post("/v1/notifications/jobs", json=_job_body(scheduled_time=past))
    assert response.status_code == 400
    assert "future" in response.json()["detail"]


def test_create_job_requires_targeting(client: TestClient) -> None:
    response = client.post("/v1/notifications/jobs", json=_job_body(user_ids=None))
    assert response.status_code == 422


def test_create_job_rejects_too_many_attempts(client: TestClient) -> None:
    response = client.post("/v1/notifications/jobs", json=_job_body(max_attempts=11))
    assert response.status_code == 422


def test_create_job_when_disabled(client_factory: Callable[..., TestClient]) -> None:
    with client_factory(enable_notifications=False) as client:
        response = client.post("/v1/notifications/jobs", json=_job_body())
    assert response.status_code == 403


def test_daily_cap(client_factory: Callable[..., TestClient]) -> None:
    with client_factory(notifications_daily_cap=1) as client:
        _create(client)
        response = client.post("/v1/notifications/jobs", json=_job_body())
    assert response.status_code == 429
    assert "cap reached (1)" in response.json()["detail"]


def test_list_jobs_with_pagination(client: TestClient) -> None:
    for _ in range(3):
        _create(client, created_by="admin_1")
    _create(client, created_by="admin_2")

    response = client.get("/v1/notifications/jobs", params={"created_by": "admin_1", "limit": 2})
    assert response.status_code == 200
    payload = response.json()
    assert payload["object"] == "list"
    assert payload["total"] == 3
    assert len(payload["data"]) == 2
    assert payload["has_more"] is True

    response = client.get("/v1/notifications/jobs", params={"status": "completed"})
    assert response.json()["total"] == 0


def test_list_jobs_validates_query(client: TestClient) -> None:
    assert client.get("/v1/notifications/jobs", params={"limit": 500}).status_code == 422
    assert client.get("/v1/notifications/jobs", params={"status": "exploded"}).status_code == 422


def test_cancel_job_twice(client: TestClient) -> None:
    job_id = _create(client)

    first = client.post(f"/v1/notifications/jobs/{job_id}/cancel")
    second = client.post(f"/v1/notifications/jobs/{job_id}/cancel")

    assert first.json() == {"id": job_id, "cancelled": True}
    assert second.json() == {"id": job_id, "cancelled": False}
    assert client.get(f"/v1/notifications/jobs/{job_id}").json()["status"] == "cancelled"


def test_bulk_cancel(client: TestClient) -> None:
    first = _create(client)
    second = _create(client)

    response = client.post("/v1/notifications/jobs/cancel", json={"job_ids": [first, second, "notif_missing"]})

    assert response.status_code == 200
    payload = response.json()
    assert payload["cancelled"] == 2
    assert [r["cancelled"] for r in payload["results"]] == [True, True, False]


def test_bulk_cancel_limits_batch(client: TestClient) -> None:
    response = client.post("/v1/notifications/jobs/cancel", json={"job_ids": [f"notif_{i}" for i in range(51)]})
    assert response.status_code == 422


def test_stats(client: TestClient) -> None:
    job_id = _create(client)
    _create(client)
    client.post(f"/v1/notifications/jobs/{job_id}/cancel")

    stats = client.get("/v1/notifications/stats").json()
    assert stats == {"pending": 1, "processing": 0, "completed": 0, "failed": 0, "cancelled": 1, "total": 2}


def test_cleanup_rejects_negative_retention(client: TestClient) -> None:
    job_id = _create(client)
    client.post(f"/v1/notifications/jobs/{job_id}/cancel")

    response = client.post("/v1/notifications/cleanup", params={"days": -1})

    assert response.status_code == 400
    assert "between 0 and 365" in response.json()["detail"]
    assert client.get(f"/v1/notifications/jobs/{job_id}").status_code == 200


def test_cleanup_keeps_recent_jobs(client: TestClient) -> None:
    job_id = _create(client)
    client.post(f"/v1/notifications/jobs/{job_id}/cancel")

    response = client.post("/v1/notifications/cleanup", params={"days": 30})

    assert response.json() == {"deleted": 0, "retention_days": 30}


def test_processor_start_and_stop(client: TestClient) -> None:
    started = client.post("/v1/notifications/processor/start", params={"interval": 5})
    assert started.json()["running"] is True
    assert started.json()["interval"] == 5

    stopped = client.post("/v1/notifications/processor/stop")
    assert stopped.json()["running"] is False
    assert stopped.json()["last_processed_at"] is None


def test_run_janitor(client: TestClient) -> None:
    response = client.post("/v1/notifications/janitor/run")
    assert response.json() == {"requeued": 0, "deleted": 0}


def test_get_settings_returns_app_settings(client: TestClient) -> None:
    request = cast(Request, SimpleNamespace(app=client.app))

    assert get_settings(request) is client.app.state.settings
    assert get_settings(request) is get_settings(request)
