import time

import pytest
from fastapi.testclient import TestClient

from intentcad.api.app import create_app
from intentcad.api.jobs import JobStore, write_artifact
from intentcad.config import Settings


SPHERE = {"baseGeometry": {"type": "sphere", "parameters": {"radius": 10}}}
PLATE = {"plate": {"type": "box", "dimensions": {"width": 100, "height": 10, "depth": 50}}}


@pytest.fixture
def settings(tmp_path):
    return Settings(evaluator="disabled", artifacts_dir=str(tmp_path / "artifacts"))


@pytest.fixture
def jobs():
    return JobStore()


@pytest.fixture
def client(settings, jobs):
    with TestClient(create_app(settings, jobs=jobs)) as c:
        yield c


def wait_for_job(client, job_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/jobs/{job_id}").json()
        if body["status"] in ("done", "failed"):
            return body
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "service": "intentcad-api", "evaluator": "fallback"}


def test_capabilities(client):
    body = client.get("/capabilities").json()
    assert {"primitives", "features", "booleans", "export", "analysis"} <= set(body)
    assert all(p["fallback"] for p in body["primitives"])


# ----------------------------
# IR path
# ----------------------------

def test_compile_without_evaluator(client):
    body = client.post("/ir/compile", json={"objects": PLATE}).json()

    assert body["ok"] is False
    assert body["status"] == "fallback"
    assert body["intent_hash"].startswith("intent_")
    assert body["mesh"] is None
    assert body["can_undo"] is False


def test_undo_redo(client):
    client.post("/ir/compile", json={"objects": PLATE})
    client.post("/ir/compile", json={"objects": {**PLATE, "pin": {"type": "cylinder", "dimensions": {"radius": 2, "height": 5}}}})

    undone = client.post("/ir/undo").json()
    assert undone["can_redo"] is True
    assert client.post("/ir/undo").status_code == 409

    redone = client.post("/ir/redo").json()
    assert redone["can_redo"] is False
    assert redone["intent_hash"] != undone["intent_hash"]
    assert client.post("/ir/redo").status_code == 409


def test_validate_without_evaluator(client):
    body = client.post("/ir/validate", json={"objects": PLATE}).json()
    assert body["valid"] is False
    assert body["errors"][0]["code"] == "KERNEL_NOT_READY"


# ----------------------------
# Sequence path
# ----------------------------

def test_sequence(client):
    intent = {
        **SPHERE,
        "features": [{"type": "boss", "parameters": {"diameter": 4, "height": 3}}],
    }
    body = client.post("/sequence", json={"intent": intent}).json()

    assert [op["operation"] for op in body["operations"]] == ["CREATE_SPHERE", "ADD_BOSS"]
    assert body["estimated_time"] == 250


def test_sequence_rejects_bad_intent(client):
    r = client.post("/sequence", json={"intent": {"features": []}})
    assert r.status_code == 422
    assert r.json()["detail"]["type"] == "InvalidIntent"


def test_job_runs_in_fallback(client, jobs):
    r = client.post("/jobs/submit", json={"intent": SPHERE})
    assert r.status_code == 200
    job_id = r.json()["job_id"]

    body = wait_for_job(client, job_id)

    assert body["status"] == "done"
    assert body["progress"] == 1.0
    assert body["result"]["fallback"] is True
    assert body["result"]["geometry_id"].startswith("local_")
    assert len(jobs) == 1


def test_job_export_skipped_in_fallback(client):
    job_id = client.post("/jobs/submit", json={"intent": SPHERE, "export": "stl"}).json()["job_id"]

    body = wait_for_job(client, job_id)

    assert body["status"] == "done"
    assert body["result"]["artifacts"] == []
    assert "fallback" in body["result"]["export_error"]


def test_job_failure_reports_operation(client):
    intent = {**SPHERE, "features": [{"type": "hole", "parameters": {"diameter": 2}}]}
    job_id = client.post("/jobs/submit", json={"intent": intent}).json()["job_id"]

    body = wait_for_job(client, job_id)

    assert body["status"] == "failed"
    assert body["error"]["type"] == "FallbackUnsupportedError"
    assert body["error"]["operation"]["operation"] == "ADD_HOLE"


def test_submit_rejects_bad_intent(client, jobs):
    r = client.post("/jobs/submit", json={"intent": {"baseGeometry": {"type": ""}}})
    assert r.status_code == 422
    assert len(jobs) == 0


def test_unknown_job(client):
    assert client.get("/jobs/nope").status_code == 404


# ----------------------------
# Artifacts
# ----------------------------

def test_download_artifact(client, settings):
    artifact = write_artifact(settings, "job-1", "stl", "solid model\nendsolid model\n")

    r = client.get(artifact["url"])

    assert r.status_code == 200
    assert r.text.startswith("solid")
    assert artifact["mime"] == "model/stl"
    assert artifact["filename"] == "model.stl"
    assert artifact["kind"] == "stl"


def test_missing_artifact(client):
    assert client.get("/artifacts/job-1/model.stl").status_code == 404


def test_artifact_path_escape(client):
    r = client.get("/artifacts/..%2F..%2F/secrets.txt")
    assert r.status_code in (400, 404)
