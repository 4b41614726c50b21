import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import get_runtime, router
from config.registry import RESUME_EXTRACTOR_KEY, bind_model
from config.settings import settings

LONG_ANSWER = "Use memoization and split the work into smaller components, measuring with the profiler. " * 2


@pytest.fixture
def client(runtime):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_runtime] = lambda: runtime
    return TestClient(app)


def test_resume_upload_to_completion(client, runtime):
    bind_model(RESUME_EXTRACTOR_KEY, lambda **_: {"name": "Ada Lovelace", "email": "", "phone": ""})

    resp = client.post("/api/interview/resume", content=b"%PDF-1.4 fake", headers={"content-type": "application/pdf"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["phase"] == "collecting_profile"
    assert body["missing_fields"] == ["email", "phone"]
    candidate_id = body["candidate"]["id"]

    body = client.post("/api/interview/turn", json={"text": "ada@example.com"}).json()
    assert body["missing_fields"] == ["phone"]
    body = client.post("/api/interview/turn", json={"text": "+1 (555) 010-2030"}).json()
    assert body["phase"] == "idle"

    body = client.post("/api/interview/turn", json={"text": "start"}).json()
    assert body["phase"] == "asking_question"
    assert body["question_index"] == 0
    assert body["remaining_seconds"] == 20
    assert body["messages"][-1]["text"].startswith("Question 1/6")

    for index in range(6):
        body = client.post("/api/interview/turn", json={"text": LONG_ANSWER, "question_index": index}).json()
    assert body["phase"] == "finished"
    assert "Final score" in body["messages"][-1]["text"]

    detail = client.get(f"/api/interview/candidates/{candidate_id}").json()
    assert detail["status"] == "completed"
    assert len(detail["answers"]) == 6
    assert detail["total_score"] == sum(a["score"] for a in detail["answers"])
    assert detail["summary"]

    listing = client.get("/api/interview/candidates", params={"q": "lovelace", "sort_by": "name"}).json()
    assert [c["id"] for c in listing] == [candidate_id]


def test_pause_resume_and_stale_turn(client, runtime):
    body = client.post(
        "/api/interview/candidates",
        json={"name": "Grace Hopper", "email": "grace@navy.mil", "phone": "202-555-0143"},
    ).json()
    assert body["phase"] == "idle"

    client.post("/api/interview/start")
    for _ in range(5):
        runtime.machine.timer.tick()
    body = client.post("/api/interview/pause").json()
    assert body["phase"] == "paused"
    assert body["remaining_seconds"] == 15

    body = client.post("/api/interview/resume-session").json()
    assert body["phase"] == "asking_question"
    assert body["remaining_seconds"] == 15

    client.post("/api/interview/turn", json={"text": LONG_ANSWER, "question_index": 0})
    body = client.post("/api/interview/turn", json={"text": LONG_ANSWER, "question_index": 0}).json()
    assert body["messages"] == []
    assert body["question_index"] == 1

    state = client.get("/api/interview/state").json()
    assert state["candidate"]["answered"] == 1


def test_rejections(client):
    resp = client.post("/api/interview/resume", content=b"hello", headers={"content-type": "text/plain"})
    assert resp.status_code == 415

    resp = client.post("/api/interview/resume", content=b"%PDF", headers={"content-type": "application/pdf"})
    assert resp.status_code == 503

    assert client.post("/api/interview/candidates/nope/activate").status_code == 404
    assert client.get("/api/interview/candidates/nope").status_code == 404
    assert client.get("/api/interview/candidates", params={"sort_by": "age"}).status_code == 422


def test_unindexed_turn_after_expiry_is_not_scored(client, runtime):
    client.post(
        "/api/interview/candidates",
        json={"name": "Grace Hopper", "email": "grace@navy.mil", "phone": "202-555-0143"},
    )
    client.post("/api/interview/start")
    for _ in range(20):
        runtime.machine.timer.tick()

    body = client.post("/api/interview/turn", json={"text": LONG_ANSWER}).json()
    assert body["messages"] == []
    assert body["question_index"] == 1

    state = client.get("/api/interview/state").json()
    assert state["candidate"]["answered"] == 1


def test_oversized_upload_rejected_before_extraction(client, monkeypatch):
    calls = []
    bind_model(RESUME_EXTRACTOR_KEY, lambda **kw: calls.append(kw) or {"name": "x", "email": "", "phone": ""})
    monkeypatch.setattr(settings, "MAX_RESUME_BYTES", 10)

    resp = client.post("/api/interview/resume", content=b"%PDF-1.4 xx", headers={"content-type": "application/pdf"})
    assert resp.status_code == 413
    assert calls == []
