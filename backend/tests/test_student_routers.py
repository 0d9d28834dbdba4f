import pytest
from fastapi.testclient import TestClient

from uniexam.app import app

HEADERS = {"X-Student-Id": "s1"}


@pytest.fixture
def client(controller):
    app.state.controller = controller
    with TestClient(app) as c:
        yield c
    app.state.controller = None


def test_requests_need_a_known_student(client):
    assert client.get("/api/student/exams").status_code == 401
    assert client.get("/api/student/exams", headers={"X-Student-Id": "ghost"}).status_code == 401


def test_list_start_answer_and_submit(client, remote):
    res = client.get("/api/student/exams", headers=HEADERS)
    assert res.status_code == 200
    assert {e["id"]: e["availability"] for e in res.json()} == {"exam-1": "not_started", "exam-short": "not_started"}

    res = client.post("/api/exams/exam-1/start", headers=HEADERS)
    assert res.status_code == 200
    body = res.json()
    assert body["resumed"] is False
    assert body["status"] == "in_progress"
    assert body["remaining_display"] == "60:00"
    assert [q["id"] for q in body["questions"]] == ["q1", "q2", "q3"]
    # grading data never reaches the client
    assert "correct_option_index" not in body["questions"][0]
    assert "accepted_answers" not in body["questions"][1]
    assert body["questions"][2]["test_cases"] == [{"input": "2 3", "output": "5"}]

    res = client.put(
        "/api/exams/exam-1/answers/q1",
        json={"answer": {"kind": "multiple_choice", "option_index": 1}},
        headers=HEADERS,
    )
    assert res.status_code == 200
    assert res.json()["score"] == 2.0

    res = client.put("/api/exams/exam-1/navigate", json={"index": 2}, headers=HEADERS)
    assert res.json()["current_question_index"] == 2

    res = client.post("/api/exams/exam-1/submit", headers=HEADERS)
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert remote.rows[("s1", "exam-1")].is_completed

    res = client.put(
        "/api/exams/exam-1/answers/q2",
        json={"answer": {"kind": "short_answer", "text": "Bangkok"}},
        headers=HEADERS,
    )
    assert res.status_code == 409
    assert client.post("/api/exams/exam-1/start", headers=HEADERS).status_code == 409
    # the submitted attempt is now answered from the progress stores
    assert client.get("/api/exams/exam-1/session", headers=HEADERS).status_code == 404

    res = client.get("/api/student/exams", headers=HEADERS)
    listed = {e["id"]: e for e in res.json()}
    assert listed["exam-1"]["availability"] == "completed"
    assert listed["exam-1"]["score"] == 2.0


def test_bad_requests(client):
    assert client.post("/api/exams/no-such-exam/start", headers=HEADERS).status_code == 404
    assert client.get("/api/exams/exam-1/session", headers=HEADERS).status_code == 404
    client.post("/api/exams/exam-1/start", headers=HEADERS)

    assert client.put("/api/exams/exam-1/navigate", json={"index": 7}, headers=HEADERS).status_code == 400
    res = client.put(
        "/api/exams/exam-1/answers/q1",
        json={"answer": {"kind": "short_answer", "text": "Bangkok"}},
        headers=HEADERS,
    )
    assert res.status_code == 400
    res = client.put("/api/exams/exam-1/answers/q1", json={"answer": {"kind": "essay"}}, headers=HEADERS)
    assert res.status_code == 422


def test_other_section_cannot_start(client):
    res = client.post("/api/exams/exam-1/start", headers={"X-Student-Id": "s2"})
    assert res.status_code == 404


def test_run_code(client, executor):
    client.post("/api/exams/exam-1/start", headers=HEADERS)
    client.put(
        "/api/exams/exam-1/answers/q3",
        json={"answer": {"kind": "code_exercise", "code": "print(5)"}},
        headers=HEADERS,
    )
    res = client.post("/api/exams/exam-1/questions/q3/run", headers=HEADERS)
    assert res.status_code == 200
    body = res.json()
    assert body["passed"] is True
    assert body["applied"] is True
    assert body["error_kind"] == "none"
    assert executor.calls == ["print(5)"]

    session = client.get("/api/exams/exam-1/session", headers=HEADERS).json()
    assert session["score"] == 3.0
    assert session["answers"]["q3"]["last_execution_passed"] is True


def test_submit_with_remote_down_warns_and_resync_recovers(client, remote, cache):
    client.post("/api/exams/exam-1/start", headers=HEADERS)
    remote.available = False

    res = client.post("/api/exams/exam-1/submit", headers=HEADERS)
    assert res.status_code == 502
    assert "not saved" in res.json()["detail"]
    assert cache.read("s1", "exam-1").is_completed

    session = client.get("/api/exams/exam-1/session", headers=HEADERS).json()
    assert session["status"] == "completed"
    assert session["submission_warning"]

    remote.available = True
    res = client.post("/api/exams/exam-1/resync", headers=HEADERS)
    assert res.json() == {"ok": True, "error": None}
    session = client.get("/api/exams/exam-1/session", headers=HEADERS).json()
    assert session["submission_warning"] is None
