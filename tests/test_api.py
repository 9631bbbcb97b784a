from __future__ import annotations

import importlib
import os
import sys

from fastapi.testclient import TestClient

from level_core.errors import TEACHER_CANNOT_TEST

from tests.conftest import FakeRemote, answer_key

STUDENT = {"X-User-Email": "ana@example.com", "X-User-Role": "student"}
TEACHER = {"X-User-Email": "boss@example.com", "X-User-Role": "teacher"}


def _reload_app(tmp_path, remote: FakeRemote):
    os.environ["DATA_DIR"] = str(tmp_path)
    if "api.app" in sys.modules:
        importlib.reload(sys.modules["api.app"])
    else:
        import api.app  # noqa: F401
    app_module = sys.modules["api.app"]
    app_module.REMOTE_FACTORY = lambda user, user_id, token: remote
    return app_module


def _finish(client, remote, variant="general", correct=6):
    sid = client.post("/session/start", json={"variant": variant}, headers=STUDENT).json()["session_id"]
    body = None
    for pick in answer_key(variant, correct):
        r = client.post(f"/session/{sid}/answer", json={"selected_index": pick})
        assert r.status_code == 200, r.text
        body = r.json()
    remote.saved_event.wait(timeout=5)
    return sid, body


def test_variants_and_public_questions(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote()).app)
    ids = [v["id"] for v in client.get("/variants").json()["variants"]]
    assert ids == ["general", "ielts", "toefl"]

    qs = client.get("/questions/unknown").json()
    assert qs["variant"] == "general"
    assert len(qs["questions"]) == 10
    assert all("correct" not in q for q in qs["questions"])


def test_student_run_end_to_end(tmp_path):
    remote = FakeRemote()
    client = TestClient(_reload_app(tmp_path, remote).app)

    sid, body = _finish(client, remote, "general", 6)
    assert body["done"] is True
    assert body["result"]["level"] == "B1"

    state = client.get(f"/session/{sid}").json()
    assert state["status"] == "completed"

    late = client.post(f"/session/{sid}/answer", json={"selected_index": 0})
    assert late.status_code == 409

    results = client.get("/results", headers=STUDENT).json()["results"]
    assert len(results) == 1 and results[0]["score"] == 6
    assert (tmp_path / "local" / "aitutor_level_results_ana_example_com.json").exists()
    assert len(remote.saved) == 1


def test_invalid_option_is_422(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote()).app)
    sid = client.post("/session/start", json={"variant": "toefl"}, headers=STUDENT).json()["session_id"]
    r = client.post(f"/session/{sid}/answer", json={"selected_index": 9})
    assert r.status_code == 422
    assert client.get(f"/session/{sid}").json()["current_question"] == 0


def test_teacher_cannot_start(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote()).app)
    r = client.post("/session/start", json={"variant": "general"}, headers=TEACHER)
    assert r.status_code == 403
    assert r.json()["detail"] == TEACHER_CANNOT_TEST


def test_unknown_session_is_404(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote()).app)
    assert client.get("/session/nope").status_code == 404


def test_delete_requires_confirm_flag(tmp_path):
    remote = FakeRemote()
    client = TestClient(_reload_app(tmp_path, remote).app)
    _, body = _finish(client, remote)
    rid = body["result"]["id"]

    assert client.delete(f"/results/{rid}", headers=STUDENT).status_code == 409
    ok = client.delete(f"/results/{rid}", params={"confirm": "true"}, headers=STUDENT)
    assert ok.status_code == 200 and ok.json()["results"] == []
    assert client.delete(f"/results/{rid}", params={"confirm": "true"}, headers=STUDENT).status_code == 404


def test_integrate_after_run(tmp_path):
    remote = FakeRemote()
    client = TestClient(_reload_app(tmp_path, remote).app)
    _finish(client, remote, "general", 9)
    r = client.post("/results/integrate", json={}, headers=STUDENT)
    assert r.status_code == 200
    assert r.json()["state"] == "integrated"
    assert remote.levels == [("C1", "Advanced")]


def test_integrate_failure_is_502(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote(fail_level="nope")).app)
    r = client.post("/results/integrate", json={"level": "A2", "description": "Elementary"}, headers=STUDENT)
    assert r.status_code == 502


def test_teacher_results_view(tmp_path):
    rows = [{"id": 5, "level": "B2", "score": 8, "created_at": "2024-06-01", "profiles": {"email": "s@x.org"}}]
    client = TestClient(_reload_app(tmp_path, FakeRemote(teacher_rows=rows)).app)

    assert client.get("/teacher/results", headers=STUDENT).status_code == 403
    view = client.get("/teacher/results", headers=TEACHER).json()
    assert view["state"] == "ready"
    assert view["rows"][0]["tier"] == "Excellent"
    assert view["rows"][0]["student_name"] == "s"


def test_teacher_results_error_has_no_rows(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote(fail_fetch="Could not connect to database")).app)
    view = client.get("/teacher/results", headers=TEACHER).json()
    assert view == {"state": "error", "error": "Could not connect to database", "rows": []}


def test_generic_action_dispatch(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote()).app)
    r = client.post("/actions/init", headers=STUDENT)
    assert r.status_code == 200
    assert r.json()["result"] == {"view": "start", "results": []}

    assert client.post("/actions/self_destruct", headers=STUDENT).status_code == 404


def test_fresh_credentials_rebuild_the_remote(tmp_path):
    remote = FakeRemote()
    app_module = _reload_app(tmp_path, remote)
    calls = []

    def factory(user, user_id, token):
        calls.append((user_id, token))
        return remote

    app_module.REMOTE_FACTORY = factory
    client = TestClient(app_module.app)

    client.get("/results", headers=STUDENT)
    auth = {**STUDENT, "X-User-Id": "uid-1", "Authorization": "Bearer tok-1"}
    assert client.post("/session/start", json={"variant": "general"}, headers=auth).status_code == 200
    assert calls == [(None, None), ("uid-1", "tok-1")]

    # same credentials reuse the remote, a new token replaces it, bare calls keep it
    client.post("/session/start", json={"variant": "general"}, headers=auth)
    client.get("/results", headers=STUDENT)
    client.post("/results/integrate", json={}, headers={**auth, "Authorization": "Bearer tok-2"})
    assert calls == [(None, None), ("uid-1", "tok-1"), ("uid-1", "tok-2")]


def test_confirm_is_per_request(tmp_path):
    remote = FakeRemote()
    client = TestClient(_reload_app(tmp_path, remote).app)
    _finish(client, remote)
    remote.saved_event.clear()
    _, body = _finish(client, remote)
    keep_id = body["result"]["id"]
    first_id = client.get("/results", headers=STUDENT).json()["results"][1]["id"]

    assert client.delete(f"/results/{first_id}", params={"confirm": "true"}, headers=STUDENT).status_code == 200
    assert client.delete(f"/results/{keep_id}", headers=STUDENT).status_code == 409
    assert [r["id"] for r in client.get("/results", headers=STUDENT).json()["results"]] == [keep_id]


def test_action_with_wrong_arguments_is_422(tmp_path):
    client = TestClient(_reload_app(tmp_path, FakeRemote()).app)
    r = client.post("/actions/start_test", json={"args": {"flavour": "ielts"}}, headers=STUDENT)
    assert r.status_code == 422
