"""Error scenario tests for edge cases and error paths.

Tests various error conditions including:
- Missing device session
- Invalid inputs
- Actions in the wrong phase
- Stale or mismatched submissions
- Storage failures and rate limits
"""
import pytest
from sqlalchemy.orm import Session
from bopomofo.constants import TRACE_IMAGE_MAX_LENGTH
from bopomofo.main import app
from bopomofo.services import preferences

TRACE_IMAGE = "data:image/png;base64,c3R1Yg=="


class TestMissingDevice:
    """Device-scoped endpoints require the device cookie."""

    @pytest.mark.parametrize("method, path, body", [
        ("put", "/api/settings", {"requiredQuestions": 5}),
        ("put", "/api/student", {"studentId": "S01"}),
        ("put", "/api/theme", {"theme": "dark"}),
        ("delete", "/api/stats", None),
        ("get", "/api/checkpoint/state", None),
        ("post", "/api/checkpoint/start", None),
        ("post", "/api/checkpoint/question", None),
        ("post", "/api/checkpoint/evaluate", None),
        ("post", "/api/checkpoint/restart", None),
    ])
    def test_no_cookie_is_401(self, test_client, method, path, body):
        kwargs = {"json": body} if body is not None else {}
        response = test_client.request(method.upper(), path, **kwargs)

        assert response.status_code == 401
        assert "device" in response.json()["detail"].lower()


class TestInvalidInput:
    """Request validation errors."""

    def test_empty_selected_option(self, ready_client):
        ready_client.post("/api/checkpoint/start")
        response = ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄅ", "selected_option": ""})
        assert response.status_code == 422

    def test_whitespace_selected_option(self, ready_client):
        ready_client.post("/api/checkpoint/start")
        response = ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄅ", "selected_option": "   "})
        assert response.status_code == 422

    def test_unknown_theme(self, test_client):
        test_client.get("/api/bootstrap")
        assert test_client.put("/api/theme", json={"theme": "purple"}).status_code == 422

    def test_non_numeric_threshold(self, test_client):
        test_client.get("/api/bootstrap")
        response = test_client.put("/api/settings", json={"requiredQuestions": "many"})
        assert response.status_code == 422

    def test_trace_without_image(self, test_client):
        response = test_client.post("/api/learn/trace", json={"symbol": "ㄅ"})
        assert response.status_code == 422

    def test_oversized_trace_rejected(self, test_client):
        image = "data:image/png;base64," + "A" * TRACE_IMAGE_MAX_LENGTH
        response = test_client.post("/api/learn/trace", json={"symbol": "ㄅ", "image": image})
        assert response.status_code == 422

    def test_practice_trace_unknown_symbol(self, test_client):
        response = test_client.post("/api/learn/trace", json={"symbol": "Q", "image": TRACE_IMAGE})
        assert response.status_code == 400


class TestWrongPhase:
    """Checkpoint actions outside a running level."""

    def test_question_before_start(self, ready_client):
        response = ready_client.post("/api/checkpoint/question")
        assert response.status_code == 400
        assert response.json()["detail"] == "No level in progress"

    def test_answer_before_start(self, ready_client):
        response = ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄅ", "selected_option": "ㄅ"})
        assert response.status_code == 400

    def test_evaluate_before_gate(self, ready_client):
        ready_client.post("/api/checkpoint/start")
        ready_client.post("/api/checkpoint/question")
        ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄅ", "selected_option": "ㄅ"})

        response = ready_client.post("/api/checkpoint/evaluate")
        assert response.status_code == 400

        state = ready_client.get("/api/checkpoint/state").json()
        assert state["progress"]["attempts"] == 1
        assert state["current_symbol"] == "ㄅ"

    def test_question_with_too_few_symbols(self, ready_client):
        ready_client.put("/api/settings", json={"enabledSymbols": ["ㄅ", "ㄆ", "ㄇ"]})
        ready_client.post("/api/checkpoint/start")

        response = ready_client.post("/api/checkpoint/question")
        assert response.status_code == 400
        assert "4" in response.json()["detail"]

    def test_start_with_blank_student(self, test_client):
        test_client.get("/api/bootstrap")
        test_client.put("/api/student", json={"studentId": "  \t "})
        assert test_client.post("/api/checkpoint/start").status_code == 400


class TestMismatchedSubmissions:
    """Submissions for a symbol other than the current level."""

    def test_answer_for_other_level(self, ready_client):
        ready_client.post("/api/checkpoint/start")
        ready_client.post("/api/checkpoint/question")

        response = ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄆ", "selected_option": "ㄆ"})
        assert response.status_code == 409

        state = ready_client.get("/api/checkpoint/state").json()
        assert state["progress"]["attempts"] == 0

    def test_trace_for_other_level(self, ready_client, runtime):
        ready_client.post("/api/checkpoint/start")
        response = ready_client.post("/api/checkpoint/trace", json={"symbol": "ㄆ", "image": TRACE_IMAGE})

        assert response.status_code == 409
        assert runtime.grader.calls == []


class TestStorageFailure:
    """Unexpected errors during evaluation."""

    def test_evaluate_storage_error_is_500(self, ready_client, monkeypatch):
        ready_client.post("/api/checkpoint/start")
        for _ in range(2):
            ready_client.post("/api/checkpoint/question")
            ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄅ", "selected_option": "ㄅ"})

        def broken_save(db, device_id, stats):
            raise RuntimeError("disk full")

        monkeypatch.setattr(preferences, "save_stats", broken_save)

        response = ready_client.post("/api/checkpoint/evaluate")
        assert response.status_code == 500
        assert "disk full" in response.json()["detail"]
        assert ready_client.get("/api/bootstrap").json()["stats"]["total"] == 0

        state = ready_client.get("/api/checkpoint/state").json()
        assert state["level_index"] == 0
        assert state["progress"]["attempts"] == 2

    def test_commit_failure_keeps_level_for_retry(self, ready_client, monkeypatch):
        """A pass that cannot be saved leaves the session on the same level."""
        ready_client.post("/api/checkpoint/start")
        for _ in range(2):
            ready_client.post("/api/checkpoint/question")
            ready_client.post("/api/checkpoint/answer", json={"symbol": "ㄅ", "selected_option": "ㄅ"})

        def failing_commit(self):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(Session, "commit", failing_commit)
        response = ready_client.post("/api/checkpoint/evaluate")
        monkeypatch.undo()

        assert response.status_code == 500
        state = ready_client.get("/api/checkpoint/state").json()
        assert state["phase"] == "in_level"
        assert state["level_index"] == 0
        assert state["current_symbol"] == "ㄅ"
        assert state["progress"] == {"symbol": "ㄅ", "attempts": 2, "correct": 2, "accuracy": 100}

        retry = ready_client.post("/api/checkpoint/evaluate").json()
        assert retry["evaluation"]["passed"] is True
        assert retry["stats"]["total"] == 2
        assert retry["current_symbol"] == "ㄆ"
        assert ready_client.get("/api/bootstrap").json()["stats"]["total"] == 2


class TestResultResend:
    """Manual result sends outside a cleared checkpoint."""

    def test_result_before_clear(self, ready_client):
        ready_client.post("/api/checkpoint/start")
        response = ready_client.post("/api/checkpoint/result")
        assert response.status_code == 400

    def test_result_without_device(self, test_client):
        assert test_client.post("/api/checkpoint/result").status_code == 401


class TestRateLimit:
    """slowapi limits on checkpoint starts."""

    def test_start_rate_limited(self, test_client):
        limiter = app.state.limiter
        limiter.reset()
        limiter.enabled = True
        try:
            statuses = [test_client.post("/api/checkpoint/start").status_code for _ in range(11)]
        finally:
            limiter.enabled = False
            limiter.reset()

        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429
