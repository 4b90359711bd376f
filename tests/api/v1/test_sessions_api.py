"""
Tests for test session endpoints.
"""
import pytest

from assessment.models.models import QuestionType

USER = {"X-User-Id": "7"}
OTHER_USER = {"X-User-Id": "8"}


@pytest.fixture
def started_session(client, question_factory):
    """A started session over four true/false questions and one code question."""
    tf = [question_factory(QuestionType.TRUE_FALSE) for _ in range(4)]
    code = question_factory(QuestionType.CODE_CHALLENGE)
    question_ids = [q.id for q in tf] + [code.id]
    payload = {
        "title": "Quick check",
        "settings": {
            "time_limit_minutes": 30,
            "shuffle_questions": False,
            "passing_score_percent": 50,
        },
        "questions": [{"question_id": qid, "order": i} for i, qid in enumerate(question_ids)],
    }
    test_id = client.post("/v1/tests", json=payload).json()["id"]
    client.post(f"/v1/tests/{test_id}/publish")
    session = client.post(f"/v1/tests/{test_id}/sessions", headers=USER).json()
    return {"id": session["id"], "tf": [q.id for q in tf], "code": code.id}


class TestGetSession:
    """Tests for GET /v1/sessions/{id}."""

    def test_get_own_session(self, client, started_session):
        response = client.get(f"/v1/sessions/{started_session['id']}", headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "in_progress"
        assert len(data["questions"]) == 5

    def test_other_users_session_is_not_found(self, client, started_session):
        response = client.get(f"/v1/sessions/{started_session['id']}", headers=OTHER_USER)
        assert response.status_code == 404

    def test_unknown_session(self, client):
        response = client.get("/v1/sessions/999", headers=USER)

        assert response.status_code == 404
        assert response.json()["detail"] == "Session not found (ID: 999)."

    def test_reading_after_deadline_expires(self, client, started_session, clock):
        clock.advance(minutes=31)

        response = client.get(f"/v1/sessions/{started_session['id']}", headers=USER)

        assert response.status_code == 200
        assert response.json()["status"] == "expired"


class TestSubmitAnswer:
    """Tests for POST /v1/sessions/{id}/answers."""

    def test_correct_answer(self, client, started_session):
        response = client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={
                "question_id": started_session["tf"][0],
                "answer": True,
                "time_spent_seconds": 12,
            },
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json() == {
            "question_id": started_session["tf"][0],
            "is_correct": True,
            "points_awarded": 2,
            "time_spent_seconds": 12,
        }

    def test_code_answer_is_not_graded(self, client, started_session):
        response = client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={"question_id": started_session["code"], "answer": "return 42"},
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json()["is_correct"] is None

    def test_question_not_in_session(self, client, started_session):
        response = client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={"question_id": 9999, "answer": True},
            headers=USER,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "This question is not part of the test session."

    def test_negative_time_is_rejected(self, client, started_session):
        response = client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={
                "question_id": started_session["tf"][0],
                "answer": True,
                "time_spent_seconds": -5,
            },
            headers=USER,
        )

        assert response.status_code == 422

    def test_answer_after_deadline(self, client, started_session, clock):
        clock.advance(minutes=45)

        response = client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={"question_id": started_session["tf"][0], "answer": True},
            headers=USER,
        )

        assert response.status_code == 409
        assert response.json()["status"] == "expired"

    def test_other_user_cannot_answer(self, client, started_session):
        response = client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={"question_id": started_session["tf"][0], "answer": True},
            headers=OTHER_USER,
        )

        assert response.status_code == 404


class TestCompleteAndResults:
    """Tests for completion and results."""

    def test_complete_returns_results(self, client, started_session, clock):
        for question_id in started_session["tf"][:3]:
            client.post(
                f"/v1/sessions/{started_session['id']}/answers",
                json={"question_id": question_id, "answer": True, "time_spent_seconds": 30},
                headers=USER,
            )
        clock.advance(minutes=10)

        response = client.post(f"/v1/sessions/{started_session['id']}/complete", headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["time_spent_seconds"] == 600
        # 4 x 2 true/false points plus 2 for the code question
        assert data["score"] == {
            "total_points": 10,
            "earned_points": 6,
            "percentage": 60,
            "passed": True,
        }
        assert [q["is_correct"] for q in data["questions"]] == [True, True, True, None, None]

    def test_results_before_completion(self, client, started_session):
        response = client.get(f"/v1/sessions/{started_session['id']}/results", headers=USER)

        assert response.status_code == 409
        assert response.json()["status"] == "in_progress"

    def test_results_after_completion(self, client, started_session):
        client.post(f"/v1/sessions/{started_session['id']}/complete", headers=USER)

        response = client.get(f"/v1/sessions/{started_session['id']}/results", headers=USER)

        assert response.status_code == 200
        assert response.json()["score"]["earned_points"] == 0

    def test_complete_twice(self, client, started_session):
        client.post(f"/v1/sessions/{started_session['id']}/complete", headers=USER)

        response = client.post(f"/v1/sessions/{started_session['id']}/complete", headers=USER)

        assert response.status_code == 409
        assert response.json()["detail"] == "This test session is completed."

    def test_results_after_expiry(self, client, started_session, clock):
        client.post(
            f"/v1/sessions/{started_session['id']}/answers",
            json={"question_id": started_session["tf"][0], "answer": True},
            headers=USER,
        )
        clock.advance(hours=1)

        response = client.get(f"/v1/sessions/{started_session['id']}/results", headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "expired"
        assert data["time_spent_seconds"] == 1800
        assert data["score"]["earned_points"] == 2


class TestRequestLogging:
    """Tests for the request logging middleware."""

    def test_request_id_is_echoed(self, client):
        response = client.get("/v1/sessions/1", headers={**USER, "X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_request_id_is_generated(self, client):
        response = client.get("/v1/sessions/1", headers=USER)
        assert response.headers["X-Request-ID"]
