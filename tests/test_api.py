import uuid
from datetime import datetime, timedelta

from jose import jwt

from app.core.config import settings


def create_access_token(claims, expires_delta=timedelta(minutes=30)):
    """Sign a token the way the identity service does."""
    payload = dict(claims, exp=datetime.utcnow() + expires_delta)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id, role="student"):
    token = create_access_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


ALICE = auth_headers("alice")
ADMIN = auth_headers("ops", role="admin")


class TestAuthentication:

    async def test_missing_token(self, client):
        response = await client.get("/api/progress/overview")

        assert response.status_code == 401
        assert response.json() == {"error": "Access token required"}

    async def test_invalid_token(self, client):
        response = await client.get(
            "/api/progress/overview",
            headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid authentication credentials"

    async def test_expired_token(self, client):
        token = create_access_token({"sub": "alice"}, expires_delta=timedelta(minutes=-5))

        response = await client.get(
            "/api/progress/overview",
            headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    async def test_reconcile_requires_privileged_role(self, client):
        response = await client.post("/api/gamification/achievements/reconcile", headers=ALICE)

        assert response.status_code == 403
        assert response.json() == {"error": "Not authorized"}


class TestProgressEndpoints:

    async def test_untouched_course(self, client):
        response = await client.get("/api/progress/courses/py-101", headers=ALICE)

        assert response.status_code == 200
        body = response.json()
        assert body["percentage"] == 0
        assert body["completed"] is False
        assert body["user_id"] == "alice"

    async def test_update_then_read(self, client):
        response = await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 40},
            headers=ALICE
        )
        assert response.status_code == 200
        assert response.json()["track_id"] == "python"

        body = (await client.get("/api/progress/courses/py-101", headers=ALICE)).json()
        assert body["percentage"] == 40
        assert body["completed"] is False

    async def test_progress_is_per_user(self, client):
        await client.put("/api/progress/courses/py-101", json={"percentage": 40}, headers=ALICE)

        body = (await client.get("/api/progress/courses/py-101", headers=auth_headers("bob"))).json()

        assert body["percentage"] == 0

    async def test_out_of_range_percentage(self, client):
        response = await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 150},
            headers=ALICE
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["details"][0]["field"] == "percentage"

    async def test_unknown_course(self, client):
        response = await client.put(
            "/api/progress/courses/nope",
            json={"percentage": 10},
            headers=ALICE
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Course nope not found"}

    async def test_completed_course_cannot_regress(self, client):
        await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 100, "completed": True},
            headers=ALICE
        )

        response = await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 20, "completed": False},
            headers=ALICE
        )

        assert response.status_code == 409
        assert response.json()["error"] == "Completed course progress cannot be regressed"

    async def test_overview_after_completion(self, client):
        await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 100, "completed": True},
            headers=ALICE
        )
        await client.put("/api/progress/courses/sql-101", json={"percentage": 50}, headers=ALICE)

        response = await client.get("/api/progress/overview", headers=ALICE)

        assert response.status_code == 200
        body = response.json()
        assert body["stats"] == {
            "completed_courses": 1,
            "total_enrolled": 2,
            "average_progress_percent": 75,
            "total_points": 10
        }
        assert len(body["recent_progress"]) == 2
        assert body["achievements"][0]["key"] == "first-completion"


class TestGamificationEndpoints:

    async def test_achievement_catalog(self, client):
        response = await client.get("/api/gamification/achievements", headers=ALICE)

        assert response.status_code == 200
        assert [a["key"] for a in response.json()] == ["first-completion", "track-mastery", "knowledge-seeker"]

    async def test_my_achievements(self, client):
        await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 100, "completed": True},
            headers=ALICE
        )

        response = await client.get("/api/gamification/achievements/me", headers=ALICE)

        assert response.status_code == 200
        assert [a["title"] for a in response.json()] == ["First Completion"]

    async def test_leaderboard(self, client):
        await client.put("/api/progress/courses/py-101", json={"percentage": 10}, headers=auth_headers("bob"))
        await client.put(
            "/api/progress/courses/py-101",
            json={"percentage": 100, "completed": True},
            headers=ALICE
        )

        response = await client.get("/api/gamification/leaderboard", headers=ALICE)

        assert response.status_code == 200
        assert response.json() == [
            {"rank": 1, "user_id": "alice", "total_points": 10, "achievement_count": 1},
            {"rank": 2, "user_id": "bob", "total_points": 0, "achievement_count": 0},
        ]

    async def test_leaderboard_limit_bounds(self, client):
        assert (await client.get("/api/gamification/leaderboard?limit=0", headers=ALICE)).status_code == 422
        assert (await client.get("/api/gamification/leaderboard?limit=101", headers=ALICE)).status_code == 422

    async def test_manual_reconcile(self, client):
        await client.put("/api/progress/courses/py-101", json={"percentage": 30}, headers=ALICE)

        response = await client.post("/api/gamification/achievements/reconcile", headers=ADMIN)

        assert response.status_code == 200
        body = response.json()
        assert body["users_evaluated"] == 1
        assert body["achievements_awarded"] == 0
        assert body["failures"] == []


class TestQuizEndpoints:

    async def test_list_course_quizzes(self, client, quiz):
        response = await client.get("/api/quizzes/courses/py-101", headers=ALICE)

        assert response.status_code == 200
        [summary] = response.json()
        assert summary["title"] == "Python Basics Check"
        assert summary["question_count"] == 2
        assert "questions" not in summary

    async def test_quiz_for_taking_has_no_answers(self, client, quiz):
        response = await client.get(f"/api/quizzes/{quiz.id}", headers=ALICE)

        assert response.status_code == 200
        assert "correct_answer" not in response.text
        assert len(response.json()["questions"]) == 2

    async def test_unknown_quiz(self, client, quiz):
        response = await client.get(f"/api/quizzes/{uuid.uuid4()}", headers=ALICE)

        assert response.status_code == 404

    async def test_malformed_quiz_id(self, client):
        response = await client.get("/api/quizzes/not-a-uuid", headers=ALICE)

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "path.quiz_id"

    async def test_submit_and_breakdown(self, client, quiz, question_ids):
        response = await client.post(
            f"/api/quizzes/{quiz.id}/submit",
            json={"answers": {question_ids[0]: "def", question_ids[1]: "false"}, "time_spent_seconds": 90},
            headers=ALICE
        )

        assert response.status_code == 200
        body = response.json()
        assert body["score_percent"] == 50
        assert body["earned_points"] == 5
        assert body["passed"] is False
        assert body["remaining_attempts"] == 2
        assert [r["correct_answer"] for r in body["results"]] == ["def", "true"]

    async def test_malformed_answers(self, client, quiz):
        response = await client.post(
            f"/api/quizzes/{quiz.id}/submit",
            json={"answers": ["def"], "time_spent_seconds": 5},
            headers=ALICE
        )

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "answers"

    async def test_attempt_limit(self, client, quiz):
        url = f"/api/quizzes/{quiz.id}/submit"
        for _ in range(3):
            assert (await client.post(url, json={"answers": {}}, headers=ALICE)).status_code == 200

        response = await client.post(url, json={"answers": {}}, headers=ALICE)

        assert response.status_code == 409
        assert response.json()["error"] == "Maximum number of attempts reached"

        history = (await client.get(f"/api/quizzes/{quiz.id}/attempts", headers=ALICE)).json()
        assert len(history["attempts"]) == 3
        assert history["remaining_attempts"] == 0

    async def test_start_quiz(self, client, quiz):
        response = await client.post(f"/api/quizzes/{quiz.id}/start", headers=ALICE)

        assert response.status_code == 200
        body = response.json()
        assert body["expires_at"] is None
        assert body["quiz"]["id"] == str(quiz.id)
        assert "correct_answer" not in response.text

    async def test_starting_twice_keeps_the_clock(self, client, quiz):
        first = (await client.post(f"/api/quizzes/{quiz.id}/start", headers=ALICE)).json()
        second = (await client.post(f"/api/quizzes/{quiz.id}/start", headers=ALICE)).json()

        assert second["started_at"] == first["started_at"]


class TestServiceEndpoints:

    async def test_root(self, client):
        body = (await client.get("/")).json()

        assert body["status"] == "operational"
        assert body["environment"] == "test"

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["checks"]["database"] == "healthy"
        assert body["checks"]["achievement_sweep"] == "disabled"

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    async def test_request_id_is_generated(self, client):
        response = await client.get("/")

        assert len(response.headers["X-Request-ID"]) == 32
