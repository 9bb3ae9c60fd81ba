"""Tests for the HTTP surface and its error mapping."""

import httpx
import pytest

from orgflow.domain.user import UserRole
from orgflow.main import app


NOTE = "Benchmarks rerun on the staging cluster"


@pytest.fixture
async def client(patched_db, make_user):
    """HTTP client bound to the app, with a small organization seeded."""
    await make_user("admin1", role=UserRole.ADMIN)
    await make_user("lead1", role=UserRole.LEAD)
    await make_user("alice")
    await make_user("bob")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


async def _published_task(client: httpx.AsyncClient) -> tuple[str, str]:
    response = await client.post("/api/tasks", json={"title": "Perf audit"}, headers=as_user("lead1"))
    task_id = response.json()["id"]
    response = await client.post(
        f"/api/tasks/{task_id}/modules",
        json={"title": "Benchmarks", "assignee_ids": ["alice"]},
        headers=as_user("lead1"),
    )
    module_id = response.json()["id"]
    await client.post(f"/api/tasks/{task_id}/publish", headers=as_user("lead1"))
    return task_id, module_id


@pytest.mark.unit
class TestCallerResolution:
    """Tests for the X-User-Id header handling."""

    async def test_health(self, client):
        """Test the health endpoint needs no caller."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_missing_header_is_unauthenticated(self, client):
        """Test requests without a caller are rejected with 401."""
        response = await client.get("/api/tasks")

        assert response.status_code == 401

    async def test_unknown_caller_is_forbidden(self, client):
        """Test an unknown caller id maps to 403."""
        response = await client.get("/api/tasks", headers=as_user("ghost"))

        assert response.status_code == 403
        assert response.json()["code"] == "ERR_PERMISSION_DENIED"

    async def test_contributor_cannot_create_tasks(self, client):
        """Test manager-only routes refuse contributors."""
        response = await client.post("/api/tasks", json={"title": "Nope"}, headers=as_user("alice"))

        assert response.status_code == 403


@pytest.mark.unit
class TestTaskRoutes:
    """Tests for the task and module routes."""

    async def test_full_flow(self, client):
        """Test create, publish, start, submit, approve and complete over HTTP."""
        task_id, module_id = await _published_task(client)
        base = f"/api/tasks/{task_id}/modules/{module_id}"

        assert (await client.post(f"{base}/start", headers=as_user("alice"))).status_code == 200
        response = await client.post(f"{base}/submit", json={"note": NOTE}, headers=as_user("alice"))
        assert response.json()["status"] == "review"

        response = await client.post(f"{base}/approve", headers=as_user("lead1"))
        assert response.json()["modules"][0]["status"] == "approved"

        response = await client.post(f"/api/tasks/{task_id}/complete", headers=as_user("lead1"))
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    async def test_illegal_transition_is_400(self, client):
        """Test an illegal transition maps to 400 with a stable code."""
        task_id, module_id = await _published_task(client)

        response = await client.post(f"/api/tasks/{task_id}/modules/{module_id}/approve", headers=as_user("lead1"))

        assert response.status_code == 400
        assert response.json()["code"] == "ERR_INVALID_STATE_TRANSITION"
        assert "pending" in response.json()["message"]

    async def test_short_note_is_400(self, client):
        """Test validation failures map to 400."""
        task_id, module_id = await _published_task(client)
        base = f"/api/tasks/{task_id}/modules/{module_id}"
        await client.post(f"{base}/start", headers=as_user("alice"))

        response = await client.post(f"{base}/submit", json={"note": "ok"}, headers=as_user("alice"))

        assert response.status_code == 400
        assert response.json()["code"] == "ERR_VALIDATION_FAILED"

    async def test_non_assignee_start_is_403(self, client):
        """Test a contributor cannot start someone else's module."""
        task_id, module_id = await _published_task(client)

        response = await client.post(f"/api/tasks/{task_id}/modules/{module_id}/start", headers=as_user("bob"))

        assert response.status_code == 403

    async def test_missing_task_is_404(self, client):
        """Test unknown task ids map to 404."""
        response = await client.get("/api/tasks/nope", headers=as_user("lead1"))

        assert response.status_code == 404
        assert response.json()["code"] == "ERR_NOT_FOUND"

    async def test_contributor_cannot_see_unassigned_task(self, client):
        """Test contributors get 404 for tasks without their modules."""
        task_id, _ = await _published_task(client)

        assert (await client.get(f"/api/tasks/{task_id}", headers=as_user("alice"))).status_code == 200
        assert (await client.get(f"/api/tasks/{task_id}", headers=as_user("bob"))).status_code == 404

    async def test_list_tasks_for_contributor(self, client):
        """Test the task list is filtered for contributors."""
        task_id, _ = await _published_task(client)

        alice_tasks = (await client.get("/api/tasks", headers=as_user("alice"))).json()
        bob_tasks = (await client.get("/api/tasks", headers=as_user("bob"))).json()

        assert [task["id"] for task in alice_tasks] == [task_id]
        assert bob_tasks == []


@pytest.mark.unit
class TestScoringAndUserRoutes:
    """Tests for ratings, leaderboard, onboarding and termination routes."""

    async def test_rating_and_leaderboard(self, client):
        """Test a manager rating shows up on the leaderboard."""
        response = await client.post(
            "/api/ratings",
            json={"rated_user_id": "alice", "sub_scores": [5, 4]},
            headers=as_user("lead1"),
        )
        assert response.status_code == 200

        leaderboard = (await client.get("/api/leaderboard", headers=as_user("bob"))).json()

        assert leaderboard[0]["user_id"] == "alice"
        assert leaderboard[0]["rating_score"] == 4.5

    async def test_contributor_cannot_rate(self, client):
        """Test ratings are manager-only."""
        response = await client.post(
            "/api/ratings",
            json={"rated_user_id": "bob", "sub_scores": [5]},
            headers=as_user("alice"),
        )

        assert response.status_code == 403

    async def test_onboard_and_terminate(self, client):
        """Test an administrator onboards and then terminates a member."""
        response = await client.post(
            "/api/users",
            json={"name": "Dana", "email": "dana@example.com"},
            headers=as_user("admin1"),
        )
        assert response.status_code == 201
        user_id = response.json()["id"]

        response = await client.post(f"/api/users/{user_id}/terminate", headers=as_user("admin1"))

        assert response.status_code == 200
        assert response.json()["target_id"] == user_id

    async def test_terminate_requires_admin(self, client):
        """Test a lead cannot terminate anyone."""
        response = await client.post("/api/users/alice/terminate", headers=as_user("lead1"))

        assert response.status_code == 403

    async def test_skill_claim_and_validation(self, client):
        """Test a contributor claims a skill and a lead validates it."""
        response = await client.post(
            "/api/skills",
            json={"skill_name": "Go", "proficiency": 3},
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        skill_id = response.json()["id"]

        response = await client.post(f"/api/skills/{skill_id}/validate", headers=as_user("lead1"))

        assert response.json()["validated"] is True
        skills = (await client.get("/api/skills", params={"user_id": "alice"}, headers=as_user("bob"))).json()
        assert [skill["skill_name"] for skill in skills] == ["Go"]
