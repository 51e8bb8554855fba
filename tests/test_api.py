import httpx
import pytest

from videolearn.core.security import create_access_token
from videolearn.main import app
from videolearn.services.engine import LearningEngine
from tests.conftest import OTHER_STUDENT, STUDENT, TEACHER

pytestmark = pytest.mark.anyio


def auth(user_id, role="STUDENT"):
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
async def client(session_factory, settings, seeded):
    app.state.engine = LearningEngine(session_factory, settings=settings)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.engine.close()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_requests_need_a_valid_token(client, seeded):
    response = await client.post(f"/api/videos/{seeded.video_id}/sessions")
    assert response.status_code == 401
    response = await client.post(
        f"/api/videos/{seeded.video_id}/sessions", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


async def test_watch_flow_and_retry_limit_maps_to_429(client, seeded):
    headers = auth(STUDENT)
    response = await client.post(f"/api/videos/{seeded.video_id}/sessions", headers=headers)
    assert response.status_code == 200
    session_id = response.json()["id"]

    response = await client.patch(
        f"/api/sessions/{session_id}/progress", json={"position": 12.0, "watch_time_delta": 12.0}, headers=headers
    )
    assert response.json()["current_position"] == 12.0

    response = await client.post(
        f"/api/sessions/{session_id}/milestones", json={"milestone_id": "m1", "timestamp": 10.0}, headers=headers
    )
    assert response.json()["completed_milestones"] == ["m1"]

    answer = {"question_id": "q1", "milestone_id": "m1", "answer": 0}
    for expected_number in (1, 2):
        response = await client.post(f"/api/sessions/{session_id}/answers", json=answer, headers=headers)
        assert response.status_code == 200
        assert response.json()["attempt_number"] == expected_number

    response = await client.post(f"/api/sessions/{session_id}/answers", json=answer, headers=headers)
    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "retry_limit_exceeded"
    assert body["attempts_used"] == 2
    assert body["attempts_allowed"] == 2

    response = await client.get(f"/api/sessions/{session_id}/state", headers=headers)
    assert response.status_code == 200
    assert response.json()["total_answers"] == 1

    response = await client.get(f"/api/lessons/{seeded.lesson_id}/progress", headers=headers)
    assert response.status_code == 200
    assert response.json()["completed_milestones"] == 1

    response = await client.post(
        f"/api/sessions/{session_id}/complete", json={"final_position": 100.0, "total_watch_time": 90.0}, headers=headers
    )
    assert response.json()["status"] == "COMPLETED"


async def test_error_taxonomy_status_codes(client, seeded):
    response = await client.post("/api/videos/missing/sessions", headers=auth(STUDENT))
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"

    session_id = (await client.post(f"/api/videos/{seeded.video_id}/sessions", headers=auth(STUDENT))).json()["id"]
    response = await client.get(f"/api/sessions/{session_id}/state", headers=auth("student-2"))
    assert response.status_code == 403

    response = await client.post(
        f"/api/sessions/{session_id}/answers",
        json={"question_id": "q1", "milestone_id": "m1", "answer": 9},
        headers=auth(STUDENT),
    )
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


async def test_authoring_routes(client, seeded):
    headers = auth(TEACHER, "TEACHER")
    response = await client.post(
        f"/api/videos/{seeded.video_id}/milestones", json={"timestamp": 10.0, "title": "Dup"}, headers=headers
    )
    assert response.status_code == 409
    assert response.json()["timestamp"] == 10.0

    response = await client.post(
        "/api/milestones/m2/questions",
        json={"type": "SHORT_ANSWER", "text": "Name the organelle.", "question_data": {"correctAnswers": ["nucleus"]}},
        headers=headers,
    )
    assert response.status_code == 201
    question_id = response.json()["id"]

    response = await client.get(f"/api/videos/{seeded.video_id}/state", headers=headers)
    assert response.json()["questions_per_milestone"] == {"m1": 1, "m2": 2}

    response = await client.delete(f"/api/questions/{question_id}", headers=headers)
    assert response.status_code == 204

    response = await client.post(
        "/api/milestones/m2/questions", json={"type": "ESSAY", "text": "Discuss."}, headers=headers
    )
    assert response.status_code == 422


async def test_video_state_is_hidden_from_outsiders(client, seeded):
    response = await client.get(f"/api/videos/{seeded.video_id}/state", headers=auth("stranger"))
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_video_state_hides_answer_keys_from_students(client, seeded):
    response = await client.get(f"/api/videos/{seeded.video_id}/state", headers=auth(STUDENT))
    assert response.status_code == 200
    body = response.json()
    q1 = body["questions"]["m1"][0]
    assert q1["question_data"] == {"options": ["Wall", "Membrane", "Nucleus"]}
    assert q1["explanation"] is None
    assert body["questions"]["m2"][0]["question_data"] == {}
    assert body["total_questions"] == 2

    response = await client.get(f"/api/videos/{seeded.video_id}/state", headers=auth(TEACHER, "TEACHER"))
    q1 = response.json()["questions"]["m1"][0]
    assert q1["question_data"]["correctAnswerIndex"] == 1
    assert q1["explanation"] == "The membrane encloses the cytoplasm."


async def test_list_sessions_filters_and_pages(client, seeded):
    headers = auth(STUDENT)
    first = (await client.post(f"/api/videos/{seeded.video_id}/sessions", headers=headers)).json()["id"]
    second = (await client.post(f"/api/videos/{seeded.other_video_id}/sessions", headers=headers)).json()["id"]
    await client.post(
        f"/api/sessions/{first}/complete", json={"final_position": 100.0, "total_watch_time": 95.0}, headers=headers
    )

    response = await client.get("/api/sessions", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [s["id"] for s in body["sessions"]] == [first, second]

    response = await client.get("/api/sessions", params={"page": 2, "limit": 1}, headers=headers)
    body = response.json()
    assert body["total"] == 2
    assert body["page"] == 2
    assert [s["id"] for s in body["sessions"]] == [second]

    response = await client.get("/api/sessions", params={"status": "ACTIVE"}, headers=headers)
    assert [s["id"] for s in response.json()["sessions"]] == [second]

    response = await client.get("/api/sessions", headers=auth(OTHER_STUDENT))
    assert response.json() == {"sessions": [], "total": 0, "page": 1, "limit": 20}

    response = await client.get("/api/sessions", params={"status": "FINISHED"}, headers=headers)
    assert response.status_code == 422
