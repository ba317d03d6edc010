"""/v1/me: profile provisioning, stats, history, reconcile, rank."""

from __future__ import annotations

import asyncio
import uuid

from fastapi.testclient import TestClient

from app.models.activity import VideoCompletion
from app.models.profile import UserProfile
from app.repos.registry import repos
from app.services import activity_service, token_service
from tests.conftest import auth, mint_token, seed_challenge, seed_profile, seed_video

# ---- 401 ----


def test_me_rejects_missing_token(client: TestClient) -> None:
    assert client.get("/v1/me/profile").status_code == 401


def test_me_rejects_garbage_token(client: TestClient) -> None:
    resp = client.get("/v1/me/profile", headers=auth("not-a-jwt"))
    assert resp.status_code == 401


def test_me_rejects_expired_token(client: TestClient) -> None:
    token = token_service.create_access_token(sub=str(uuid.uuid4()), ttl_minutes=-1)
    resp = client.get("/v1/me/profile", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_me_rejects_non_uuid_subject(client: TestClient) -> None:
    resp = client.get("/v1/me/profile", headers=auth(mint_token("tee")))
    assert resp.status_code == 401


# ---- profile ----


def test_provision_profile_is_idempotent(client: TestClient) -> None:
    token = mint_token(roles=["Student"], name="Jo", email="jo@example.com")

    first = client.post("/v1/me/profile", headers=auth(token))
    second = client.post("/v1/me/profile", headers=auth(token))

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json() == second.json()
    assert first.json()["name"] == "Jo"
    assert first.json()["role"] == "Student"
    assert first.json()["points"] == 0


def test_provision_picks_highest_role(client: TestClient) -> None:
    token = mint_token(roles=["Student", "Instructor"])
    resp = client.post("/v1/me/profile", headers=auth(token))
    assert resp.json()["role"] == "Instructor"


def test_get_profile_404_before_provisioning(client: TestClient) -> None:
    resp = client.get("/v1/me/profile", headers=auth(mint_token()))
    assert resp.status_code == 404


# ---- stats / history ----


def test_stats_reports_computed_points(
    client: TestClient, student: UserProfile, student_token: str
) -> None:
    video = seed_video()
    asyncio.run(activity_service.complete_video(repos, student.id, video.video_id))

    resp = client.get("/v1/me/stats", headers=auth(student_token))

    assert resp.status_code == 200
    body = resp.json()
    assert body["points"] == 100
    assert body["videos_watched"] == 1
    assert body["completion_percentage"] == 100
    assert body["rank"] == 1
    # Stats do not write; the persisted total waits for the worker.
    assert asyncio.run(repos.profiles.get(student.id)).points == 0


def test_stats_rejects_invalid_class_number(client: TestClient, student_token: str) -> None:
    resp = client.get("/v1/me/stats?class_number=0", headers=auth(student_token))
    assert resp.status_code == 422


def test_points_history_lists_ledger(
    client: TestClient, student: UserProfile, student_token: str
) -> None:
    video = seed_video(title="Basics")
    challenge = seed_challenge(topic="Loops")
    asyncio.run(
        repos.activity.upsert_video_completion(
            VideoCompletion(user_id=student.id, video_id=video.video_id, completed_at=100)
        )
    )
    asyncio.run(
        activity_service.submit_challenge_response(
            repos, student.id, challenge.id, "Completed"
        )
    )

    resp = client.get("/v1/me/points/history", headers=auth(student_token))

    assert resp.status_code == 200
    rows = resp.json()
    assert [r["category"] for r in rows] == ["Challenge", "Video"]
    assert rows[1] == {
        "id": f"video-{video.video_id}",
        "category": "Video",
        "title": "Basics",
        "points": 100,
        "occurred_at": 100,
        "status": None,
    }


def test_history_refreshes_after_activity_write(
    client: TestClient, student: UserProfile, student_token: str
) -> None:
    video = seed_video()
    assert client.get("/v1/me/points/history", headers=auth(student_token)).json() == []

    client.post(f"/v1/videos/{video.video_id}/complete", headers=auth(student_token))

    rows = client.get("/v1/me/points/history", headers=auth(student_token)).json()
    assert len(rows) == 1


# ---- reconcile ----


def test_reconcile_corrects_persisted_points(
    client: TestClient, student: UserProfile, student_token: str
) -> None:
    video = seed_video()
    asyncio.run(
        repos.activity.upsert_video_completion(
            VideoCompletion(user_id=student.id, video_id=video.video_id, completed_at=1)
        )
    )

    first = client.post("/v1/me/points/reconcile", headers=auth(student_token))
    second = client.post("/v1/me/points/reconcile", headers=auth(student_token))

    assert first.json() == {"outcome": "corrected", "computed": 100, "persisted": 0}
    assert second.json()["outcome"] == "unchanged"


def test_reconcile_404_without_profile(client: TestClient) -> None:
    resp = client.post("/v1/me/points/reconcile", headers=auth(mint_token()))
    assert resp.status_code == 404


# ---- rank / attendance ----


def test_rank(client: TestClient, student: UserProfile, student_token: str) -> None:
    seed_profile(name="Top", points=900)
    resp = client.get("/v1/me/rank", headers=auth(student_token))
    assert resp.json() == {"rank": 2, "total_students": 2, "points": 0}


def test_attendance_summary(client: TestClient, student: UserProfile, student_token: str) -> None:
    asyncio.run(
        activity_service.mark_attendance(
            repos, class_number=1, statuses={student.id: "Present"}
        )
    )
    resp = client.get("/v1/me/attendance", headers=auth(student_token))
    assert resp.json()["present"] == 1
    assert resp.json()["present_percentage"] == 100
