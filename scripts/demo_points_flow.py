"""Demo: a student earns points and the worker reconciles the total.

Run with (no DATABASE_URL / REDIS_URL, so everything is in memory):
    python scripts/demo_points_flow.py
"""

from __future__ import annotations

import asyncio
import uuid

from fastapi.testclient import TestClient

from app import worker
from app.main import app
from app.services import token_service
from app.services.task_queue import POINTS_RECOMPUTE_QUEUE


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def main() -> None:
    client = TestClient(app)

    admin = token_service.create_access_token(
        sub=str(uuid.uuid4()), roles=["Admin"], name="Demo Admin"
    )
    student_id = str(uuid.uuid4())
    student = token_service.create_access_token(
        sub=student_id, roles=["Student"], name="Demo Student"
    )

    # ── Seed content ────────────────────────────────────────────────
    r = client.post(
        "/v1/admin/videos",
        json={"class_number": 1, "title": "Intro to Python"},
        headers=_auth(admin),
    )
    video_id = r.json()["video_id"]
    r = client.post(
        "/v1/admin/challenges",
        json={"class_number": 1, "challenge_number": 1, "topic": "FizzBuzz"},
        headers=_auth(admin),
    )
    challenge_id = r.json()["id"]
    print(f"1. Seeded video={video_id} challenge={challenge_id}")

    # ── Student activity ────────────────────────────────────────────
    r = client.post("/v1/me/profile", headers=_auth(student))
    print(f"2. POST /v1/me/profile     → {r.status_code}  points={r.json()['points']}")

    r = client.post(
        f"/v1/videos/{video_id}/progress",
        json={"watch_percentage": 55},
        headers=_auth(student),
    )
    print(f"3. Watch 55%               → {r.status_code}  delta={r.json()['points_delta']}")

    r = client.post(f"/v1/videos/{video_id}/complete", headers=_auth(student))
    print(f"4. Complete video          → {r.status_code}  {r.json()}")

    r = client.post(
        f"/v1/challenges/{challenge_id}/responses",
        json={"status": "Tried"},
        headers=_auth(student),
    )
    print(f"5. Challenge 'Tried'       → {r.status_code}")

    # ── Reconcile ───────────────────────────────────────────────────
    r = client.get("/v1/me/profile", headers=_auth(student))
    print(f"6. Persisted before worker → points={r.json()['points']}")

    processed = asyncio.run(worker.drain(POINTS_RECOMPUTE_QUEUE))
    r = client.get("/v1/me/profile", headers=_auth(student))
    print(f"7. Worker drained {processed} tasks → points={r.json()['points']}")

    r = client.get("/v1/me/points/history", headers=_auth(student))
    for entry in r.json():
        print(f"   {entry['category']:<10} {entry['points']:>4}  {entry['title']}")

    r = client.get("/v1/me/stats", headers=_auth(student))
    stats = r.json()
    print(
        f"8. Stats: points={stats['points']} level={stats['level']} "
        f"completion={stats['completion_percentage']}% rank={stats['rank']}"
    )

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
