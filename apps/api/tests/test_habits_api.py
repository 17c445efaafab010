"""
Habits API tests: CRUD, history and the multipart verify endpoint.

The verifier dependency is overridden in conftest with a canned oracle;
tests that need a different verdict override the `oracle` fixture.
"""
import os
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from models import Completion, Habit, User, VERDICT_REJECTED, VERDICT_VERIFIED
from services import proof_normalizer
from services.day_boundary import resolve_day_boundary
from fixtures.evidence_fixtures import image_bytes, make_solid_image, oversized_gif_bytes, verdict_reply


def _uploads(uploads_path: Path) -> set:
    return set(os.listdir(uploads_path))


class TestHabitCrud:
    def test_create_habit(self, client, test_user):
        response = client.post(f"/v1/users/{test_user.id}/habits", json={
            "name": "Meditate",
            "description": "10 minutes",
            "proof_instructions": "Screenshot of the timer",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "Meditate"
        assert body["streak"] == 0
        assert body["longest_streak"] == 0
        assert body["total_completions"] == 0
        assert body["frequency_type"] == "daily"
        assert body["completed_today"] is False

    def test_create_requires_name_and_proof_instructions(self, client, test_user):
        response = client.post(f"/v1/users/{test_user.id}/habits", json={"name": "Meditate", "proof_instructions": "  "})
        assert response.status_code == 400

    def test_create_truncates_long_fields(self, client, test_user):
        response = client.post(f"/v1/users/{test_user.id}/habits", json={
            "name": "x" * 500,
            "proof_instructions": "photo",
        })
        assert response.status_code == 201
        assert len(response.json()["name"]) == 100

    def test_create_for_unknown_user(self, client):
        response = client.post(f"/v1/users/{uuid.uuid4()}/habits", json={"name": "a", "proof_instructions": "b"})
        assert response.status_code == 404

    def test_list_flags_verified_today_only(self, client, db_session, test_user, test_habit):
        rejected_only = Habit(user_id=test_user.id, name="Floss", proof_instructions="Photo")
        db_session.add(rejected_only)
        db_session.commit()

        today = resolve_day_boundary(0).today
        db_session.add_all([
            Completion(habit_id=test_habit.id, user_id=test_user.id, completed_date=today,
                       ai_verdict=VERDICT_VERIFIED, xp_earned=50),
            Completion(habit_id=rejected_only.id, user_id=test_user.id, completed_date=today,
                       ai_verdict=VERDICT_REJECTED),
        ])
        db_session.commit()

        response = client.get(f"/v1/users/{test_user.id}/habits", params={"tz_offset": 0})

        assert response.status_code == 200
        flags = {h["name"]: h["completed_today"] for h in response.json()}
        assert flags == {"Morning run": True, "Floss": False}

    def test_list_rejects_absurd_offset(self, client, test_user):
        response = client.get(f"/v1/users/{test_user.id}/habits", params={"tz_offset": 5000})
        assert response.status_code == 422

    def test_delete_habit_removes_history(self, client, db_session, test_user, test_habit):
        db_session.add(Completion(habit_id=test_habit.id, user_id=test_user.id,
                                  completed_date="2026-01-01", ai_verdict=VERDICT_REJECTED))
        db_session.commit()

        response = client.delete(f"/v1/habits/{test_habit.id}", params={"user_id": str(test_user.id)})

        assert response.status_code == 200
        assert db_session.query(Habit).count() == 0
        assert db_session.query(Completion).count() == 0

    def test_delete_someone_elses_habit(self, client, db_session, test_habit):
        stranger = User(name="Stranger", email="stranger@example.com")
        db_session.add(stranger)
        db_session.commit()

        response = client.delete(f"/v1/habits/{test_habit.id}", params={"user_id": str(stranger.id)})

        assert response.status_code == 403
        assert db_session.query(Habit).count() == 1

    def test_delete_unknown_habit(self, client):
        assert client.delete(f"/v1/habits/{uuid.uuid4()}").status_code == 404


class TestHistory:
    def test_history_is_newest_first(self, client, db_session, test_user, test_habit):
        base = datetime(2026, 2, 1, 7, 0, tzinfo=timezone.utc)
        for n, verdict in enumerate((VERDICT_REJECTED, VERDICT_VERIFIED)):
            db_session.add(Completion(habit_id=test_habit.id, user_id=test_user.id,
                                      created_at=base + timedelta(seconds=n),
                                      completed_date="2026-02-01", ai_verdict=verdict))
        db_session.commit()

        response = client.get(f"/v1/habits/{test_habit.id}/history")

        assert response.status_code == 200
        assert [c["ai_verdict"] for c in response.json()] == [VERDICT_VERIFIED, VERDICT_REJECTED]

    def test_retry_within_the_same_second_is_listed_first(self, client, test_habit, oracle):
        """Reject then verify in quick succession: the verified retry is the newest entry."""
        oracle.replies = [
            verdict_reply(False, "Can't see the run.", "high"),
            verdict_reply(True, "There it is!", "high"),
        ]
        client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "try 1"})
        client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "try 2"})

        history = client.get(f"/v1/habits/{test_habit.id}/history").json()

        assert [(c["proof_note"], c["ai_verdict"]) for c in history] == [
            ("try 2", VERDICT_VERIFIED),
            ("try 1", VERDICT_REJECTED),
        ]

    def test_history_keeps_the_newest_30(self, client, db_session, test_user, test_habit):
        base = datetime(2026, 1, 1, 7, 0, tzinfo=timezone.utc)
        db_session.add_all([
            Completion(habit_id=test_habit.id, user_id=test_user.id,
                       created_at=base + timedelta(days=n),
                       completed_date=(base + timedelta(days=n)).date().isoformat(),
                       ai_verdict=VERDICT_REJECTED)
            for n in range(35)
        ])
        db_session.commit()

        history = client.get(f"/v1/habits/{test_habit.id}/history").json()

        expected = [(base + timedelta(days=n)).date().isoformat() for n in range(34, 4, -1)]
        assert [c["completed_date"] for c in history] == expected


class TestVerifyEndpoint:
    def test_verify_with_image(self, client, test_habit, oracle, uploads_path):
        before = _uploads(uploads_path)
        png = image_bytes(make_solid_image((200, 150)))

        response = client.post(
            f"/v1/habits/{test_habit.id}/verify",
            files={"proof_image": ("run.png", png, "image/png")},
            data={"proof_note": "5k done", "tz_offset": "0"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body == {
            "verified": True,
            "explanation": "Looks great!",
            "xp_earned": 50,
            "bonus_xp": 0,
            "new_streak": 1,
            "user_xp": 50,
            "user_level": 2,
            "xp_progress_percent": 0,
            "completed_date": resolve_day_boundary(0).today,
        }
        assert oracle.calls[0].has_image
        # The stored upload is referenced by the completion, so it stays
        assert len(_uploads(uploads_path) - before) == 1

    def test_verify_note_only(self, client, test_habit):
        response = client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "Ran before work"})
        assert response.status_code == 200
        assert response.json()["verified"] is True

    def test_second_verification_same_day_conflicts(self, client, test_habit, oracle):
        client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "first"})

        response = client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "second"})

        assert response.status_code == 409
        assert response.json() == {
            "detail": "Already verified today! Come back tomorrow.",
            "error_code": "ALREADY_VERIFIED_TODAY",
        }
        assert len(oracle.calls) == 1

    def test_rejection_is_a_200_with_zero_xp(self, client, db_session, test_habit, test_user, oracle):
        oracle.replies = [verdict_reply(False, "That's a sandwich.", "high")]

        response = client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "trust me"})

        assert response.status_code == 200
        body = response.json()
        assert body["verified"] is False
        assert body["explanation"] == "That's a sandwich."
        assert body["xp_earned"] == 0
        assert body["user_xp"] == 0
        assert db_session.query(Completion).one().ai_verdict == VERDICT_REJECTED

    def test_no_evidence(self, client, test_habit, oracle):
        response = client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "   "})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR_PROOF"
        assert oracle.calls == []

    def test_non_image_upload(self, client, test_habit, uploads_path):
        before = _uploads(uploads_path)
        response = client.post(
            f"/v1/habits/{test_habit.id}/verify",
            files={"proof_image": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR_PROOF_IMAGE"
        assert _uploads(uploads_path) == before

    def test_oversized_gif_alone(self, client, db_session, test_habit, test_user, oracle, uploads_path, monkeypatch):
        monkeypatch.setattr(proof_normalizer, "MAX_IMAGE_BYTES", 4096)
        before = _uploads(uploads_path)

        response = client.post(
            f"/v1/habits/{test_habit.id}/verify",
            files={"proof_image": ("dance.gif", oversized_gif_bytes(10_000), "image/gif")},
        )

        assert response.status_code == 413
        assert response.json()["error_code"] == "EVIDENCE_TOO_LARGE"
        assert oracle.calls == []
        assert db_session.query(Completion).count() == 0
        db_session.refresh(test_user)
        assert test_user.xp == 0
        assert _uploads(uploads_path) == before

    def test_unknown_habit(self, client):
        response = client.post(f"/v1/habits/{uuid.uuid4()}/verify", data={"proof_note": "x"})
        assert response.status_code == 404

    def test_offset_out_of_range(self, client, test_habit):
        response = client.post(f"/v1/habits/{test_habit.id}/verify", data={"proof_note": "x", "tz_offset": "-2000"})
        assert response.status_code == 422


class TestServiceEndpoints:
    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["verifier_configured"] is False


class TestRunner:
    def test_run_uses_configured_address(self, monkeypatch):
        import main
        from core.config import settings

        calls = []
        monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr(settings, "API_HOST", "127.0.0.1")
        monkeypatch.setattr(settings, "API_PORT", 8123)

        main.run()

        app_path, kwargs = calls[0]
        assert app_path == "main:app"
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 8123

    def test_run_arguments_override_settings(self, monkeypatch):
        import main

        calls = []
        monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append(kwargs))

        main.run(host="0.0.0.0", port=9000)

        assert (calls[0]["host"], calls[0]["port"]) == ("0.0.0.0", 9000)
