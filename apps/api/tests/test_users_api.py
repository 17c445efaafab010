"""
Users API tests: sign-up, stats and onboarding profile.
"""
import uuid

from models import Habit, User


class TestCreateUser:
    def test_create(self, client, db_session):
        response = client.post("/v1/users", json={"name": "  Ada  ", "email": "Ada@Example.com "})

        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "Ada"
        assert body["email"] == "ada@example.com"
        assert body["xp"] == 0
        assert body["already_existed"] is False
        assert db_session.query(User).count() == 1

    def test_existing_email_returns_existing_user(self, client, test_user):
        response = client.post("/v1/users", json={"name": "Someone Else", "email": "TEST.USER@example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(test_user.id)
        assert body["name"] == "Test User"
        assert body["already_existed"] is True

    def test_missing_fields(self, client):
        response = client.post("/v1/users", json={"name": "", "email": "a@b.co"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_invalid_email(self, client):
        response = client.post("/v1/users", json={"name": "Ada", "email": "not-an-email"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR_EMAIL"


class TestGetUser:
    def test_stats_are_derived_from_xp(self, client, db_session, test_user):
        test_user.xp = 125
        db_session.add_all([
            Habit(user_id=test_user.id, name="Run", proof_instructions="Screenshot", total_completions=4),
            Habit(user_id=test_user.id, name="Read", proof_instructions="Photo", total_completions=2),
        ])
        db_session.commit()

        response = client.get(f"/v1/users/{test_user.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["xp"] == 125
        assert body["level"] == 2
        assert body["xp_progress_percent"] == 50
        assert body["xp_for_next_level"] == 200
        assert body["habit_count"] == 2
        assert body["total_completions"] == 6

    def test_new_user_has_zeroed_stats(self, client, test_user):
        body = client.get(f"/v1/users/{test_user.id}").json()
        assert body["level"] == 1
        assert body["habit_count"] == 0
        assert body["total_completions"] == 0

    def test_unknown_user(self, client):
        response = client.get(f"/v1/users/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"


class TestProfile:
    def test_save_profile_completes_onboarding(self, client, test_user):
        answers = {"goal": "consistency", "habits_per_day": 2}
        response = client.put(f"/v1/users/{test_user.id}/profile", json={"profile": answers})

        assert response.status_code == 200
        body = response.json()
        assert body["profile"] == answers
        assert body["onboarding_complete"] is True

    def test_unknown_user(self, client):
        response = client.put(f"/v1/users/{uuid.uuid4()}/profile", json={"profile": {}})
        assert response.status_code == 404
