import json

from django.contrib.auth import get_user_model
from django.core import mail
import pytest

from heirloom_app.questions.models import QuestionSet, Recipient

User = get_user_model()
TEST_PASSWORD = "test-pass"


def auth_hdr(client, username: str, password: str) -> dict:
    resp = client.post(
        "/api/token",
        data=json.dumps({"username": username, "password": password}),
        content_type="application/json",
    )
    assert resp.status_code == 200, resp.content
    return {"HTTP_AUTHORIZATION": f"Bearer {resp.json()['access']}"}


def post_json(client, url, payload, **hdrs):
    return client.post(url, data=json.dumps(payload), content_type="application/json", **hdrs)


@pytest.fixture
def hdrs(client, asker):
    return auth_hdr(client, "asker", TEST_PASSWORD)


@pytest.fixture
def other_hdrs(client, db):
    User.objects.create_user(username="other", password=TEST_PASSWORD)
    return auth_hdr(client, "other", TEST_PASSWORD)


@pytest.mark.django_db
def test_anonymous_blocked(client, question_set):
    assert client.get("/api/question-sets/").status_code in (401, 403)
    assert client.get("/api/question-sets/unified/").status_code in (401, 403)
    resp = post_json(
        client,
        f"/api/question-sets/{question_set.id}/send/",
        {"recipients": [{"email": "a@example.com"}]},
    )
    assert resp.status_code in (401, 403)


@pytest.mark.django_db
def test_healthcheck_is_public(client):
    resp = client.get("/api/healthcheck")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.django_db
class TestQuestionSetCrud:
    def test_create_and_list(self, client, hdrs):
        resp = post_json(
            client,
            "/api/question-sets/",
            {"name": "Childhood", "questions": [{"text": "Where?"}, {"text": "When?"}]},
            **hdrs,
        )
        assert resp.status_code == 201, resp.content
        body = resp.json()
        assert [q["text"] for q in body["questions"]] == ["Where?", "When?"]

        listing = client.get("/api/question-sets/", **hdrs).json()
        assert [s["name"] for s in listing] == ["Childhood"]

    def test_create_validation_errors(self, client, hdrs):
        resp = post_json(
            client,
            "/api/question-sets/",
            {"name": "Too many", "questions": [{"text": "Q?"}] * 6},
            **hdrs,
        )
        assert resp.status_code == 400
        assert "questions" in resp.json()["errors"]

    def test_edit_questions(self, client, hdrs, question_set):
        first, second = question_set.ordered_questions()
        resp = client.put(
            f"/api/question-sets/{question_set.id}/",
            data=json.dumps(
                {
                    "name": "Holidays",
                    "questions": [
                        {"id": second.id, "text": second.text},
                        {"id": first.id, "text": first.text},
                    ],
                }
            ),
            content_type="application/json",
            **hdrs,
        )
        assert resp.status_code == 200, resp.content
        assert resp.json()["name"] == "Holidays"
        assert [q["id"] for q in resp.json()["questions"]] == [second.id, first.id]

    def test_rename_only(self, client, hdrs, question_set):
        resp = client.patch(
            f"/api/question-sets/{question_set.id}/",
            data=json.dumps({"name": "Trips"}),
            content_type="application/json",
            **hdrs,
        )
        assert resp.status_code == 200, resp.content
        assert len(resp.json()["questions"]) == 2

    def test_archive_hides_from_list(self, client, hdrs, question_set):
        resp = client.post(f"/api/question-sets/{question_set.id}/archive/", **hdrs)
        assert resp.status_code == 200
        assert resp.json()["archived"] is True

        assert client.get("/api/question-sets/", **hdrs).json() == []
        archived = client.get("/api/question-sets/?include_archived=1", **hdrs).json()
        assert len(archived) == 1

        resp = client.post(f"/api/question-sets/{question_set.id}/unarchive/", **hdrs)
        assert resp.json()["archived"] is False

    def test_delete_not_allowed(self, client, hdrs, question_set):
        resp = client.delete(f"/api/question-sets/{question_set.id}/", **hdrs)
        assert resp.status_code == 405
        assert QuestionSet.objects.filter(pk=question_set.pk).exists()

    def test_other_users_are_forbidden(self, client, other_hdrs, question_set):
        assert client.get(f"/api/question-sets/{question_set.id}/", **other_hdrs).status_code == 403
        resp = post_json(
            client,
            f"/api/question-sets/{question_set.id}/send/",
            {"recipients": [{"email": "a@example.com"}]},
            **other_hdrs,
        )
        assert resp.status_code == 403
        assert client.get("/api/question-sets/", **other_hdrs).json() == []


@pytest.mark.django_db
class TestSend:
    def test_send_creates_then_reuses(self, client, hdrs, question_set):
        url = f"/api/question-sets/{question_set.id}/send/"
        payload = {
            "recipients": [{"email": "grandma@example.com", "alias": "Granny"}],
            "message": "Over to you!",
        }

        first = post_json(client, url, payload, **hdrs)
        assert first.status_code == 201, first.content
        body = first.json()
        assert body["created_count"] == 1
        assert body["recipients"][0]["name"] == "Granny"
        assert len(mail.outbox) == 1

        second = post_json(client, url, payload, **hdrs)
        assert second.status_code == 200
        assert second.json()["reused_count"] == 1
        assert second.json()["recipients"][0]["token"] == body["recipients"][0]["token"]
        assert len(mail.outbox) == 1

    def test_send_without_notification(self, client, hdrs, question_set):
        resp = post_json(
            client,
            f"/api/question-sets/{question_set.id}/send/",
            {"recipients": [{"email": "a@example.com"}], "notify": False},
            **hdrs,
        )
        assert resp.status_code == 201
        assert mail.outbox == []

    def test_invalid_rows_are_reported(self, client, hdrs, question_set):
        resp = post_json(
            client,
            f"/api/question-sets/{question_set.id}/send/",
            {"recipients": [{"email": "a@example.com"}, {"alias": "Nobody"}]},
            **hdrs,
        )
        assert resp.status_code == 400
        assert "recipients[1]" in resp.json()["errors"]
        assert Recipient.objects.count() == 0

    def test_archived_set_cannot_be_sent(self, client, hdrs, question_set):
        client.post(f"/api/question-sets/{question_set.id}/archive/", **hdrs)
        resp = post_json(
            client,
            f"/api/question-sets/{question_set.id}/send/",
            {"recipients": [{"email": "a@example.com"}]},
            **hdrs,
        )
        assert resp.status_code == 400


@pytest.mark.django_db
class TestReporting:
    def test_unified_and_detail(self, client, hdrs, question_set, asker):
        from heirloom_app.questions.services import CatalogService

        CatalogService.create_set(asker, "Draft", ["Later?"])
        post_json(
            client,
            f"/api/question-sets/{question_set.id}/send/",
            {"recipients": [{"email": "a@example.com"}], "notify": False},
            **hdrs,
        )

        unified = client.get("/api/question-sets/unified/", **hdrs).json()
        assert [s["name"] for s in unified] == ["Holiday Qs", "Draft"]
        assert unified[0]["total_recipients"] == 1
        assert unified[0]["answered_recipients"] == 0
        assert unified[1]["is_draft"] is True

        detail = client.get(f"/api/question-sets/{question_set.id}/requests/", **hdrs)
        assert detail.status_code == 200
        group = detail.json()["requests"][0]
        row = group["recipients"][0]
        assert row["email"] == "a@example.com"
        assert row["status"] == "none"
        assert row["reminders_remaining"] == 2

    def test_detail_forbidden_for_others(self, client, other_hdrs, question_set):
        resp = client.get(f"/api/question-sets/{question_set.id}/requests/", **other_hdrs)
        assert resp.status_code == 403


@pytest.mark.django_db
class TestRecipientActions:
    @pytest.fixture
    def recipient(self, client, hdrs, question_set):
        post_json(
            client,
            f"/api/question-sets/{question_set.id}/send/",
            {"recipients": [{"email": "grandma@example.com"}], "notify": False},
            **hdrs,
        )
        return Recipient.objects.get()

    def test_manual_reminder(self, client, hdrs, recipient):
        resp = client.post(f"/api/recipients/{recipient.id}/remind/", **hdrs)
        assert resp.status_code == 200, resp.content
        assert resp.json()["reminders_sent"] == 1
        assert resp.json()["reminders_remaining"] == 1
        assert len(mail.outbox) == 1

        again = client.post(f"/api/recipients/{recipient.id}/remind/", **hdrs)
        assert again.status_code == 409

    def test_manual_reminder_rate_limited(self, client, hdrs, recipient, settings):
        settings.QUESTION_MANUAL_REMINDERS_PER_HOUR = 0
        resp = client.post(f"/api/recipients/{recipient.id}/remind/", **hdrs)
        assert resp.status_code == 429

    def test_deactivate(self, client, hdrs, recipient):
        resp = client.post(f"/api/recipients/{recipient.id}/deactivate/", **hdrs)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        assert client.get(f"/api/ask/{recipient.token}/").status_code == 404

    def test_other_users_cannot_manage(self, client, recipient, other_hdrs):
        assert client.post(f"/api/recipients/{recipient.id}/remind/", **other_hdrs).status_code == 403
        resp = client.post(f"/api/recipients/{recipient.id}/deactivate/", **other_hdrs)
        assert resp.status_code == 403
        recipient.refresh_from_db()
        assert recipient.is_active
