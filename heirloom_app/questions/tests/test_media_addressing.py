"""Tests for media storage addressing."""

import os
from unittest.mock import patch
import uuid

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
import pytest

from heirloom_app.core.models import UserProfile
from heirloom_app.questions.errors import InvalidToken
from heirloom_app.questions.models import Answer, MediaAsset
from heirloom_app.questions.services import (
    AnswerService,
    ClaimService,
    DispatchService,
    MediaService,
    address_key_for,
)

User = get_user_model()


def photo(name="beach.JPG", data=b"\xff\xd8\xff fake jpeg"):
    return SimpleUploadedFile(name, data, content_type="image/jpeg")


def video(name="party.mp4"):
    return SimpleUploadedFile(name, b"\x00\x00\x00 fake mp4", content_type="video/mp4")


@pytest.fixture
def recipient(question_set, asker):
    return DispatchService.create_request(
        question_set, asker, [{"email": "grandma@example.com"}]
    ).recipients[0].recipient


@pytest.fixture
def first_question(question_set):
    return question_set.ordered_questions().first()


class TestAddressKey:
    def test_format(self):
        storage_key = uuid.UUID("11111111-1111-4111-8111-111111111111")
        content_id = uuid.UUID("22222222-2222-4222-8222-222222222222")
        file_id = uuid.UUID("33333333-3333-4333-8333-333333333333")

        assert address_key_for(storage_key, content_id, file_id, ".JPG") == (
            "answers/11111111-1111-4111-8111-111111111111/"
            "22222222-2222-4222-8222-222222222222/"
            "33333333-3333-4333-8333-333333333333.jpg"
        )

    def test_extension_is_optional(self):
        assert address_key_for("s", "c", "f") == "answers/s/c/f"
        assert address_key_for("s", "c", "f", "png") == "answers/s/c/f.png"


@pytest.mark.django_db
class TestStoringUploads:
    def test_photo_is_ready_and_addressed_under_bound_identity(
        self, media_storage, recipient, first_question
    ):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, text="Look!", media=[photo()]
        )

        asset = answer.media.get()
        profile = UserProfile.objects.get(user=recipient.respondent)
        assert asset.owner_identity_id == recipient.respondent_id
        assert asset.owner_storage_key == profile.storage_key
        assert asset.address_key == address_key_for(
            profile.storage_key, answer.public_id, asset.file_id, ".jpg"
        )
        assert asset.kind == MediaAsset.Kind.PHOTO
        assert asset.status == MediaAsset.Status.READY
        assert asset.processed_at is not None
        assert (media_storage / asset.address_key).exists()

    def test_video_waits_for_processing(self, media_storage, recipient, first_question):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[video()]
        )
        asset = answer.media.get()
        assert asset.kind == MediaAsset.Kind.VIDEO
        assert asset.status == MediaAsset.Status.PROCESSING

        MediaService.mark_processed(asset)
        asset.refresh_from_db()
        assert asset.status == MediaAsset.Status.READY

    def test_media_only_answer_is_allowed(self, media_storage, recipient, first_question):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[photo()]
        )
        assert answer.text == ""
        # The answer already has media, so a text-less edit stays valid.
        AnswerService.submit_answer(recipient.token, first_question.pk, text="")

    def test_unsupported_type_is_rejected(self, media_storage, recipient, first_question):
        upload = SimpleUploadedFile("notes.pdf", b"%PDF", content_type="application/pdf")
        with pytest.raises(ValidationError) as exc:
            AnswerService.submit_answer(
                recipient.token, first_question.pk, text="See attached", media=[upload]
            )
        assert "media" in exc.value.message_dict
        assert not Answer.objects.exists()

    def test_too_many_files(self, settings, media_storage, recipient, first_question):
        settings.QUESTION_MEDIA_MAX_FILES = 1
        with pytest.raises(ValidationError):
            AnswerService.submit_answer(
                recipient.token, first_question.pk, media=[photo(), photo("b.jpg")]
            )

    def test_storage_failure_rolls_back_answer_and_files(
        self, media_storage, recipient, first_question
    ):
        real_create = MediaAsset.objects.create
        calls = {"n": 0}

        def fail_second(**kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OSError("disk full")
            return real_create(**kwargs)

        with patch.object(MediaAsset.objects, "create", side_effect=fail_second):
            with pytest.raises(OSError):
                AnswerService.submit_answer(
                    recipient.token,
                    first_question.pk,
                    text="Two pictures",
                    media=[photo("a.jpg"), photo("b.jpg", b"\xff\xd8\xff other jpeg")],
                )

        assert not Answer.objects.exists()
        assert not MediaAsset.objects.exists()
        leftovers = [
            name
            for _, _, files in os.walk(media_storage)
            for name in files
        ]
        assert leftovers == []


def stored_files(root):
    return [name for _, _, files in os.walk(root) for name in files]


@pytest.mark.django_db
class TestResubmittingUploads:
    def test_identical_resubmit_keeps_one_copy(
        self, media_storage, recipient, first_question
    ):
        AnswerService.submit_answer(
            recipient.token, first_question.pk, text="Look!", media=[photo()]
        )
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, text="Look!", media=[photo()]
        )

        assert answer.media.count() == 1
        assert len(stored_files(media_storage)) == 1

    def test_new_photo_is_added_next_to_existing(
        self, media_storage, recipient, first_question
    ):
        AnswerService.submit_answer(
            recipient.token, first_question.pk, text="Look!", media=[photo()]
        )
        answer = AnswerService.submit_answer(
            recipient.token,
            first_question.pk,
            media=[photo(), photo("pier.jpg", b"\xff\xd8\xff pier jpeg")],
        )

        assert sorted(answer.media.values_list("original_name", flat=True)) == [
            "beach.JPG",
            "pier.jpg",
        ]
        assert len(stored_files(media_storage)) == 2

    def test_same_file_twice_in_one_upload(self, media_storage, recipient, first_question):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[photo("a.jpg"), photo("b.jpg")]
        )
        assert answer.media.count() == 1
        assert len(stored_files(media_storage)) == 1

    def test_digest_is_recorded(self, media_storage, recipient, first_question):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[photo()]
        )
        assert answer.media.get().content_digest == MediaService.digest(photo())

    def test_adding_media_keeps_written_text(
        self, media_storage, recipient, first_question
    ):
        AnswerService.submit_answer(recipient.token, first_question.pk, text="Cornwall")

        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[photo()]
        )

        answer.refresh_from_db()
        assert answer.text == "Cornwall"
        assert answer.media.count() == 1

    def test_blank_text_clears_when_media_remains(
        self, media_storage, recipient, first_question
    ):
        AnswerService.submit_answer(
            recipient.token, first_question.pk, text="Cornwall", media=[photo()]
        )

        answer = AnswerService.submit_answer(recipient.token, first_question.pk, text="")

        answer.refresh_from_db()
        assert answer.text == ""


@pytest.mark.django_db
class TestResolvingUploads:
    def test_address_is_stable_across_claim(self, media_storage, recipient, first_question):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[photo()]
        )
        asset = answer.media.get()
        url_before = MediaService.resolve(asset)
        original_key = asset.address_key

        account = User.objects.create_user(username="grandma-account", email="g@example.org")
        ClaimService.claim(recipient.token, account)

        asset.refresh_from_db()
        assert asset.address_key == original_key
        assert asset.owner_identity_id == recipient.respondent_id
        assert MediaService.resolve(asset) == url_before
        assert url_before == f"/media/{original_key}"

    def test_uploads_after_claim_stay_under_bound_identity(
        self, media_storage, recipient, question_set
    ):
        account = User.objects.create_user(username="grandma-account")
        ClaimService.claim(recipient.token, account)

        second = question_set.ordered_questions().last()
        answer = AnswerService.submit_answer(recipient.token, second.pk, media=[photo()])

        asset = answer.media.get()
        assert asset.owner_identity_id == recipient.respondent_id
        assert asset.owner_storage_key == recipient.respondent.profile.storage_key

    def test_legacy_recipient_is_bound_on_first_upload(
        self, media_storage, recipient, first_question
    ):
        type(recipient).objects.filter(pk=recipient.pk).update(respondent=None)

        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[photo()]
        )

        recipient.refresh_from_db()
        assert recipient.respondent is not None
        assert answer.media.get().owner_identity_id == recipient.respondent_id


@pytest.mark.django_db
class TestMediaStatus:
    def test_status_lookup_is_scoped_to_token(
        self, media_storage, recipient, question_set, asker, first_question
    ):
        answer = AnswerService.submit_answer(
            recipient.token, first_question.pk, media=[video()]
        )
        asset = answer.media.get()

        assert AnswerService.get_media_status(recipient.token, asset.file_id) == asset

        other = DispatchService.create_request(
            question_set, asker, [{"email": "someone@example.com"}]
        ).recipients[0].recipient
        with pytest.raises(InvalidToken):
            AnswerService.get_media_status(other.token, asset.file_id)
        with pytest.raises(InvalidToken):
            AnswerService.get_media_status(recipient.token, "nope")
