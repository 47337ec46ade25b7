from django.core.exceptions import ValidationError
import pytest

from heirloom_app.questions.models import Question
from heirloom_app.questions.services import AnswerService, CatalogService, DispatchService


@pytest.mark.django_db
class TestCreateSet:
    def test_creates_ordered_questions(self, asker):
        qs = CatalogService.create_set(asker, "  Childhood ", ["First?", "Second?", "Third?"])

        assert qs.name == "Childhood"
        assert list(qs.ordered_questions().values_list("text", "sort_order")) == [
            ("First?", 0),
            ("Second?", 1),
            ("Third?", 2),
        ]

    @pytest.mark.parametrize(
        "questions",
        [[], ["One?", "  "], ["Q"] * 6, ["x" * 501]],
    )
    def test_rejects_bad_question_lists(self, asker, questions):
        with pytest.raises(ValidationError) as exc:
            CatalogService.create_set(asker, "Bad", questions)
        assert "questions" in exc.value.message_dict

    def test_requires_name(self, asker):
        with pytest.raises(ValidationError) as exc:
            CatalogService.create_set(asker, "   ", ["One?"])
        assert "name" in exc.value.message_dict


@pytest.mark.django_db
class TestEditSet:
    def test_rename(self, question_set):
        CatalogService.rename_set(question_set, "Summer Qs")
        question_set.refresh_from_db()
        assert question_set.name == "Summer Qs"

    def test_reorder_edit_and_add(self, question_set):
        first, second = question_set.ordered_questions()

        CatalogService.update_questions(
            question_set,
            [
                {"id": second.pk, "text": "Who came along?"},
                {"id": first.pk, "text": first.text},
                {"text": "What did you eat?"},
            ],
        )

        texts = list(question_set.ordered_questions().values_list("text", flat=True))
        assert texts == ["Who came along?", first.text, "What did you eat?"]

    def test_unanswered_question_can_be_removed(self, question_set):
        first, second = question_set.ordered_questions()
        CatalogService.update_questions(question_set, [{"id": first.pk, "text": first.text}])
        assert not Question.objects.filter(pk=second.pk).exists()

    def test_answered_question_cannot_be_removed(self, question_set, asker):
        first, second = question_set.ordered_questions()
        result = DispatchService.create_request(
            question_set, asker, [{"email": "grandma@example.com"}]
        )
        AnswerService.submit_answer(result.recipients[0].token, second.pk, text="Bob")

        with pytest.raises(ValidationError):
            CatalogService.update_questions(
                question_set, [{"id": first.pk, "text": first.text}]
            )
        assert Question.objects.filter(pk=second.pk).exists()

    def test_question_from_another_set_is_rejected(self, question_set, asker):
        other = CatalogService.create_set(asker, "Other", ["Elsewhere?"])
        foreign = other.questions.get()
        with pytest.raises(ValidationError):
            CatalogService.update_questions(
                question_set, [{"id": foreign.pk, "text": "Moved?"}]
            )

    def test_archived_sets_reject_edits(self, question_set):
        CatalogService.archive_set(question_set)
        with pytest.raises(ValidationError):
            CatalogService.rename_set(question_set, "New")

    def test_unarchive(self, question_set):
        CatalogService.archive_set(question_set)
        CatalogService.unarchive_set(question_set)
        question_set.refresh_from_db()
        assert not question_set.archived
