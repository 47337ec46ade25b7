"""
CatalogService - reusable question sets authored by askers.

A set holds between one and five questions. It can be renamed and its
questions edited or reordered until it is archived. Archiving only hides the
set from new sends; tokens already issued for it keep working.
"""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from ..models import MAX_QUESTIONS_PER_SET, Question, QuestionSet

logger = logging.getLogger(__name__)


def _clean_name(name) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError({"name": ["A name is required."]})
    if len(name) > QuestionSet._meta.get_field("name").max_length:
        raise ValidationError({"name": ["Name is too long."]})
    return name


def _clean_texts(texts) -> list[str]:
    cleaned = [(text or "").strip() for text in texts]
    errors = []
    if not cleaned:
        errors.append("Add at least one question.")
    if len(cleaned) > MAX_QUESTIONS_PER_SET:
        errors.append(f"A set can hold at most {MAX_QUESTIONS_PER_SET} questions.")
    max_length = Question._meta.get_field("text").max_length
    for index, text in enumerate(cleaned):
        if not text:
            errors.append(f"Question {index + 1} is blank.")
        elif len(text) > max_length:
            errors.append(f"Question {index + 1} is too long.")
    if errors:
        raise ValidationError({"questions": errors})
    return cleaned


def _ensure_editable(question_set: QuestionSet) -> None:
    if question_set.archived:
        raise ValidationError("Archived question sets cannot be edited.")


class CatalogService:
    """Create and maintain question sets."""

    @classmethod
    @transaction.atomic
    def create_set(cls, owner, name: str, questions: list[str]) -> QuestionSet:
        name = _clean_name(name)
        texts = _clean_texts(questions)

        question_set = QuestionSet.objects.create(owner=owner, name=name)
        Question.objects.bulk_create(
            Question(question_set=question_set, text=text, sort_order=index)
            for index, text in enumerate(texts)
        )
        logger.info(
            f"Question set {question_set.pk} created by user {owner.pk} "
            f"with {len(texts)} questions"
        )
        return question_set

    @classmethod
    def rename_set(cls, question_set: QuestionSet, name: str) -> QuestionSet:
        _ensure_editable(question_set)
        question_set.name = _clean_name(name)
        question_set.save(update_fields=["name", "updated_at"])
        return question_set

    @classmethod
    @transaction.atomic
    def update_questions(cls, question_set: QuestionSet, items: list[dict]):
        """Replace the set's questions with ``items``, in list order.

        Each item is ``{"text": ...}`` for a new question or
        ``{"id": ..., "text": ...}`` to keep and edit an existing one. Existing
        questions left out are deleted, unless someone has already answered
        them.
        """
        _ensure_editable(question_set)
        texts = _clean_texts([item.get("text") for item in items])

        existing = {q.pk: q for q in question_set.questions.select_for_update()}
        kept_ids = set()
        for item in items:
            question_id = item.get("id")
            if question_id is None:
                continue
            if question_id not in existing:
                raise ValidationError(
                    {"questions": [f"Question {question_id} is not in this set."]}
                )
            if question_id in kept_ids:
                raise ValidationError(
                    {"questions": [f"Question {question_id} is listed twice."]}
                )
            kept_ids.add(question_id)

        removed = [q for pk, q in existing.items() if pk not in kept_ids]
        answered = [q for q in removed if q.answers.exists()]
        if answered:
            raise ValidationError(
                {
                    "questions": [
                        f'"{q.text}" already has answers and cannot be removed.'
                        for q in answered
                    ]
                }
            )
        for question in removed:
            question.delete()

        for index, (item, text) in enumerate(zip(items, texts)):
            question_id = item.get("id")
            if question_id is None:
                Question.objects.create(
                    question_set=question_set, text=text, sort_order=index
                )
                continue
            question = existing[question_id]
            if question.text != text or question.sort_order != index:
                question.text = text
                question.sort_order = index
                question.save(update_fields=["text", "sort_order"])

        question_set.save(update_fields=["updated_at"])
        return list(question_set.ordered_questions())

    @classmethod
    def archive_set(cls, question_set: QuestionSet) -> QuestionSet:
        if not question_set.archived:
            question_set.archived = True
            question_set.save(update_fields=["archived", "updated_at"])
            logger.info(f"Question set {question_set.pk} archived")
        return question_set

    @classmethod
    def unarchive_set(cls, question_set: QuestionSet) -> QuestionSet:
        if question_set.archived:
            question_set.archived = False
            question_set.save(update_fields=["archived", "updated_at"])
        return question_set
