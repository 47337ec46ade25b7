"""
AnswerService - the token-scoped answering surface.

The token is the only credential. A holder can read every question of the
set that was sent to them, with whatever they already answered, and create
or edit answers until the edit window closes. The window runs from the first
submission (``answered_at``) and does not depend on who the respondent turns
out to be.

A submission is all-or-nothing: if storing any attachment fails, the answer
write is rolled back and files already written for it are removed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
import uuid

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from heirloom_app.core.identity import display_name, resolve_identity, user_display_name

from ..errors import EditWindowClosed, InvalidToken
from ..models import Answer, MediaAsset, Question, QuestionSet, Recipient
from .media_service import MediaService

logger = logging.getLogger(__name__)

Precision = Answer.DatePrecision


@dataclass
class QuestionView:
    question: Question
    answer: Answer | None
    editable: bool


@dataclass
class AnswerSessionView:
    recipient: Recipient
    question_set: QuestionSet
    asker_name: str
    respondent_name: str
    message: str
    questions: list[QuestionView] = field(default_factory=list)

    @property
    def answered_count(self) -> int:
        return sum(1 for q in self.questions if q.answer is not None)

    @property
    def is_complete(self) -> bool:
        return bool(self.questions) and self.answered_count == len(self.questions)


def parse_token(token) -> uuid.UUID:
    if isinstance(token, uuid.UUID):
        return token
    try:
        return uuid.UUID(str(token))
    except (TypeError, ValueError, AttributeError):
        raise InvalidToken("Link not found.")


def normalize_date(value, precision=None) -> tuple[date | None, str]:
    """Return ``(date, precision)`` with the date truncated to its precision.

    A precision without a date is dropped; a date without one is exact.
    """
    if value in (None, ""):
        return None, ""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value)
        except ValueError:
            raise ValidationError({"date_value": ["Enter a valid date (YYYY-MM-DD)."]})
    precision = precision or Precision.EXACT
    if precision not in Precision.values:
        raise ValidationError(
            {"date_precision": [f"'{precision}' is not a valid precision."]}
        )

    if precision == Precision.MONTH:
        value = value.replace(day=1)
    elif precision == Precision.YEAR:
        value = value.replace(month=1, day=1)
    elif precision == Precision.DECADE:
        value = date(value.year - value.year % 10, 1, 1)
    return value, str(precision)


class AnswerService:
    """Read and write answers through a recipient token."""

    @classmethod
    def get_recipient(cls, token) -> Recipient:
        """Resolve a token to its active recipient, or raise InvalidToken."""
        parsed = parse_token(token)
        recipient = (
            Recipient.objects.select_related(
                "request__creator",
                "question_set",
                "respondent__profile",
                "claimed_by__profile",
            )
            .filter(token=parsed, is_active=True)
            .first()
        )
        if recipient is None:
            raise InvalidToken("Link not found.")
        return recipient

    @classmethod
    def get_outstanding_questions(cls, token, now=None) -> AnswerSessionView:
        recipient = cls.get_recipient(token)
        now = now or timezone.now()

        answers = {
            a.question_id: a
            for a in recipient.answers.prefetch_related("media")
        }
        views = []
        for question in recipient.question_set.ordered_questions():
            answer = answers.get(question.pk)
            views.append(
                QuestionView(
                    question=question,
                    answer=answer,
                    editable=answer is None or answer.is_editable(now),
                )
            )

        return AnswerSessionView(
            recipient=recipient,
            question_set=recipient.question_set,
            asker_name=user_display_name(recipient.request.creator),
            respondent_name=display_name(recipient),
            message=recipient.request.message,
            questions=views,
        )

    @classmethod
    def _bound_identity(cls, recipient: Recipient):
        """Identity uploads are stored under.

        Recipients created before identities were bound at send time get one
        on their first write, when they have an email to resolve.
        """
        if recipient.respondent_id is not None:
            return recipient.respondent
        if not recipient.email_normalized:
            return None
        identity = resolve_identity(recipient.email)
        updated = Recipient.objects.filter(
            pk=recipient.pk, respondent__isnull=True
        ).update(respondent=identity)
        if not updated:
            recipient.refresh_from_db(fields=["respondent"])
            return recipient.respondent
        recipient.respondent = identity
        return identity

    @classmethod
    def submit_answer(
        cls,
        token,
        question_id,
        text: str | None = None,
        date_value=None,
        date_precision=None,
        media=None,
        assisted: bool = False,
        now=None,
    ) -> Answer:
        """Create or edit the answer to one question.

        ``text=None`` leaves the stored text alone on an edit, so attaching
        a photo later does not clear what was written; pass ``""`` to clear
        it. Uploads whose bytes are already attached to the answer are
        skipped, which makes resubmitting the same form a no-op.

        Raises:
            InvalidToken: token unknown or deactivated
            ValidationError: unknown question, empty answer, bad date or file
            EditWindowClosed: the existing answer is past its edit window
        """
        recipient = cls.get_recipient(token)
        now = now or timezone.now()

        try:
            question = recipient.question_set.questions.get(pk=int(question_id))
        except (TypeError, ValueError, Question.DoesNotExist):
            raise ValidationError({"question": ["Unknown question."]})

        files = list(media or [])
        MediaService.validate(files)
        digests = [MediaService.digest(upload) for upload in files]
        if text is not None:
            text = text.strip()
        date_value, date_precision = normalize_date(date_value, date_precision)

        identity = None
        if files:
            identity = cls._bound_identity(recipient)
            if identity is None:
                raise ValidationError(
                    {"media": ["Attachments need an email address on this link."]}
                )

        written_keys: list[str] = []
        try:
            with transaction.atomic():
                answer = (
                    Answer.objects.select_for_update()
                    .filter(recipient=recipient, question=question)
                    .first()
                )
                if answer is None:
                    if not text and not files:
                        raise ValidationError({"text": ["Write an answer or attach a file."]})
                    try:
                        with transaction.atomic():
                            answer = Answer.objects.create(
                                recipient=recipient,
                                question=question,
                                text=text or "",
                                date_value=date_value,
                                date_precision=date_precision,
                                assisted=assisted,
                                answered_at=now,
                            )
                        created = True
                    except IntegrityError:
                        # A concurrent first submission won; treat ours as an edit.
                        answer = Answer.objects.select_for_update().get(
                            recipient=recipient, question=question
                        )
                        created = False
                else:
                    created = False

                if not created:
                    cls._apply_edit(
                        answer, text, date_value, date_precision, assisted, files, now
                    )

                attached = set(answer.media.values_list("content_digest", flat=True))
                for upload, digest in zip(files, digests):
                    if digest in attached:
                        logger.info(
                            f"Skipping {upload.name}: already attached to answer {answer.pk}"
                        )
                        continue
                    asset = MediaService.store(
                        identity, answer.public_id, upload, answer, recipient, digest=digest
                    )
                    attached.add(digest)
                    written_keys.append(asset.address_key)
        except Exception:
            if written_keys:
                logger.warning(
                    f"Answer submission for recipient {recipient.pk} failed; "
                    f"removing {len(written_keys)} stored files"
                )
                MediaService.discard(written_keys)
            raise

        logger.info(
            f"Answer {answer.pk} {'created' if created else 'saved'} for "
            f"recipient {recipient.pk} question {question.pk}"
        )
        return answer

    @classmethod
    def _apply_edit(cls, answer, text, date_value, date_precision, assisted, files, now):
        if not answer.is_editable(now):
            raise EditWindowClosed(answer)
        if text is None:
            text = answer.text
        if not text and not files and not answer.media.exists():
            raise ValidationError({"text": ["Write an answer or attach a file."]})

        assisted = answer.assisted or assisted
        unchanged = (
            answer.text == text
            and answer.date_value == date_value
            and answer.date_precision == date_precision
            and answer.assisted == assisted
        )
        if unchanged:
            return

        answer.text = text
        answer.date_value = date_value
        answer.date_precision = date_precision
        answer.assisted = assisted
        answer.save(
            update_fields=[
                "text",
                "date_value",
                "date_precision",
                "assisted",
                "updated_at",
            ]
        )

    @classmethod
    def get_media_status(cls, token, media_id) -> MediaAsset:
        recipient = cls.get_recipient(token)
        try:
            file_id = uuid.UUID(str(media_id))
        except ValueError:
            raise InvalidToken("Link not found.")
        media = MediaAsset.objects.filter(recipient=recipient, file_id=file_id).first()
        if media is None:
            raise InvalidToken("Link not found.")
        return media
