from __future__ import annotations

from datetime import timedelta
import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q
from django.utils import timezone

User = get_user_model()

MAX_QUESTIONS_PER_SET = 5
MAX_REMINDERS = 2
# Answers can be changed for this long after their first submission.
EDIT_WINDOW_DAYS = 7


def edit_window() -> timedelta:
    return timedelta(days=EDIT_WINDOW_DAYS)


class QuestionSet(models.Model):
    """A reusable, ordered set of 1-5 questions authored by one user."""

    owner = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="question_sets"
    )
    name = models.CharField(max_length=200)
    archived = models.BooleanField(
        default=False,
        help_text="Hidden from new sends; tokens already issued keep working",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["owner", "archived"], name="qset_owner_archived_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def ordered_questions(self):
        return self.questions.order_by("sort_order", "id")


class Question(models.Model):
    question_set = models.ForeignKey(
        QuestionSet, on_delete=models.CASCADE, related_name="questions"
    )
    text = models.CharField(max_length=500)
    sort_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["sort_order", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.text


class QuestionRequest(models.Model):
    """One send event. Never modified after creation."""

    question_set = models.ForeignKey(
        QuestionSet, on_delete=models.PROTECT, related_name="requests"
    )
    creator = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="question_requests"
    )
    message = models.CharField(max_length=1000, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(
                fields=["question_set", "-created_at"], name="qrequest_set_created_idx"
            ),
            models.Index(fields=["creator"], name="qrequest_creator_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Request {self.pk} for {self.question_set}"


class Recipient(models.Model):
    """One person's participation in one send event.

    ``respondent`` is the identity bound at send time and is never changed.
    Recognition by an authenticated account is recorded separately in
    ``claimed_by`` so that content written under ``respondent`` keeps its
    owner and storage addresses.
    """

    request = models.ForeignKey(
        QuestionRequest, on_delete=models.CASCADE, related_name="recipients"
    )
    # Denormalized so the per-set dedup constraint can be enforced by the database.
    question_set = models.ForeignKey(
        QuestionSet, on_delete=models.CASCADE, related_name="recipients"
    )
    token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    alias = models.CharField(max_length=100, blank=True, default="")
    email = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Email as entered by the asker (original casing kept for delivery)",
    )
    email_normalized = models.CharField(max_length=255, null=True, blank=True)
    respondent = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="question_recipients",
        help_text="Identity bound at send time; owns every answer and upload",
    )
    claimed_by = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="claimed_recipients",
        help_text="Authenticated account that recognised this recipient",
    )
    claimed_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)
    reminders_sent = models.PositiveSmallIntegerField(default=0)
    last_reminder_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["question_set", "email_normalized"],
                condition=Q(is_active=True, email_normalized__isnull=False),
                name="one_live_token_per_set_email",
            )
        ]
        indexes = [
            models.Index(fields=["email_normalized"], name="recipient_email_idx"),
            models.Index(
                fields=["is_active", "reminders_sent"], name="recipient_reminder_idx"
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Recipient {self.pk} of request {self.request_id}"

    @property
    def owner(self):
        """The account that currently answers for this recipient."""
        return self.claimed_by or self.respondent

    @property
    def is_claimed(self) -> bool:
        return self.claimed_at is not None


class Answer(models.Model):
    class DatePrecision(models.TextChoices):
        EXACT = "exact", "Exact date"
        MONTH = "month", "Month"
        YEAR = "year", "Year"
        DECADE = "decade", "Decade"

    recipient = models.ForeignKey(
        Recipient, on_delete=models.PROTECT, related_name="answers"
    )
    question = models.ForeignKey(
        Question, on_delete=models.PROTECT, related_name="answers"
    )
    # Content id under which media for this answer is addressed.
    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    text = models.TextField(blank=True, default="")
    date_value = models.DateField(null=True, blank=True)
    date_precision = models.CharField(
        max_length=10, choices=DatePrecision.choices, blank=True, default=""
    )
    assisted = models.BooleanField(
        default=False, help_text="Written with the help of a suggestion"
    )
    answered_at = models.DateTimeField(
        default=timezone.now,
        help_text="First submission; the edit window is measured from here",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["recipient", "question"], name="one_answer_per_question"
            )
        ]
        indexes = [
            models.Index(fields=["answered_at"], name="answer_answered_at_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Answer {self.pk} to question {self.question_id}"

    def is_editable(self, now=None) -> bool:
        now = now or timezone.now()
        return now - self.answered_at < edit_window()

    @property
    def editable_until(self):
        return self.answered_at + edit_window()


class MediaAsset(models.Model):
    """A photo or video attached to an answer.

    ``owner_identity`` and ``address_key`` are fixed when the file is stored
    and are the only inputs used to resolve it again.
    """

    class Kind(models.TextChoices):
        PHOTO = "photo", "Photo"
        VIDEO = "video", "Video"

    class Status(models.TextChoices):
        PROCESSING = "processing", "Processing"
        READY = "ready", "Ready"
        FAILED = "failed", "Failed"

    answer = models.ForeignKey(Answer, on_delete=models.CASCADE, related_name="media")
    recipient = models.ForeignKey(
        Recipient, on_delete=models.CASCADE, related_name="media"
    )
    file_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    owner_identity = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="uploaded_media"
    )
    owner_storage_key = models.UUIDField(editable=False)
    address_key = models.CharField(max_length=512, unique=True, editable=False)
    kind = models.CharField(max_length=10, choices=Kind.choices)
    content_type = models.CharField(max_length=100)
    size = models.PositiveBigIntegerField(default=0)
    original_name = models.CharField(max_length=255, blank=True, default="")
    content_digest = models.CharField(
        max_length=64, blank=True, default="", help_text="SHA-256 of the uploaded bytes"
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PROCESSING
    )
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.address_key
