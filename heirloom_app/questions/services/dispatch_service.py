"""
DispatchService - sends a question set to a batch of recipients.

Each recipient gets one stable, non-expiring token per question set. Sending
the same set to an email that already holds a live token reuses that token
instead of minting another, so a re-send never produces a second link. The
database enforces this with a partial unique constraint on
(question_set, email_normalized) for active recipients; a writer that loses the
race re-reads the winner's row as a reuse.

Every new recipient is bound to an identity at send time (see
``heirloom_app.core.identity``) so answers and uploads have a stable owner from
the first write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import uuid

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from heirloom_app.core.identity import is_valid_email, normalize_email, resolve_identity

from ..errors import DuplicateRecipient, RecipientValidationError
from ..models import QuestionRequest, QuestionSet, Recipient
from ..notifications import send_question_request_email

logger = logging.getLogger(__name__)

MAX_ALIAS_LENGTH = 100
MAX_MESSAGE_LENGTH = 1000


@dataclass
class RecipientRow:
    """One validated line of a recipient batch."""

    email: str
    email_normalized: str
    alias: str = ""


@dataclass
class DispatchedRecipient:
    email: str
    alias: str
    token: uuid.UUID
    recipient: Recipient
    created: bool


@dataclass
class DispatchResult:
    request: QuestionRequest | None
    recipients: list[DispatchedRecipient] = field(default_factory=list)

    @property
    def created(self) -> list[DispatchedRecipient]:
        return [r for r in self.recipients if r.created]

    @property
    def reused(self) -> list[DispatchedRecipient]:
        return [r for r in self.recipients if not r.created]


class DispatchService:
    """Turn a question set and a recipient list into tokenized asks."""

    @classmethod
    def validate_batch(cls, recipients) -> list[RecipientRow]:
        """Validate a batch and collapse repeated emails.

        Raises:
            RecipientValidationError: naming every offending row
        """
        if not recipients:
            raise ValidationError({"recipients": ["Add at least one recipient."]})

        row_errors: dict[int, list[str]] = {}
        rows: list[RecipientRow] = []
        seen: set[str] = set()

        for index, entry in enumerate(recipients):
            if not isinstance(entry, dict):
                row_errors[index] = ["Each recipient must have an email."]
                continue

            email = (entry.get("email") or "").strip()
            alias = (entry.get("alias") or "").strip()
            errors = []
            if not email:
                errors.append("Email is required.")
            elif not is_valid_email(email):
                errors.append(f"'{email}' is not a valid email address.")
            if len(alias) > MAX_ALIAS_LENGTH:
                errors.append(
                    f"Alias must be at most {MAX_ALIAS_LENGTH} characters."
                )
            if errors:
                row_errors[index] = errors
                continue

            normalized = normalize_email(email)
            if normalized in seen:
                continue
            seen.add(normalized)
            rows.append(RecipientRow(email=email, email_normalized=normalized, alias=alias))

        if row_errors:
            raise RecipientValidationError(row_errors)
        return rows

    @classmethod
    def find_live_recipient(cls, question_set: QuestionSet, email_normalized: str):
        return (
            Recipient.objects.select_related("request", "respondent")
            .filter(
                question_set=question_set,
                email_normalized=email_normalized,
                is_active=True,
            )
            .first()
        )

    @classmethod
    def _mint(cls, request, question_set, row: RecipientRow) -> Recipient:
        identity = resolve_identity(row.email)
        try:
            with transaction.atomic():
                return Recipient.objects.create(
                    request=request,
                    question_set=question_set,
                    alias=row.alias,
                    email=row.email,
                    email_normalized=row.email_normalized,
                    respondent=identity,
                )
        except IntegrityError as exc:
            raise DuplicateRecipient(question_set.pk, row.email_normalized) from exc

    @classmethod
    def create_request(
        cls,
        question_set: QuestionSet,
        asker,
        recipients,
        message: str = "",
        notify: bool = False,
    ) -> DispatchResult:
        """Send ``question_set`` to ``recipients``.

        Args:
            question_set: Set being sent; must not be archived
            asker: User sending the questions
            recipients: List of ``{"email": ..., "alias": ...}`` dicts
            message: Optional personal note shown with the questions
            notify: Email newly created recipients their link

        Returns:
            DispatchResult with one entry per distinct email, each flagged as
            newly created or reused

        Raises:
            RecipientValidationError / ValidationError: nothing is persisted
        """
        rows = cls.validate_batch(recipients)
        message = (message or "").strip()
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                {"message": [f"Message must be at most {MAX_MESSAGE_LENGTH} characters."]}
            )
        if question_set.archived:
            raise ValidationError("Archived question sets cannot be sent.")
        if not question_set.questions.exists():
            raise ValidationError("This question set has no questions.")

        with transaction.atomic():
            request = None
            dispatched: list[DispatchedRecipient] = []

            for row in rows:
                existing = cls.find_live_recipient(question_set, row.email_normalized)
                if existing is None:
                    if request is None:
                        request = QuestionRequest.objects.create(
                            question_set=question_set, creator=asker, message=message
                        )
                    try:
                        recipient = cls._mint(request, question_set, row)
                    except DuplicateRecipient:
                        logger.info(
                            f"Concurrent dispatch to set {question_set.pk}; "
                            "reusing the live recipient"
                        )
                        existing = cls.find_live_recipient(
                            question_set, row.email_normalized
                        )
                        if existing is None:
                            raise
                    else:
                        dispatched.append(
                            DispatchedRecipient(
                                email=row.email,
                                alias=recipient.alias,
                                token=recipient.token,
                                recipient=recipient,
                                created=True,
                            )
                        )
                        continue

                dispatched.append(
                    DispatchedRecipient(
                        email=existing.email,
                        alias=existing.alias,
                        token=existing.token,
                        recipient=existing,
                        created=False,
                    )
                )

            if request is not None and not any(d.created for d in dispatched):
                # Every mint lost a race; the request would hold nobody.
                request.delete()
                request = None
            if request is None:
                request = (
                    QuestionRequest.objects.filter(
                        recipients__in=[d.recipient for d in dispatched]
                    )
                    .order_by("-created_at", "-id")
                    .first()
                )

        result = DispatchResult(request=request, recipients=dispatched)
        logger.info(
            f"Question set {question_set.pk} sent by user {asker.pk}: "
            f"{len(result.created)} new, {len(result.reused)} reused"
        )

        if notify:
            for entry in result.created:
                if not send_question_request_email(entry.recipient, asker, message):
                    logger.warning(
                        f"Request email for recipient {entry.recipient.pk} was not delivered"
                    )
        return result

    @classmethod
    def deactivate_recipient(cls, recipient: Recipient, asker) -> Recipient:
        """Revoke a recipient's token. Safe to call more than once."""
        if recipient.request.creator_id != asker.pk and (
            recipient.question_set.owner_id != asker.pk
        ):
            raise PermissionDenied("Only the asker can deactivate this link.")
        if recipient.is_active:
            recipient.is_active = False
            recipient.deactivated_at = timezone.now()
            recipient.save(update_fields=["is_active", "deactivated_at"])
            logger.info(f"Recipient {recipient.pk} deactivated by user {asker.pk}")
        return recipient
