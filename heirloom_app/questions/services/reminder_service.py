"""
ReminderService - nudges recipients who have not answered yet.

Runs daily from the ``send_question_reminders`` command, possibly on more than
one instance at once. Instances never lock anything: each send first reserves
its slot with a conditional UPDATE that only succeeds while ``reminders_sent``
still holds the value that was read. Whoever wins the update sends; a failed
send gives the slot back so the next run retries it.

Rules:
- only active recipients that have not answered anything
- only once the request is at least QUESTION_REMINDER_AFTER_DAYS old
- never more than MAX_REMINDERS per recipient, ever
- never twice inside QUESTION_REMINDER_INTERVAL_HOURS
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
import logging

from django.conf import settings
from django.core.exceptions import PermissionDenied
from django.db.models import Exists, F, OuterRef, Q
from django.utils import timezone

from heirloom_app.core.rate_limits import check_and_increment

from ..errors import ReminderNotAllowed, ReminderRateLimited
from ..models import MAX_REMINDERS, Answer, Recipient
from ..notifications import send_question_reminder_email

logger = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class ReminderRunResult:
    considered: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    recipient_ids: list[int] = field(default_factory=list)


class ReminderService:
    MAX_REMINDERS = MAX_REMINDERS

    @classmethod
    def reminder_age(cls) -> timedelta:
        return timedelta(days=getattr(settings, "QUESTION_REMINDER_AFTER_DAYS", 7))

    @classmethod
    def reminder_interval(cls) -> timedelta:
        return timedelta(
            hours=getattr(settings, "QUESTION_REMINDER_INTERVAL_HOURS", 24)
        )

    @classmethod
    def _interval_elapsed(cls, now) -> Q:
        return Q(last_reminder_at__isnull=True) | Q(
            last_reminder_at__lte=now - cls.reminder_interval()
        )

    @classmethod
    def get_due_recipients(cls, now=None):
        """Recipients the daily sweep should remind, oldest first."""
        now = now or timezone.now()
        answered = Answer.objects.filter(recipient=OuterRef("pk"))
        return (
            Recipient.objects.select_related("request__creator", "question_set")
            .filter(
                is_active=True,
                reminders_sent__lt=cls.MAX_REMINDERS,
                request__created_at__lte=now - cls.reminder_age(),
            )
            .filter(cls._interval_elapsed(now))
            .exclude(email="")
            .filter(~Exists(answered))
            .order_by("request__created_at", "id")
        )

    @classmethod
    def preview_for(cls, recipient: Recipient) -> list[str]:
        """Texts of the questions this recipient has not answered, in order."""
        answered_ids = recipient.answers.values_list("question_id", flat=True)
        return list(
            recipient.question_set.ordered_questions()
            .exclude(pk__in=answered_ids)
            .values_list("text", flat=True)
        )

    @classmethod
    def _reserve(cls, recipient: Recipient, now) -> bool:
        observed = recipient.reminders_sent
        if observed >= cls.MAX_REMINDERS:
            return False
        updated = (
            Recipient.objects.filter(
                pk=recipient.pk, is_active=True, reminders_sent=observed
            )
            .filter(cls._interval_elapsed(now))
            .update(reminders_sent=F("reminders_sent") + 1, last_reminder_at=now)
        )
        return updated == 1

    @classmethod
    def _release(cls, recipient: Recipient, observed: int, previous_sent_at) -> None:
        Recipient.objects.filter(pk=recipient.pk, reminders_sent=observed + 1).update(
            reminders_sent=observed, last_reminder_at=previous_sent_at
        )

    @classmethod
    def send_reminder(cls, recipient: Recipient, now=None) -> str:
        """Reserve, send and confirm one reminder.

        Returns SENT, FAILED (slot released for the next run) or SKIPPED
        (another run already took the slot).
        """
        now = now or timezone.now()
        observed = recipient.reminders_sent
        previous_sent_at = recipient.last_reminder_at

        if not cls._reserve(recipient, now):
            logger.info(f"Reminder slot for recipient {recipient.pk} already taken")
            return SKIPPED

        try:
            delivered = send_question_reminder_email(recipient, cls.preview_for(recipient))
        except Exception:
            logger.exception(f"Reminder for recipient {recipient.pk} raised")
            delivered = False

        if not delivered:
            cls._release(recipient, observed, previous_sent_at)
            logger.warning(
                f"Reminder for recipient {recipient.pk} failed; will retry next run"
            )
            return FAILED

        recipient.reminders_sent = observed + 1
        recipient.last_reminder_at = now
        logger.info(
            f"Reminder {recipient.reminders_sent}/{cls.MAX_REMINDERS} sent "
            f"to recipient {recipient.pk}"
        )
        return SENT

    @classmethod
    def run_sweep(cls, now=None, dry_run: bool = False) -> ReminderRunResult:
        now = now or timezone.now()
        result = ReminderRunResult()
        for recipient in cls.get_due_recipients(now):
            result.considered += 1
            result.recipient_ids.append(recipient.pk)
            if dry_run:
                continue
            outcome = cls.send_reminder(recipient, now)
            if outcome == SENT:
                result.sent += 1
            elif outcome == FAILED:
                result.failed += 1
            else:
                result.skipped += 1
        return result

    @classmethod
    def send_manual_reminder(cls, recipient: Recipient, asker, now=None) -> Recipient:
        """Send a reminder the asker asked for explicitly.

        There is no minimum request age, but the lifetime cap and the interval
        between reminders still apply.

        Raises:
            PermissionDenied: ``asker`` did not send this request
            ReminderRateLimited: too many manual reminders this hour
            ReminderNotAllowed: cap reached, too soon, nothing left to answer
        """
        now = now or timezone.now()
        if recipient.request.creator_id != asker.pk:
            raise PermissionDenied("Only the asker can remind this recipient.")
        if not recipient.is_active:
            raise ReminderNotAllowed("This link has been deactivated.")
        if not recipient.email:
            raise ReminderNotAllowed("This recipient has no email address.")
        if recipient.reminders_sent >= cls.MAX_REMINDERS:
            raise ReminderNotAllowed(
                f"This recipient has already had {cls.MAX_REMINDERS} reminders."
            )
        if (
            recipient.last_reminder_at is not None
            and now - recipient.last_reminder_at < cls.reminder_interval()
        ):
            raise ReminderNotAllowed("A reminder was sent recently. Try again later.")
        if not cls.preview_for(recipient):
            raise ReminderNotAllowed("Every question has already been answered.")

        limit = getattr(settings, "QUESTION_MANUAL_REMINDERS_PER_HOUR", 20)
        if not check_and_increment(f"manual-reminder:{asker.pk}", limit, 3600):
            raise ReminderRateLimited("Too many reminders sent. Try again later.")

        outcome = cls.send_reminder(recipient, now)
        if outcome == SKIPPED:
            raise ReminderNotAllowed("A reminder was sent recently. Try again later.")
        if outcome == FAILED:
            raise ReminderNotAllowed("The reminder could not be delivered. Try again later.")
        return recipient
