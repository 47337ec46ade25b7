"""
Reporting for the asker's dashboard.

Summaries are computed with SQL aggregates rather than by walking rows in
Python. Recipients are counted by the identity they were bound to, so the
same person reached through several sends of a set is counted once.
Recipients created before identities were bound are counted individually.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import uuid

from django.core.exceptions import PermissionDenied
from django.db.models import Count, Max, Prefetch, Q

from heirloom_app.core.identity import display_name

from ..models import MAX_REMINDERS, QuestionRequest, QuestionSet, Recipient

STATUS_NONE = "none"
STATUS_PARTIAL = "partial"
STATUS_COMPLETE = "complete"


@dataclass
class SetSummary:
    """One row of the unified question-set list."""

    set_id: int
    name: str
    archived: bool
    question_count: int
    request_count: int
    total_recipients: int
    answered_recipients: int
    last_activity_at: datetime | None
    updated_at: datetime

    @property
    def is_draft(self) -> bool:
        return self.request_count == 0


@dataclass
class RecipientStatus:
    recipient_id: int
    name: str
    email: str
    alias: str
    token: uuid.UUID
    is_active: bool
    is_claimed: bool
    answered_count: int
    total_questions: int
    status: str
    reminders_sent: int
    last_reminder_at: datetime | None

    @property
    def reminders_remaining(self) -> int:
        return max(MAX_REMINDERS - self.reminders_sent, 0)


@dataclass
class RequestGroup:
    """Recipients grouped under the send event that reached them."""

    request_id: int
    created_at: datetime
    message: str
    recipients: list[RecipientStatus] = field(default_factory=list)


def response_status(answered_count: int, total_questions: int) -> str:
    if answered_count <= 0:
        return STATUS_NONE
    if answered_count >= total_questions:
        return STATUS_COMPLETE
    return STATUS_PARTIAL


def _latest(*values):
    present = [v for v in values if v is not None]
    return max(present) if present else None


def get_unified_sets(user, include_archived: bool = False) -> list[SetSummary]:
    """Summaries of every set ``user`` owns, most recently active first.

    Sets that were never sent sort after every sent set, newest edit first.
    """
    answered = Q(recipients__answers__isnull=False)
    unbound = Q(recipients__respondent__isnull=True)

    sets = QuestionSet.objects.filter(owner=user)
    if not include_archived:
        sets = sets.filter(archived=False)

    sets = sets.annotate(
        question_count=Count("questions", distinct=True),
        request_count=Count("requests", distinct=True),
        bound_recipients=Count("recipients__respondent", distinct=True),
        unbound_recipients=Count("recipients", filter=unbound, distinct=True),
        answered_bound=Count(
            "recipients__respondent", filter=answered, distinct=True
        ),
        answered_unbound=Count(
            "recipients", filter=answered & unbound, distinct=True
        ),
        last_request_at=Max("requests__created_at"),
        last_answer_at=Max("recipients__answers__answered_at"),
    )

    summaries = [
        SetSummary(
            set_id=qs.pk,
            name=qs.name,
            archived=qs.archived,
            question_count=qs.question_count,
            request_count=qs.request_count,
            total_recipients=qs.bound_recipients + qs.unbound_recipients,
            answered_recipients=qs.answered_bound + qs.answered_unbound,
            last_activity_at=_latest(qs.last_request_at, qs.last_answer_at),
            updated_at=qs.updated_at,
        )
        for qs in sets
    ]

    sent = [s for s in summaries if not s.is_draft]
    drafts = [s for s in summaries if s.is_draft]
    sent.sort(key=lambda s: (s.last_activity_at, s.set_id), reverse=True)
    drafts.sort(key=lambda s: (s.updated_at, s.set_id), reverse=True)
    return sent + drafts


def get_set_detail(question_set: QuestionSet, user) -> list[RequestGroup]:
    """Per-send breakdown of one set, newest send first. Owner only."""
    if question_set.owner_id != user.pk:
        raise PermissionDenied("You do not have access to this question set.")

    total_questions = question_set.questions.count()
    recipients = (
        Recipient.objects.select_related("respondent__profile", "claimed_by__profile")
        .annotate(answered_count=Count("answers"))
        .order_by("created_at", "id")
    )
    requests = (
        QuestionRequest.objects.filter(question_set=question_set)
        .prefetch_related(Prefetch("recipients", queryset=recipients))
        .order_by("-created_at", "-id")
    )

    groups = []
    for request in requests:
        rows = [
            RecipientStatus(
                recipient_id=r.pk,
                name=display_name(r),
                email=r.email,
                alias=r.alias,
                token=r.token,
                is_active=r.is_active,
                is_claimed=r.is_claimed,
                answered_count=r.answered_count,
                total_questions=total_questions,
                status=response_status(r.answered_count, total_questions),
                reminders_sent=r.reminders_sent,
                last_reminder_at=r.last_reminder_at,
            )
            for r in request.recipients.all()
        ]
        groups.append(
            RequestGroup(
                request_id=request.pk,
                created_at=request.created_at,
                message=request.message,
                recipients=rows,
            )
        )
    return groups
