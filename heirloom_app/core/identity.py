"""Identity resolution for question recipients.

Recipients are bound to an identity at the moment questions are sent to them.
If the email has never been seen we provision a placeholder account so that
answers and media have a stable owner from the first write. Later sign-ins are
treated as recognition of that identity, never as a transfer of ownership.

Display names for respondents are resolved here as well, through a single
strategy that every caller (API payloads, emails, dashboards) goes through.
"""

from __future__ import annotations

import logging
import re
import uuid

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction

from .models import UserProfile

User = get_user_model()
logger = logging.getLogger(__name__)

FALLBACK_DISPLAY_NAME = "Family Member"

_EMAIL_NAME_SEPARATORS = re.compile(r"[._\-+]+")


def normalize_email(email: str | None) -> str:
    """Trim and lowercase an email for comparison. Never used for delivery."""
    return (email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    candidate = (email or "").strip()
    if not candidate:
        return False
    try:
        validate_email(candidate)
    except ValidationError:
        return False
    return True


def _follow_merges(user):
    """Walk placeholder -> account links to the identity that now answers for it."""
    seen = {user.pk}
    profile = UserProfile.get_or_create_for_user(user)
    while profile.merged_into_id and profile.merged_into_id not in seen:
        user = profile.merged_into
        seen.add(user.pk)
        profile = UserProfile.get_or_create_for_user(user)
    return user


def find_identity(email: str):
    """Return the existing identity for an email, or None."""
    normalized = normalize_email(email)
    if not normalized:
        return None

    placeholder = (
        UserProfile.objects.select_related("user")
        .filter(placeholder_email=normalized)
        .first()
    )
    # A real account registered under the same email wins over a placeholder.
    account = (
        User.objects.filter(email__iexact=normalized, profile__is_placeholder=False)
        .order_by("id")
        .first()
    )
    if account is not None:
        return account
    if placeholder is not None:
        return _follow_merges(placeholder.user)
    return None


def resolve_identity(email: str):
    """Return the identity for an email, provisioning a placeholder if needed.

    The placeholder has no usable password, no display name and no
    completed-profile marker. Two concurrent calls for the same email end up
    with the same row: the unique placeholder email makes the loser re-read.
    """
    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("An email is required to resolve an identity")

    existing = find_identity(normalized)
    if existing is not None:
        return existing

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                username=f"respondent-{uuid.uuid4().hex[:20]}",
                email=email.strip(),
            )
            profile = UserProfile.get_or_create_for_user(user)
            profile.is_placeholder = True
            profile.placeholder_email = normalized
            profile.save(
                update_fields=["is_placeholder", "placeholder_email", "updated_at"]
            )
            user.profile = profile
    except IntegrityError:
        logger.info("Placeholder identity race lost; reusing existing identity")
        profile = UserProfile.objects.select_related("user").get(
            placeholder_email=normalized
        )
        return _follow_merges(profile.user)

    logger.info(f"Provisioned placeholder identity user_id={user.pk}")
    return user


def format_email_name(email: str | None) -> str:
    """Turn ``john.smith@example.com`` into ``John Smith``.

    Returns an empty string when nothing readable is left.
    """
    candidate = (email or "").strip()
    if "@" not in candidate:
        return ""
    local = candidate.split("@", 1)[0]
    words = [w for w in _EMAIL_NAME_SEPARATORS.split(local) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words)


def resolve_display_name(
    alias: str | None = None,
    name: str | None = None,
    email: str | None = None,
    fallback: str = FALLBACK_DISPLAY_NAME,
) -> str:
    """Pick a respondent's display name.

    Strict priority: per-send alias, identity's own name, formatted email,
    fallback label. Pure and total: always returns a non-empty string.
    """
    for candidate in (alias, name, format_email_name(email)):
        if candidate and candidate.strip():
            return candidate.strip()
    return fallback or FALLBACK_DISPLAY_NAME


class DisplayNameResolver:
    """The one place respondent and asker names are worked out."""

    def __init__(self, fallback: str = FALLBACK_DISPLAY_NAME):
        self.fallback = fallback

    def identity_name(self, user) -> str:
        if user is None:
            return ""
        return UserProfile.get_or_create_for_user(user).own_name()

    def for_recipient(self, recipient) -> str:
        owner = recipient.claimed_by or recipient.respondent
        return resolve_display_name(
            alias=recipient.alias,
            name=self.identity_name(owner),
            email=recipient.email,
            fallback=self.fallback,
        )

    def for_user(self, user) -> str:
        return resolve_display_name(
            name=self.identity_name(user),
            email=getattr(user, "email", ""),
            fallback=self.fallback,
        )


display_names = DisplayNameResolver()


def display_name(recipient) -> str:
    return display_names.for_recipient(recipient)


def user_display_name(user) -> str:
    return display_names.for_user(user)
