"""
ClaimService - recognising a token holder once they sign in.

Claiming never moves content. Answers and uploads stay owned by, and
addressed under, the identity the recipient was bound to when the questions
were sent. A claim only records who that identity turned out to be:

* the placeholder itself signs in: it is marked claimed and becomes a full
  account, picking up any name the sign-in supplied;
* a different account signs in holding the token: the recipient records
  ``claimed_by`` and the placeholder is marked as merged into that account.

Either way the asker and the respondent are related exactly once. The claim,
the relationship and any provider login are written in one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from heirloom_app.core.models import ExternalLogin, Relationship, UserProfile

from ..errors import ClaimConflict, InvalidToken
from ..models import Recipient
from .answer_service import parse_token

User = get_user_model()
logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    recipient: Recipient
    identity: User
    owner: User
    linked_account: bool
    already_claimed: bool
    relationship: Relationship | None
    relationship_created: bool


class ClaimService:
    @classmethod
    def _merge_profile(cls, user, profile_data) -> None:
        name = ((profile_data or {}).get("display_name") or "").strip()
        if not name:
            return
        profile = UserProfile.get_or_create_for_user(user)
        if profile.is_completed:
            return
        profile.complete(name)

    @classmethod
    def _record_external_login(cls, user, provider, provider_user_id, email) -> None:
        login, created = ExternalLogin.objects.get_or_create(
            provider=provider,
            provider_user_id=provider_user_id,
            defaults={"user": user, "email": email or ""},
        )
        if not created and login.user_id != user.pk:
            raise ClaimConflict(
                f"This {provider} sign-in is already linked to another account."
            )

    @classmethod
    @transaction.atomic
    def claim(
        cls,
        token,
        user,
        profile_data: dict | None = None,
        provider: str | None = None,
        provider_user_id: str | None = None,
    ) -> ClaimResult:
        """Recognise ``user`` as the holder of ``token``.

        Safe to repeat: claiming again with the same account changes nothing
        and reports ``already_claimed``.

        Raises:
            InvalidToken: token unknown or deactivated
            ClaimConflict: the recipient already belongs to another account
        """
        parsed = parse_token(token)
        recipient = (
            Recipient.objects.select_for_update()
            .select_related("request__creator", "respondent")
            .filter(token=parsed, is_active=True)
            .first()
        )
        if recipient is None:
            raise InvalidToken("Link not found.")

        if recipient.claimed_by_id is not None and recipient.claimed_by_id != user.pk:
            raise ClaimConflict("This link has already been claimed by another account.")

        now = timezone.now()
        if recipient.respondent_id is None:
            # Legacy recipient with no bound identity: the first claimant becomes it.
            Recipient.objects.filter(pk=recipient.pk, respondent__isnull=True).update(
                respondent=user
            )
            recipient.respondent = user

        identity = recipient.respondent
        profile = UserProfile.objects.select_for_update().get(user=identity)
        already_claimed = recipient.claimed_at is not None
        linked_account = identity.pk != user.pk

        if not linked_account:
            if profile.is_placeholder or profile.claimed_at is None:
                profile.is_placeholder = False
                profile.claimed_at = profile.claimed_at or now
                profile.save(update_fields=["is_placeholder", "claimed_at", "updated_at"])
        else:
            if not profile.is_placeholder:
                raise ClaimConflict(
                    "This link belongs to a different account. Sign in with that account."
                )
            if profile.merged_into_id not in (None, user.pk):
                raise ClaimConflict("This link has already been claimed by another account.")
            if profile.claimed_at is not None and profile.merged_into_id is None:
                raise ClaimConflict("This link has already been claimed by another account.")
            if profile.merged_into_id is None:
                profile.merged_into = user
                profile.claimed_at = now
                profile.save(update_fields=["merged_into", "claimed_at", "updated_at"])

        if not already_claimed:
            recipient.claimed_by = user
            recipient.claimed_at = now
            recipient.save(update_fields=["claimed_by", "claimed_at"])

        cls._merge_profile(user, profile_data)

        if provider and provider_user_id:
            cls._record_external_login(user, provider, provider_user_id, user.email)

        relationship, relationship_created = None, False
        asker = recipient.request.creator
        if asker.pk != user.pk:
            relationship, relationship_created = Relationship.link(
                asker, user, source_recipient=recipient
            )

        logger.info(
            f"Recipient {recipient.pk} claimed by user {user.pk} "
            f"(linked_account={linked_account}, already_claimed={already_claimed}, "
            f"relationship_created={relationship_created})"
        )
        return ClaimResult(
            recipient=recipient,
            identity=identity,
            owner=user,
            linked_account=linked_account,
            already_claimed=already_claimed,
            relationship=relationship,
            relationship_created=relationship_created,
        )
