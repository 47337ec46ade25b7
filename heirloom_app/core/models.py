import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

User = get_user_model()


class UserProfile(models.Model):
    """Identity details layered on top of the auth user.

    Every user has one profile (created automatically on signup). Respondents
    who were sent questions before they had an account get a *placeholder*
    identity: a real user row with no usable password, provisioned at send time
    so that everything they write has a stable owner from the first moment.
    """

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")

    display_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Name shown to askers once the profile is completed",
    )
    is_placeholder = models.BooleanField(
        default=False,
        help_text="True if this identity was provisioned for a recipient email",
    )
    placeholder_email = models.CharField(
        max_length=254,
        null=True,
        blank=True,
        help_text="Normalized email a placeholder identity was provisioned for",
    )
    profile_completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the identity supplied its own profile details",
    )
    claimed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a placeholder identity was recognised by an authenticated user",
    )
    merged_into = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="merged_placeholders",
        help_text="Existing account a placeholder identity turned out to belong to",
    )
    # Media address keys are built from this value; it never changes.
    storage_key = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "User Profile"
        verbose_name_plural = "User Profiles"
        constraints = [
            models.UniqueConstraint(
                fields=["placeholder_email"],
                condition=Q(placeholder_email__isnull=False),
                name="one_placeholder_per_email",
            )
        ]

    def __str__(self) -> str:  # pragma: no cover
        kind = "placeholder" if self.is_placeholder else "account"
        return f"{self.user.username} ({kind})"

    @classmethod
    def get_or_create_for_user(cls, user):
        """Get or create profile for a user with defaults."""
        profile, created = cls.objects.get_or_create(user=user)
        return profile

    @property
    def is_completed(self) -> bool:
        return self.profile_completed_at is not None

    @property
    def is_claimed(self) -> bool:
        return self.claimed_at is not None

    def own_name(self) -> str:
        """Return the identity's own name, or an empty string if it has none.

        Placeholders only have a name once they have completed their profile;
        real accounts fall back to the auth user's full name.
        """
        if self.is_placeholder and not self.is_completed:
            return ""
        return (self.display_name or self.user.get_full_name() or "").strip()

    def complete(self, display_name: str = "") -> None:
        """Record profile details supplied by the identity itself."""
        update_fields = ["updated_at"]
        if display_name and not self.display_name:
            self.display_name = display_name.strip()[:150]
            update_fields.append("display_name")
        if self.profile_completed_at is None and self.display_name:
            self.profile_completed_at = timezone.now()
            update_fields.append("profile_completed_at")
        self.save(update_fields=update_fields)


class ExternalLogin(models.Model):
    """A provider sign-in linked to a user.

    Recorded when a respondent authenticates through an external provider
    (Google, Apple, Microsoft) while holding a question token.
    """

    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="external_logins"
    )
    provider = models.CharField(
        max_length=50, help_text="Provider identifier (e.g., 'google', 'apple')"
    )
    provider_user_id = models.CharField(
        max_length=256, help_text="Unique subject identifier from the provider"
    )
    email = models.CharField(max_length=256, blank=True, default="")
    linked_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_user_id"],
                name="unique_provider_subject",
            )
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.user.username} ({self.provider})"


class Relationship(models.Model):
    """Symmetric link between two identities (asker and respondent).

    Stored once per pair in canonical order, lowest user id first, so the
    unique constraint makes creation idempotent from either side.
    """

    user_low = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="relationships_low"
    )
    user_high = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="relationships_high"
    )
    source_recipient = models.ForeignKey(
        "questions.Recipient",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="relationships",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user_low", "user_high"], name="unique_relationship_pair"
            ),
            models.CheckConstraint(
                condition=Q(user_low__lt=F("user_high")),
                name="relationship_canonical_order",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.user_low_id} <-> {self.user_high_id}"

    @classmethod
    def link(cls, first, second, source_recipient=None):
        """Idempotently relate two users. Returns (relationship, created)."""
        if first.pk == second.pk:
            raise ValueError("Cannot relate a user to themselves")
        low, high = sorted([first, second], key=lambda u: u.pk)
        return cls.objects.get_or_create(
            user_low=low,
            user_high=high,
            defaults={"source_recipient": source_recipient},
        )

    @classmethod
    def between(cls, first, second):
        low, high = sorted([first.pk, second.pk])
        return cls.objects.filter(user_low_id=low, user_high_id=high).first()

    @classmethod
    def for_user(cls, user):
        return cls.objects.filter(Q(user_low=user) | Q(user_high=user))
