"""Tests for identity resolution and placeholder provisioning."""

from django.contrib.auth import get_user_model
import pytest

from heirloom_app.core.identity import (
    find_identity,
    is_valid_email,
    normalize_email,
    resolve_identity,
)
from heirloom_app.core.models import UserProfile

User = get_user_model()


class TestEmailHelpers:
    def test_normalize_email_trims_and_lowercases(self):
        assert normalize_email("  Grandma@Example.COM ") == "grandma@example.com"

    def test_normalize_email_handles_none(self):
        assert normalize_email(None) == ""

    @pytest.mark.parametrize(
        "email,expected",
        [
            ("grandma@example.com", True),
            (" grandma@example.com ", True),
            ("not-an-email", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_email(self, email, expected):
        assert is_valid_email(email) is expected


@pytest.mark.django_db
class TestResolveIdentity:
    def test_provisions_placeholder_for_unknown_email(self):
        user = resolve_identity("Grandma@Example.com")

        profile = user.profile
        assert profile.is_placeholder
        assert profile.placeholder_email == "grandma@example.com"
        assert profile.profile_completed_at is None
        assert profile.display_name == ""
        assert not user.has_usable_password()
        assert user.first_name == ""
        assert user.email == "Grandma@Example.com"

    def test_same_email_resolves_to_same_placeholder(self):
        first = resolve_identity("grandma@example.com")
        second = resolve_identity("  GRANDMA@example.com ")

        assert first.pk == second.pk
        assert UserProfile.objects.filter(placeholder_email="grandma@example.com").count() == 1

    def test_existing_account_is_returned(self):
        account = User.objects.create_user(
            username="grandpa", email="Grandpa@Example.com", password="x"
        )

        assert resolve_identity("grandpa@example.com").pk == account.pk
        assert not UserProfile.objects.filter(is_placeholder=True).exists()

    def test_account_wins_over_placeholder(self):
        placeholder = resolve_identity("uncle@example.com")
        account = User.objects.create_user(
            username="uncle", email="uncle@example.com", password="x"
        )

        resolved = find_identity("uncle@example.com")
        assert resolved.pk == account.pk
        assert resolved.pk != placeholder.pk

    def test_merged_placeholder_resolves_to_account(self):
        placeholder = resolve_identity("aunt@example.com")
        account = User.objects.create_user(
            username="aunt", email="aunt.personal@example.com", password="x"
        )
        profile = placeholder.profile
        profile.merged_into = account
        profile.save()

        assert resolve_identity("aunt@example.com").pk == account.pk

    def test_blank_email_is_rejected(self):
        with pytest.raises(ValueError):
            resolve_identity("   ")

    def test_find_identity_returns_none_for_unknown(self):
        assert find_identity("nobody@example.com") is None


@pytest.mark.django_db
class TestUserProfile:
    def test_profile_created_automatically(self):
        user = User.objects.create_user(username="someone", email="someone@example.com")
        assert hasattr(user, "profile")
        assert user.profile.storage_key is not None
        assert not user.profile.is_placeholder

    def test_storage_keys_are_unique(self):
        a = User.objects.create_user(username="a")
        b = User.objects.create_user(username="b")
        assert a.profile.storage_key != b.profile.storage_key

    def test_placeholder_has_no_own_name_until_completed(self):
        user = resolve_identity("nana@example.com")
        profile = user.profile
        profile.display_name = "Nana"
        profile.save()

        assert profile.own_name() == ""

        profile.complete()
        assert profile.own_name() == "Nana"

    def test_complete_does_not_overwrite_existing_name(self):
        user = User.objects.create_user(username="named")
        profile = user.profile
        profile.complete("First Name")
        profile.complete("Second Name")

        profile.refresh_from_db()
        assert profile.display_name == "First Name"
        assert profile.is_completed

    def test_account_falls_back_to_full_name(self):
        user = User.objects.create_user(
            username="full", first_name="Grace", last_name="Hopper"
        )
        assert user.profile.own_name() == "Grace Hopper"
