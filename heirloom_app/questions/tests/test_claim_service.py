from django.contrib.auth import get_user_model
import pytest

from heirloom_app.core.identity import display_name
from heirloom_app.core.models import ExternalLogin, Relationship, UserProfile
from heirloom_app.questions.errors import ClaimConflict, InvalidToken
from heirloom_app.questions.services import ClaimService, DispatchService

User = get_user_model()


@pytest.fixture
def recipient(question_set, asker):
    return DispatchService.create_request(
        question_set, asker, [{"email": "grandma@example.com"}]
    ).recipients[0].recipient


@pytest.fixture
def placeholder(recipient):
    return recipient.respondent


@pytest.fixture
def account(db):
    return User.objects.create_user(username="grandma-account", email="nan@example.org")


@pytest.mark.django_db
class TestSelfClaim:
    def test_placeholder_becomes_full_account(self, recipient, placeholder, asker):
        result = ClaimService.claim(
            recipient.token, placeholder, profile_data={"display_name": "Grandma Jo"}
        )

        profile = UserProfile.objects.get(user=placeholder)
        assert not profile.is_placeholder
        assert profile.claimed_at is not None
        assert profile.display_name == "Grandma Jo"
        assert not result.linked_account
        assert result.relationship_created
        assert Relationship.between(asker, placeholder) is not None

        recipient.refresh_from_db()
        assert recipient.claimed_by_id == placeholder.pk
        assert recipient.respondent_id == placeholder.pk

    def test_claiming_twice_is_idempotent(self, recipient, placeholder):
        ClaimService.claim(recipient.token, placeholder)
        again = ClaimService.claim(recipient.token, placeholder)

        assert again.already_claimed
        assert not again.relationship_created
        assert Relationship.objects.count() == 1


@pytest.mark.django_db
class TestLinkedAccount:
    def test_other_account_is_recorded_without_rebinding(
        self, recipient, placeholder, account, asker
    ):
        result = ClaimService.claim(recipient.token, account)

        assert result.linked_account
        assert result.identity.pk == placeholder.pk
        recipient.refresh_from_db()
        assert recipient.respondent_id == placeholder.pk
        assert recipient.claimed_by_id == account.pk
        assert UserProfile.objects.get(user=placeholder).merged_into_id == account.pk
        assert Relationship.between(asker, account) is not None

    def test_claimant_name_is_used_for_display(self, recipient, account):
        ClaimService.claim(
            recipient.token, account, profile_data={"display_name": "Nana"}
        )
        recipient.refresh_from_db()
        assert display_name(recipient) == "Nana"

    def test_existing_name_is_not_overwritten(self, recipient, account):
        UserProfile.get_or_create_for_user(account).complete("Josephine")
        ClaimService.claim(recipient.token, account, profile_data={"display_name": "Jo"})
        assert UserProfile.objects.get(user=account).display_name == "Josephine"

    def test_second_account_is_rejected(self, recipient, account):
        ClaimService.claim(recipient.token, account)
        intruder = User.objects.create_user(username="intruder")

        with pytest.raises(ClaimConflict):
            ClaimService.claim(recipient.token, intruder)

        recipient.refresh_from_db()
        assert recipient.claimed_by_id == account.pk

    def test_placeholder_claimed_elsewhere_blocks_other_links(
        self, recipient, placeholder, question_set, asker, account
    ):
        # Same person was sent a second set; the placeholder already became
        # an account through the first link.
        from heirloom_app.questions.services import CatalogService

        ClaimService.claim(recipient.token, account)
        other_set = CatalogService.create_set(asker, "Later", ["Anything else?"])
        second = DispatchService.create_request(
            other_set, asker, [{"email": "grandma@example.com"}]
        ).recipients[0].recipient
        assert second.respondent_id == account.pk

        intruder = User.objects.create_user(username="intruder")
        with pytest.raises(ClaimConflict):
            ClaimService.claim(second.token, intruder)

    def test_link_bound_to_real_account_rejects_others(
        self, question_set, asker, account
    ):
        bound = DispatchService.create_request(
            question_set, asker, [{"email": account.email}]
        ).recipients[0].recipient
        intruder = User.objects.create_user(username="intruder")

        with pytest.raises(ClaimConflict):
            ClaimService.claim(bound.token, intruder)

    def test_asker_claiming_own_link_creates_no_relationship(
        self, question_set, asker
    ):
        own = DispatchService.create_request(
            question_set, asker, [{"email": asker.email}]
        ).recipients[0].recipient

        result = ClaimService.claim(own.token, asker)

        assert result.relationship is None
        assert Relationship.objects.count() == 0


@pytest.mark.django_db
class TestExternalLogins:
    def test_provider_login_is_recorded(self, recipient, account):
        ClaimService.claim(
            recipient.token, account, provider="google", provider_user_id="g-123"
        )
        login = ExternalLogin.objects.get()
        assert login.user_id == account.pk
        assert login.email == account.email

    def test_provider_login_owned_by_someone_else(self, recipient, account):
        other = User.objects.create_user(username="other")
        ExternalLogin.objects.create(user=other, provider="google", provider_user_id="g-123")

        with pytest.raises(ClaimConflict):
            ClaimService.claim(
                recipient.token, account, provider="google", provider_user_id="g-123"
            )

        recipient.refresh_from_db()
        assert recipient.claimed_by_id is None
        assert Relationship.objects.count() == 0


@pytest.mark.django_db
def test_claim_with_deactivated_token(recipient, asker, account):
    DispatchService.deactivate_recipient(recipient, asker)
    with pytest.raises(InvalidToken):
        ClaimService.claim(recipient.token, account)
