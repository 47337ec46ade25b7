import pytest

TEST_PASSWORD = "test-pass"


@pytest.fixture
def asker(db, django_user_model):
    return django_user_model.objects.create_user(
        username="asker",
        email="asker@example.com",
        password=TEST_PASSWORD,
        first_name="Alice",
        last_name="Asker",
    )


@pytest.fixture
def question_set(asker):
    from heirloom_app.questions.services import CatalogService

    return CatalogService.create_set(
        asker,
        "Holiday Qs",
        ["What was your favourite holiday?", "Who came with you?"],
    )


@pytest.fixture
def media_storage(settings, tmp_path):
    """Point the media storage at a throwaway directory."""
    settings.MEDIA_ROOT = str(tmp_path)
    settings.STORAGES = {
        **settings.STORAGES,
        "media": {
            "BACKEND": "django.core.files.storage.FileSystemStorage",
            "OPTIONS": {"location": str(tmp_path), "base_url": "/media/"},
        },
    }
    return tmp_path


@pytest.fixture(autouse=True)
def clear_cache():
    """Rate limit counters live in the cache; start every test from zero."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
