import pytest
from django.contrib.auth import get_user_model

User = get_user_model()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="alice",
        email="alice@example.com",
        password="AlicePass!123",  # noqa: S106
        display_name="Alice",
        avatar_url="https://example.com/alice.png",
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(
        username="bob",
        email="bob@example.com",
        password="BobPass!123",  # noqa: S106
    )
