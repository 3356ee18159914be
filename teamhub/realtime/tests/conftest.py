import pytest

from .fakes import build_test_hub


@pytest.fixture
def hub():
    return build_test_hub()


@pytest.fixture
def transport(hub):
    return hub.broadcaster.transport
