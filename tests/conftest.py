import pytest

from engine.config.loader import ReconcilerConfig
from engine.runtime.session import ComparisonSession


@pytest.fixture
def config():
    return ReconcilerConfig()


@pytest.fixture
def session(config):
    return ComparisonSession(config)
