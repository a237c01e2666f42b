"""Shared fixtures for proxy tests."""

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from finproxy.app.core.config import Settings
from finproxy.app.main import create_app


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(_env_file=None, **overrides)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings(finnhub_token="server-token", alpha_vantage_key="av-key")


@pytest.fixture
def client(test_settings: Settings) -> Iterator[TestClient]:
    """TestClient with the lifespan running, so app.state is populated."""
    with TestClient(create_app(test_settings)) as test_client:
        yield test_client
