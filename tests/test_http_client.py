import pytest

from finproxy.app.core.config import Settings
from finproxy.app.core.http_client import create_upstream_client, upstream_client


def test_upstream_client_uses_settings() -> None:
    config = Settings(_env_file=None, httpx_connect_timeout=2.5, upstream_user_agent="Test/1.0")

    client = create_upstream_client(config)

    assert client.follow_redirects is False
    assert client.timeout.connect == 2.5
    assert client.headers["user-agent"] == "Test/1.0"


@pytest.mark.asyncio
async def test_upstream_client_closed_after_lifespan() -> None:
    async with upstream_client(Settings(_env_file=None)) as client:
        assert client.is_closed is False

    assert client.is_closed is True
