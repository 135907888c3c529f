"""Pytest fixtures and shared test configuration.

Fixtures:
    - clean_env: Removes relay environment variables for every test
    - relay_config: Configuration with a test credential
    - provider: Fake OpenAI-compatible provider behind httpx.MockTransport
    - upstream_client: Real UpstreamClient wired to the fake provider
    - async_client: HTTPX client for the relay app
"""

from collections.abc import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from chat_relay.api.app import create_app
from chat_relay.relay.config import RelayConfig
from chat_relay.relay.upstream import UpstreamClient
from tests.provider_test_utils import UPSTREAM_BASE_URL, FakeProvider

RELAY_ENV_VARS = (
    "AI_GATEWAY_API_KEY",
    "LLM_API_KEY",
    "OPENAI_API_KEY",
    "AI_GATEWAY_BASE_URL",
    "LLM_BASE_URL",
    "AI_MODEL",
    "AI_FALLBACK_MODEL",
    "AI_BLOCKED_MODEL_PREFIXES",
    "UPSTREAM_CONNECT_TIMEOUT",
    "UPSTREAM_READ_TIMEOUT",
    "RELAY_STREAM_PROTOCOL",
    "RELAY_STRICT_CONFIG",
    "CORS_ORIGINS",
    "HOST",
    "PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of configuration defaults."""
    for name in RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def relay_config() -> RelayConfig:
    """Return configuration with a test credential and fake upstream URL."""
    return RelayConfig(
        api_key="sk-test-key",
        base_url=UPSTREAM_BASE_URL,
        default_model="gpt-4",
        fallback_model="gpt-4o-mini",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def upstream_client(
    relay_config: RelayConfig, provider: FakeProvider
) -> AsyncGenerator[UpstreamClient]:
    """Real UpstreamClient whose HTTP traffic goes to the fake provider."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    yield UpstreamClient(relay_config, http_client=http_client)
    await http_client.aclose()


@pytest.fixture
async def async_client(
    relay_config: RelayConfig, upstream_client: UpstreamClient
) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        Configured AsyncClient for making test requests.
    """
    app = create_app(relay_config, upstream_client)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
