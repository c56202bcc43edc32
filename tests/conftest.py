"""Pytest configuration and fixtures for registry proxy tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from multidict import CIMultiDict, CIMultiDictProxy

from crproxy import create_app
from crproxy.catalog import CatalogService
from crproxy.config import (
    CacheConfig,
    Config,
    GitHubConfig,
    ProxyConfig,
    RegistryBackend,
)
from crproxy.proxy import ProxyHandler
from crproxy.proxy.cache import ResponseCache, TokenCache
from crproxy.proxy.tokens import TokenProvider
from crproxy.proxy.upstream import RegistryFetcher, UpstreamResponse


class FakeClock:
    """Deterministic clock for cache tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_config() -> Config:
    """Create test configuration."""
    return Config(
        port=5050,
        debug=True,
        proxy=ProxyConfig(
            owner="testowner",
            default_registry=RegistryBackend.DOCKER,
            user_agent="crproxy-test/1.0",
            timeout=30,
            retries=3,
            retry_delay=1.0,
        ),
        cache=CacheConfig(ttl="1h", stale_ttl="24h"),
        github=GitHubConfig(token="gh-test-token"),
    )


@pytest.fixture
def make_upstream():
    """Build an UpstreamResponse from plain values."""
    def _make(status: int, headers: dict | None = None, body: bytes = b"") -> UpstreamResponse:
        return UpstreamResponse(
            status=status,
            headers=CIMultiDictProxy(CIMultiDict(headers or {})),
            body=body,
        )
    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_fetcher():
    """Create mock upstream fetcher."""
    fetcher = MagicMock(spec=RegistryFetcher)
    fetcher.user_agent = "crproxy-test/1.0"
    fetcher.fetch = AsyncMock()
    return fetcher


@pytest.fixture
def token_cache(clock) -> TokenCache:
    return TokenCache(clock=clock)


@pytest.fixture
def proxy_handler(mock_fetcher, token_cache) -> ProxyHandler:
    return ProxyHandler(mock_fetcher, TokenProvider(mock_fetcher, token_cache))


@pytest.fixture
def catalog(mock_fetcher, test_config, clock) -> CatalogService:
    return CatalogService(
        mock_fetcher,
        test_config.proxy.owner,
        ResponseCache(ttl=3600, stale_ttl=24 * 3600, clock=clock),
        test_config.github,
    )


@pytest.fixture
def app(test_config, proxy_handler, catalog):
    """Create test application."""
    return create_app(test_config, proxy=proxy_handler, catalog=catalog)


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()
