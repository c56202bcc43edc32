"""Configuration management for the registry proxy."""

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

import yaml


class RegistryBackend(str, Enum):
    """Upstream registries the proxy can pull from."""
    DOCKER = "docker"
    GHCR = "ghcr"


@dataclass(frozen=True)
class RegistryConfig:
    """Static description of an upstream registry."""
    name: str
    base_url: str
    auth_url: str
    service: str


REGISTRY_BACKENDS: dict[RegistryBackend, RegistryConfig] = {
    RegistryBackend.GHCR: RegistryConfig(
        name="GitHub Container Registry",
        base_url="https://ghcr.io",
        auth_url="https://ghcr.io/token",
        service="ghcr.io",
    ),
    RegistryBackend.DOCKER: RegistryConfig(
        name="Docker Hub",
        base_url="https://registry-1.docker.io",
        auth_url="https://auth.docker.io/token",
        service="registry.docker.io",
    ),
}

DEFAULT_OWNER = "dipakparmar"

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_INTERVAL_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_interval(value: str) -> timedelta:
    """Parse an interval string such as ``30s``, ``5m``, ``1h`` or ``1d``."""
    match = _INTERVAL_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid interval: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_INTERVAL_UNITS[unit]: int(amount)})


def get_registry_config(registry: RegistryBackend) -> RegistryConfig:
    """Look up the static configuration for a registry backend."""
    return REGISTRY_BACKENDS[registry]


@dataclass
class ProxyConfig:
    """Upstream proxying configuration."""
    owner: str = DEFAULT_OWNER
    default_registry: RegistryBackend = RegistryBackend.DOCKER
    user_agent: str = "crproxy/1.0.0"
    timeout: int = 30
    retries: int = 3
    retry_delay: float = 1.0


@dataclass
class CacheConfig:
    """Response cache configuration for catalog listings."""
    ttl: str = "1h"
    stale_ttl: str = "24h"

    @property
    def ttl_seconds(self) -> float:
        return parse_interval(self.ttl).total_seconds()

    @property
    def stale_ttl_seconds(self) -> float:
        return parse_interval(self.stale_ttl).total_seconds()


@dataclass
class GitHubConfig:
    """GitHub API access used only for listing GHCR packages."""
    token: str = ""
    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"


@dataclass
class Config:
    """Main application configuration."""
    # Server
    host: str = "0.0.0.0"
    port: int = 5050
    debug: bool = False
    workers: int = 4

    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config = cls()

        # Server config
        config.host = os.getenv("HOST", config.host)
        config.port = int(os.getenv("PORT", config.port))
        config.debug = os.getenv("DEBUG", "false").lower() == "true"
        config.workers = int(os.getenv("WORKERS", config.workers))

        # Proxy config
        config.proxy.owner = os.getenv("REGISTRY_OWNER", config.proxy.owner)
        config.proxy.default_registry = _parse_registry(
            os.getenv("DEFAULT_REGISTRY", config.proxy.default_registry.value)
        )
        config.proxy.user_agent = os.getenv("USER_AGENT", config.proxy.user_agent)
        config.proxy.timeout = int(os.getenv("UPSTREAM_TIMEOUT", config.proxy.timeout))
        config.proxy.retries = int(os.getenv("UPSTREAM_RETRIES", config.proxy.retries))
        config.proxy.retry_delay = float(
            os.getenv("UPSTREAM_RETRY_DELAY", config.proxy.retry_delay)
        )

        # Cache config
        config.cache.ttl = os.getenv("CACHE_TTL", config.cache.ttl)
        config.cache.stale_ttl = os.getenv("CACHE_STALE_TTL", config.cache.stale_ttl)

        config.github.token = os.getenv("GITHUB_TOKEN", config.github.token)

        return config

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "server" in data:
            config.host = data["server"].get("host", config.host)
            config.port = data["server"].get("port", config.port)
            config.debug = data["server"].get("debug", config.debug)
            config.workers = data["server"].get("workers", config.workers)

        if "proxy" in data:
            proxy_data = data["proxy"]
            config.proxy = ProxyConfig(
                owner=proxy_data.get("owner", config.proxy.owner),
                default_registry=_parse_registry(
                    proxy_data.get("default_registry", config.proxy.default_registry.value)
                ),
                user_agent=proxy_data.get("user_agent", config.proxy.user_agent),
                timeout=proxy_data.get("timeout", config.proxy.timeout),
                retries=proxy_data.get("retries", config.proxy.retries),
                retry_delay=proxy_data.get("retry_delay", config.proxy.retry_delay),
            )

        if "cache" in data:
            cache_data = data["cache"]
            config.cache = CacheConfig(
                ttl=cache_data.get("ttl", config.cache.ttl),
                stale_ttl=cache_data.get("stale_ttl", config.cache.stale_ttl),
            )

        github_data = data.get("github", {})
        config.github.token = os.getenv(github_data.get("token_env", "GITHUB_TOKEN"), "")

        return config


def _parse_registry(value: str) -> RegistryBackend:
    try:
        return RegistryBackend(value)
    except ValueError:
        known = ", ".join(r.value for r in RegistryBackend)
        raise ValueError(f"Unknown registry {value!r} (expected one of: {known})") from None


def load_config() -> Config:
    """Load configuration from CONFIG_PATH if it exists, else from the environment."""
    config_path = os.getenv("CONFIG_PATH")
    if config_path and os.path.exists(config_path):
        return Config.from_yaml(config_path)
    return Config.from_env()
