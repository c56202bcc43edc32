"""Listings of the owner's published images on Docker Hub and GHCR.

Feeds the landing page. Results go through the response cache with
stale-while-revalidate semantics, and every method degrades to stale data
or an empty list instead of raising.
"""

import json
import logging
from typing import Any, Callable, Optional
from urllib.parse import quote

from crproxy.config import Config, GitHubConfig
from crproxy.proxy.cache import ResponseCache
from crproxy.proxy.upstream import RegistryFetcher
from crproxy.registry.errors import UpstreamError

logger = logging.getLogger(__name__)

DOCKER_HUB_API = "https://hub.docker.com/v2"


def _results(data: Any) -> list:
    """Docker Hub wraps listings in a paginated ``results`` envelope."""
    if isinstance(data, dict):
        return data.get("results") or []
    return []


def _as_list(data: Any) -> list:
    return data if isinstance(data, list) else []


class CatalogService:
    """Lists repositories, packages and tags published by the owner."""

    def __init__(
        self,
        fetcher: RegistryFetcher,
        owner: str,
        cache: Optional[ResponseCache] = None,
        github: Optional[GitHubConfig] = None,
    ):
        self.fetcher = fetcher
        self.owner = owner
        self.cache = cache or ResponseCache()
        self.github = github or GitHubConfig()

    @classmethod
    def from_config(cls, config: Config, fetcher: RegistryFetcher) -> "CatalogService":
        cache = ResponseCache(
            ttl=config.cache.ttl_seconds,
            stale_ttl=config.cache.stale_ttl_seconds,
        )
        return cls(fetcher, config.proxy.owner, cache, config.github)

    async def _cached_fetch(
        self,
        cache_key: str,
        url: str,
        headers: dict[str, str],
        extract: Callable[[Any], list],
        label: str,
    ) -> list:
        cached = self.cache.get(cache_key)
        if cached and not cached[1]:
            logger.debug(f"Cache hit for {cache_key}")
            return cached[0]

        try:
            response = await self.fetcher.fetch(url, headers=headers)
            if not response.ok:
                logger.error(f"Failed to fetch {label}: {response.status}")
            else:
                items = extract(json.loads(response.body))
                self.cache.set(cache_key, items)
                return items
        except (UpstreamError, ValueError) as e:
            logger.error(f"Failed to fetch {label}: {e}")

        if cached:
            logger.warning(f"Serving stale cache for {label}")
            return cached[0]
        return []

    def _docker_hub_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _github_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.github.token}",
            "X-GitHub-Api-Version": self.github.api_version,
        }

    async def fetch_dockerhub_repositories(self) -> list:
        """All Docker Hub repositories of the owner."""
        return await self._cached_fetch(
            f"dockerhub-repos:{self.owner}",
            f"{DOCKER_HUB_API}/repositories/{self.owner}?page_size=100",
            self._docker_hub_headers(),
            _results,
            "Docker Hub repos",
        )

    async def fetch_dockerhub_tags(self, repo_name: str) -> list:
        """Tags of one of the owner's Docker Hub repositories."""
        return await self._cached_fetch(
            f"dockerhub-tags:{self.owner}/{repo_name}",
            f"{DOCKER_HUB_API}/repositories/{self.owner}/{quote(repo_name)}/tags?page_size=100",
            self._docker_hub_headers(),
            _results,
            "Docker Hub tags",
        )

    async def fetch_ghcr_packages(self) -> list:
        """Container packages of the owner on GHCR. Needs a GitHub token."""
        if not self.github.token:
            logger.warning("GITHUB_TOKEN not set, skipping GHCR packages")
            return []

        return await self._cached_fetch(
            f"ghcr-packages:{self.owner}",
            f"{self.github.api_url}/users/{self.owner}/packages"
            "?package_type=container&per_page=100",
            self._github_headers(),
            _as_list,
            "GHCR packages",
        )

    async def fetch_ghcr_package_versions(self, package_name: str) -> list:
        """Versions (with their tags) of a GHCR container package."""
        if not self.github.token:
            logger.warning("GITHUB_TOKEN not set, skipping GHCR package versions")
            return []

        return await self._cached_fetch(
            f"ghcr-versions:{self.owner}/{package_name}",
            f"{self.github.api_url}/users/{self.owner}/packages/container/"
            f"{quote(package_name, safe='')}/versions?per_page=100",
            self._github_headers(),
            _as_list,
            "GHCR package versions",
        )
