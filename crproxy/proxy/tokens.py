"""Anonymous bearer tokens for public image pulls."""

import json
import logging
from typing import Optional
from urllib.parse import urlencode

from crproxy.config import RegistryBackend, get_registry_config
from crproxy.proxy.cache import TokenCache
from crproxy.proxy.upstream import RegistryFetcher
from crproxy.registry.errors import UpstreamError

logger = logging.getLogger(__name__)


def token_scope(image_name: str, actions: str = "pull") -> str:
    return f"repository:{image_name}:{actions}"


class TokenProvider:
    """Fetches and caches anonymous tokens from registry token issuers."""

    def __init__(self, fetcher: RegistryFetcher, cache: Optional[TokenCache] = None):
        self.fetcher = fetcher
        self.cache = cache or TokenCache()

    async def fetch_anonymous_token(
        self, registry: RegistryBackend, image_name: str, actions: str = "pull"
    ) -> Optional[str]:
        """Get an anonymous token for a repository scope.

        Best effort: returns None when the issuer refuses or cannot be
        reached, so callers can carry on without bearer auth.
        """
        config = get_registry_config(registry)
        scope = token_scope(image_name, actions)
        cache_key = f"{registry.value}:{scope}"

        cached = self.cache.get(cache_key)
        if cached:
            logger.debug(f"Token cache hit for {cache_key}")
            return cached

        url = f"{config.auth_url}?{urlencode({'service': config.service, 'scope': scope})}"
        try:
            response = await self.fetcher.fetch(url)
        except UpstreamError as e:
            logger.warning(f"Error fetching anonymous token for {cache_key}: {e}")
            return None

        if not response.ok:
            logger.warning(f"Failed to fetch anonymous token for {cache_key}: {response.status}")
            return None

        try:
            data = json.loads(response.body)
        except ValueError as e:
            logger.warning(f"Invalid token response for {cache_key}: {e}")
            return None
        if not isinstance(data, dict):
            return None

        token = data.get("token") or data.get("access_token")
        if not token:
            return None

        expires_in = data.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = float(expires_in)
            except (TypeError, ValueError):
                logger.warning(f"Invalid expires_in {expires_in!r} for {cache_key}")
                return None

        self.cache.set(cache_key, token, expires_in)
        return token
