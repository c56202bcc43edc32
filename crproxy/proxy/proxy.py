"""Registry protocol handlers.

Each handler makes the same two-phase call to the upstream registry:
first with the client's own Authorization header (if any), then, when
the upstream answers 401 and the client sent no credentials, once more
with an anonymous pull token. A remaining 401 becomes a bearer challenge
pointing at the upstream token issuer.
"""

import logging
from typing import Optional

from quart import Response

from crproxy.config import Config, RegistryBackend
from crproxy.proxy.cache import TokenCache
from crproxy.proxy.tokens import TokenProvider
from crproxy.proxy.upstream import (
    MANIFEST_MEDIA_TYPES,
    RETRY_STATUSES,
    RegistryFetcher,
    UpstreamResponse,
    build_request_headers,
    copy_headers,
)
from crproxy.registry.errors import (
    API_VERSION,
    API_VERSION_HEADER,
    BLOB_UNKNOWN,
    MANIFEST_UNKNOWN,
    NAME_UNKNOWN,
    UpstreamError,
    auth_challenge,
    registry_error,
)
from crproxy.registry.paths import build_backend_url

logger = logging.getLogger(__name__)

MANIFEST_RESPONSE_HEADERS = ("Content-Type", "Docker-Content-Digest", "Content-Length", "ETag")

REDIRECT_STATUSES = {302, 307}


class ProxyHandler:
    """Proxies manifest, blob and tag requests to upstream registries."""

    def __init__(self, fetcher: RegistryFetcher, tokens: Optional[TokenProvider] = None):
        self.fetcher = fetcher
        self.tokens = tokens or TokenProvider(fetcher)

    @classmethod
    def from_config(cls, config: Config) -> "ProxyHandler":
        fetcher = RegistryFetcher(
            user_agent=config.proxy.user_agent,
            timeout=config.proxy.timeout,
            retries=config.proxy.retries,
            retry_delay=config.proxy.retry_delay,
        )
        return cls(fetcher, TokenProvider(fetcher, TokenCache()))

    async def _fetch_with_auth(
        self,
        registry: RegistryBackend,
        image_name: str,
        url: str,
        authorization: Optional[str],
        method: str = "GET",
        accept: Optional[str] = None,
        allow_redirects: bool = True,
        read_body: bool = True,
    ) -> UpstreamResponse:
        """Fetch url, retrying once with an anonymous token on an unauthenticated 401."""

        async def attempt(auth: Optional[str]) -> UpstreamResponse:
            return await self.fetcher.fetch(
                url,
                method=method,
                headers=build_request_headers(self.fetcher.user_agent, accept, auth),
                allow_redirects=allow_redirects,
                read_body=read_body,
            )

        response = await attempt(authorization)

        if response.status == 401 and not authorization:
            token = await self.tokens.fetch_anonymous_token(registry, image_name)
            if token:
                response = await attempt(f"Bearer {token}")

        return response

    def _manifest_headers(self, response: UpstreamResponse) -> dict[str, str]:
        headers = copy_headers(response.headers, MANIFEST_RESPONSE_HEADERS)
        headers[API_VERSION_HEADER] = API_VERSION
        return headers

    async def proxy_manifest(
        self,
        registry: RegistryBackend,
        image_name: str,
        reference: str,
        authorization: Optional[str] = None,
        accept: Optional[str] = None,
    ) -> Response:
        """GET a manifest and pass its bytes through unmodified."""
        url = build_backend_url(registry, image_name, "manifests", reference)

        try:
            upstream = await self._fetch_with_auth(
                registry, image_name, url, authorization,
                accept=accept or ", ".join(MANIFEST_MEDIA_TYPES),
            )
        except UpstreamError as e:
            logger.error(f"Failed to proxy manifest {image_name}:{reference}: {e}")
            return registry_error(
                MANIFEST_UNKNOWN, "failed to fetch manifest from upstream", 502
            )

        if upstream.status in RETRY_STATUSES:
            return registry_error(
                MANIFEST_UNKNOWN, "failed to fetch manifest from upstream", 502
            )

        if upstream.status == 401:
            return auth_challenge(registry, image_name)
        if upstream.status == 404:
            return registry_error(MANIFEST_UNKNOWN, "manifest unknown", 404)

        response = Response(upstream.body, status=upstream.status)
        response.headers.update(self._manifest_headers(upstream))
        return response

    async def head_manifest(
        self,
        registry: RegistryBackend,
        image_name: str,
        reference: str,
        authorization: Optional[str] = None,
        accept: Optional[str] = None,
    ) -> Response:
        """HEAD a manifest; Docker checks existence and digest before pulling."""
        url = build_backend_url(registry, image_name, "manifests", reference)

        try:
            upstream = await self._fetch_with_auth(
                registry, image_name, url, authorization,
                method="HEAD",
                accept=accept or ", ".join(MANIFEST_MEDIA_TYPES),
            )
        except UpstreamError as e:
            logger.error(f"Failed to HEAD manifest {image_name}:{reference}: {e}")
            return registry_error(
                MANIFEST_UNKNOWN, "failed to check manifest from upstream", 502
            )

        if upstream.status in RETRY_STATUSES:
            return registry_error(
                MANIFEST_UNKNOWN, "failed to check manifest from upstream", 502
            )

        if upstream.status == 401:
            return auth_challenge(registry, image_name)
        if upstream.status == 404:
            return registry_error(MANIFEST_UNKNOWN, "manifest unknown", 404)

        response = Response(None, status=upstream.status)
        # set after construction so the empty body does not reset Content-Length
        response.headers.update(self._manifest_headers(upstream))
        return response

    async def get_blob_redirect(
        self,
        registry: RegistryBackend,
        image_name: str,
        digest: str,
        authorization: Optional[str] = None,
    ) -> Response:
        """Redirect the client to the upstream's signed blob URL.

        Uses GET without following redirects: Docker Hub only hands out the
        signed storage URL on GET, not HEAD. Blob bytes never pass through
        this service.
        """
        url = build_backend_url(registry, image_name, "blobs", digest)

        try:
            upstream = await self._fetch_with_auth(
                registry, image_name, url, authorization,
                allow_redirects=False,
                read_body=False,
            )
        except UpstreamError as e:
            logger.error(f"Failed to get blob redirect {image_name}@{digest}: {e}")
            return registry_error(BLOB_UNKNOWN, "failed to fetch blob from upstream", 502)

        if upstream.status in RETRY_STATUSES:
            return registry_error(BLOB_UNKNOWN, "failed to fetch blob from upstream", 502)

        if upstream.status == 401:
            return auth_challenge(registry, image_name)
        if upstream.status == 404:
            return registry_error(BLOB_UNKNOWN, "blob unknown to registry", 404)

        location = upstream.headers.get("Location")
        if upstream.status in REDIRECT_STATUSES and location:
            return Response(
                None,
                status=307,
                headers={"Location": location, API_VERSION_HEADER: API_VERSION},
            )

        # TODO: no configured backend is known to answer a blob GET without a
        # redirect; decide whether this should stream the body or fail with 502.
        logger.warning(
            f"Unexpected {upstream.status} without redirect for blob {image_name}@{digest}"
        )
        headers = copy_headers(upstream.headers, ("Docker-Content-Digest",))
        headers[API_VERSION_HEADER] = API_VERSION
        return Response(None, status=200, headers=headers)

    async def list_tags(
        self,
        registry: RegistryBackend,
        image_name: str,
        authorization: Optional[str] = None,
    ) -> Response:
        """List tags; the upstream JSON is passed through as-is."""
        url = build_backend_url(registry, image_name, "tags", "list")

        try:
            upstream = await self._fetch_with_auth(
                registry, image_name, url, authorization,
                accept="application/json",
            )
        except UpstreamError as e:
            logger.error(f"Failed to list tags for {image_name}: {e}")
            return registry_error(NAME_UNKNOWN, "failed to list tags from upstream", 502)

        if upstream.status in RETRY_STATUSES:
            return registry_error(NAME_UNKNOWN, "failed to list tags from upstream", 502)

        if upstream.status == 401:
            return auth_challenge(registry, image_name)
        if upstream.status == 404:
            return registry_error(NAME_UNKNOWN, "repository name not known", 404)

        return Response(
            upstream.body,
            status=upstream.status,
            content_type="application/json",
            headers={API_VERSION_HEADER: API_VERSION},
        )
