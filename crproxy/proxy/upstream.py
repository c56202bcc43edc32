"""Upstream registry HTTP client.

All calls to Docker Hub, GHCR and their token issuers go through
RegistryFetcher, which bounds each attempt with a timeout and retries
502/503/504 responses and network failures with exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

import aiohttp
from aiohttp_retry import ExponentialRetry, RetryClient
from multidict import CIMultiDict, CIMultiDictProxy

from crproxy.registry.errors import UpstreamError

logger = logging.getLogger(__name__)

RETRY_STATUSES = {502, 503, 504}

MANIFEST_MEDIA_TYPES = (
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
    "*/*",
)

# Request headers a client may influence on the upstream call
FORWARDED_REQUEST_HEADERS = ("Accept", "Authorization")


@dataclass(frozen=True)
class UpstreamResponse:
    """Materialised upstream response."""
    status: int
    headers: CIMultiDictProxy = field(default_factory=lambda: CIMultiDictProxy(CIMultiDict()))
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class BackoffRetry(ExponentialRetry):
    """Exponential retry waiting ``start_timeout * factor**n`` after the n-th failure.

    aiohttp_retry numbers attempts from 1, so the first wait is
    ``start_timeout`` rather than ``start_timeout * factor``.
    """

    def get_timeout(self, attempt: int, response: Optional[aiohttp.ClientResponse] = None) -> float:
        return min(self._start_timeout * (self._factor ** (attempt - 1)), self._max_timeout)


def copy_headers(source: Mapping[str, str], names: Iterable[str]) -> dict[str, str]:
    """Copy the allow-listed, non-empty headers from source."""
    copied = {}
    for name in names:
        value = source.get(name)
        if value:
            copied[name] = value
    return copied


def build_request_headers(
    user_agent: str,
    accept: Optional[str] = None,
    authorization: Optional[str] = None,
) -> dict[str, str]:
    """Build outbound headers from the allow-listed client values."""
    headers = {"User-Agent": user_agent}
    headers.update(
        copy_headers(
            {"Accept": accept or "", "Authorization": authorization or ""},
            FORWARDED_REQUEST_HEADERS,
        )
    )
    return headers


class RegistryFetcher:
    """Resilient HTTP client for upstream registries."""

    def __init__(
        self,
        user_agent: str = "crproxy/1.0.0",
        timeout: int = 30,
        retries: int = 3,
        retry_delay: float = 1.0,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self.user_agent = user_agent
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.retries = retries
        self.retry_delay = retry_delay
        self._session_factory = session_factory

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session_factory is not None:
            return self._session_factory()
        return aiohttp.ClientSession(connector=aiohttp.TCPConnector(limit=10))

    def _retry_options(self, attempts: int) -> BackoffRetry:
        return BackoffRetry(
            attempts=attempts,
            start_timeout=self.retry_delay,
            max_timeout=self.retry_delay * 2 ** max(attempts, 1),
            factor=2.0,
            statuses=RETRY_STATUSES,
            exceptions={aiohttp.ClientError, asyncio.TimeoutError},
            retry_all_server_errors=False,
        )

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        allow_redirects: bool = True,
        read_body: bool = True,
        retries: Optional[int] = None,
    ) -> UpstreamResponse:
        """Fetch url, retrying 502/503/504 and network failures.

        When every attempt answers 502/503/504 the last response is
        returned. Any other status, 401 included, is returned immediately.

        Args:
            url: Upstream URL
            method: HTTP method
            headers: Request headers
            allow_redirects: Follow redirects (False to capture a Location)
            read_body: Read the response body; never set for blob downloads
            retries: Attempts to make, defaults to the configured count

        Raises:
            UpstreamError: if the last attempt failed with a network error or timeout
        """
        attempts = retries if retries is not None else self.retries
        headers = dict(headers or {})
        headers.setdefault("User-Agent", self.user_agent)

        async with RetryClient(
            client_session=self._get_session(),
            logger=logger,
            retry_options=self._retry_options(attempts),
            raise_for_status=False,
        ) as client:
            try:
                async with client.request(
                    method,
                    url,
                    headers=headers,
                    allow_redirects=allow_redirects,
                    timeout=self.timeout,
                ) as response:
                    body = b""
                    if read_body and method != "HEAD":
                        body = await response.read()
                    status = response.status
                    response_headers = CIMultiDict(response.headers)
            except asyncio.TimeoutError as e:
                logger.warning(f"Registry request timed out after {attempts} attempts: {method} {url}")
                raise UpstreamError(f"Timed out fetching {url}") from e
            except aiohttp.ClientError as e:
                logger.warning(f"Registry request failed after {attempts} attempts: {method} {url}: {e}")
                raise UpstreamError(f"Failed to fetch {url}: {e}") from e

        if status in RETRY_STATUSES:
            logger.warning(f"Registry returned {status} after {attempts} attempts: {url}")

        return UpstreamResponse(status=status, headers=CIMultiDictProxy(response_headers), body=body)
