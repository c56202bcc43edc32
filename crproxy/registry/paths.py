"""Parsing of OCI Distribution API paths into upstream coordinates."""

from dataclasses import dataclass
from typing import Optional, Sequence

from crproxy.config import (
    DEFAULT_OWNER,
    RegistryBackend,
    get_registry_config,
)

ENDPOINTS = ("manifests", "blobs", "tags")
REGISTRY_KEYS = frozenset(r.value for r in RegistryBackend)


@dataclass(frozen=True)
class ParsedRegistryPath:
    """Upstream coordinates derived from a ``/v2/...`` request path."""
    registry: RegistryBackend
    image_name: str  # always "<owner>/<image>"
    endpoint: str  # manifests, blobs or tags
    reference: str  # tag, digest, or "list" for tags


def parse_registry_path(
    segments: Sequence[str],
    owner: str = DEFAULT_OWNER,
    default_registry: RegistryBackend = RegistryBackend.DOCKER,
) -> Optional[ParsedRegistryPath]:
    """Parse the path segments following ``/v2/``.

    Supports formats:
    - ghcr/myimage/manifests/latest -> (ghcr, owner/myimage)
    - docker/myimage/blobs/sha256:abc -> (docker, owner/myimage)
    - myimage/manifests/latest -> (default registry, owner/myimage)

    The owner namespace is always replaced by ``owner``; this proxy only
    serves a single account's images.

    Returns:
        ParsedRegistryPath, or None if the path is not a valid registry path
    """
    if len(segments) < 3:
        return None

    registry = default_registry
    start = 0
    if segments[0] in REGISTRY_KEYS:
        registry = RegistryBackend(segments[0])
        start = 1

    endpoint_index = next(
        (i for i in range(start, len(segments)) if segments[i] in ENDPOINTS),
        None,
    )
    if endpoint_index is None or endpoint_index <= start:
        return None

    image_part = "/".join(segments[start:endpoint_index])
    reference = "/".join(segments[endpoint_index + 1:])
    if not image_part or not reference:
        return None

    return ParsedRegistryPath(
        registry=registry,
        image_name=f"{owner}/{image_part}",
        endpoint=segments[endpoint_index],
        reference=reference,
    )


def build_backend_url(
    registry: RegistryBackend, image_name: str, endpoint: str, reference: str
) -> str:
    """Build the upstream URL for a registry request."""
    config = get_registry_config(registry)
    return f"{config.base_url}/v2/{image_name}/{endpoint}/{reference}"
