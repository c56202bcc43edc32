"""OCI Distribution API routes.

Read-only subset of the Docker Registry v2 API, proxied to Docker Hub or
GHCR. Paths take an optional registry prefix:

    /v2/{registry?}/{image...}/manifests/{reference}
    /v2/{registry?}/{image...}/blobs/{digest}
    /v2/{registry?}/{image...}/tags/list
"""

import logging

from quart import Blueprint, Response, current_app, request

from crproxy.registry.errors import (
    API_VERSION,
    API_VERSION_HEADER,
    NameInvalid,
    RegistryError,
    Unsupported,
)
from crproxy.registry.paths import ParsedRegistryPath, parse_registry_path

logger = logging.getLogger(__name__)

registry_bp = Blueprint("registry", __name__)


@registry_bp.errorhandler(RegistryError)
async def handle_registry_error(error: RegistryError):
    return error.to_response()


def _parse(path: str) -> ParsedRegistryPath:
    config = current_app.config["CONFIG"]
    parsed = parse_registry_path(
        path.split("/"),
        owner=config.proxy.owner,
        default_registry=config.proxy.default_registry,
    )
    if parsed is None:
        raise NameInvalid()
    return parsed


# =============================================================================
# API Version Check
# =============================================================================


@registry_bp.route("/v2/", methods=["GET", "HEAD"])
async def api_version():
    """OCI Distribution API version check."""
    if request.method == "HEAD":
        return Response(None, status=200, headers={API_VERSION_HEADER: API_VERSION})
    return Response(
        "{}",
        status=200,
        content_type="application/json",
        headers={API_VERSION_HEADER: API_VERSION},
    )


# =============================================================================
# Proxied Operations
# =============================================================================


@registry_bp.route("/v2/<path:path>", methods=["GET", "HEAD"])
async def proxy_request(path: str):
    """Route a manifest, blob or tags request to the upstream registry."""
    parsed = _parse(path)
    proxy = current_app.config["REGISTRY_PROXY"]

    authorization = request.headers.get("Authorization")
    accept = request.headers.get("Accept")

    logger.debug(
        f"{request.method} {parsed.endpoint} {parsed.registry.value}:"
        f"{parsed.image_name} {parsed.reference}"
    )

    if parsed.endpoint == "manifests":
        if request.method == "HEAD":
            return await proxy.head_manifest(
                parsed.registry, parsed.image_name, parsed.reference, authorization, accept
            )
        return await proxy.proxy_manifest(
            parsed.registry, parsed.image_name, parsed.reference, authorization, accept
        )

    if parsed.endpoint == "blobs":
        return await proxy.get_blob_redirect(
            parsed.registry, parsed.image_name, parsed.reference, authorization
        )

    if request.method == "HEAD":
        raise Unsupported("HEAD not supported for this endpoint")
    if parsed.reference != "list":
        raise Unsupported("Unsupported tags operation")
    return await proxy.list_tags(parsed.registry, parsed.image_name, authorization)
