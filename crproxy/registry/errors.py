"""OCI Distribution error responses and auth challenges."""

import json
from typing import Optional

from quart import Response

from crproxy.config import RegistryBackend, get_registry_config

API_VERSION_HEADER = "Docker-Distribution-API-Version"
API_VERSION = "registry/2.0"

# Error codes used by this proxy
NAME_INVALID = "NAME_INVALID"
UNSUPPORTED = "UNSUPPORTED"
MANIFEST_UNKNOWN = "MANIFEST_UNKNOWN"
BLOB_UNKNOWN = "BLOB_UNKNOWN"
NAME_UNKNOWN = "NAME_UNKNOWN"


class RegistryError(Exception):
    """An error that is reported to the client as an OCI error envelope."""

    status = 400

    def __init__(self, code: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        if status is not None:
            self.status = status

    def to_response(self) -> Response:
        return registry_error(self.code, self.message, self.status)


class NameInvalid(RegistryError):
    def __init__(self, message: str = "Invalid repository name or path"):
        super().__init__(NAME_INVALID, message, 400)


class Unsupported(RegistryError):
    def __init__(self, message: str = "Endpoint not supported"):
        super().__init__(UNSUPPORTED, message, 400)


class UpstreamError(Exception):
    """Upstream registry could not be reached after all retries."""


def registry_error(code: str, message: str, status: int) -> Response:
    """Create an OCI-compliant error response."""
    body = {"errors": [{"code": code, "message": message, "detail": None}]}
    return Response(
        json.dumps(body, separators=(",", ":")),
        status=status,
        content_type="application/json",
        headers={API_VERSION_HEADER: API_VERSION},
    )


def build_authenticate_header(
    registry: RegistryBackend, image_name: str, actions: str = "pull"
) -> str:
    """Build the WWW-Authenticate bearer challenge for a repository."""
    config = get_registry_config(registry)
    scope = f"repository:{image_name}:{actions}"
    return f'Bearer realm="{config.auth_url}",service="{config.service}",scope="{scope}"'


def auth_challenge(registry: RegistryBackend, image_name: str) -> Response:
    """401 response telling the client where to obtain a token."""
    return Response(
        None,
        status=401,
        headers={
            "WWW-Authenticate": build_authenticate_header(registry, image_name),
            API_VERSION_HEADER: API_VERSION,
        },
    )
