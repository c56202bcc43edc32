"""Tests for registry path parsing."""

import pytest

from crproxy.config import RegistryBackend
from crproxy.registry.paths import build_backend_url, parse_registry_path


class TestParseRegistryPath:
    """Tests for parse_registry_path."""

    def test_explicit_ghcr(self):
        parsed = parse_registry_path(["ghcr", "myimage", "manifests", "latest"], owner="me")

        assert parsed.registry is RegistryBackend.GHCR
        assert parsed.image_name == "me/myimage"
        assert parsed.endpoint == "manifests"
        assert parsed.reference == "latest"

    def test_explicit_docker_blob(self):
        parsed = parse_registry_path(["docker", "myimage", "blobs", "sha256:abc"], owner="me")

        assert parsed.registry is RegistryBackend.DOCKER
        assert parsed.image_name == "me/myimage"
        assert parsed.endpoint == "blobs"
        assert parsed.reference == "sha256:abc"

    def test_default_registry(self):
        parsed = parse_registry_path(
            ["myimage", "tags", "list"],
            owner="me",
            default_registry=RegistryBackend.GHCR,
        )

        assert parsed.registry is RegistryBackend.GHCR
        assert parsed.image_name == "me/myimage"
        assert parsed.endpoint == "tags"
        assert parsed.reference == "list"

    def test_nested_image_name(self):
        parsed = parse_registry_path(["ghcr", "tools", "cli", "manifests", "v1"], owner="me")

        assert parsed.image_name == "me/tools/cli"

    @pytest.mark.parametrize(
        "segments",
        [
            ["otherowner", "myimage", "manifests", "latest"],
            ["ghcr", "otherowner", "myimage", "manifests", "latest"],
            ["me", "myimage", "blobs", "sha256:abc"],
        ],
    )
    def test_owner_is_always_forced(self, segments):
        """A client-supplied namespace never replaces the configured owner."""
        parsed = parse_registry_path(segments, owner="me")

        assert parsed.image_name.startswith("me/")

    def test_first_endpoint_wins(self):
        parsed = parse_registry_path(["myimage", "manifests", "tags", "blobs"], owner="me")

        assert parsed.endpoint == "manifests"
        assert parsed.reference == "tags/blobs"

    @pytest.mark.parametrize(
        "segments",
        [
            [],
            ["foo"],
            ["foo", "manifests"],
            ["myimage", "latest", "other"],
            ["ghcr", "myimage", "uploads", "abc"],
            ["manifests", "latest", "x"],
            ["ghcr", "manifests", "latest"],
            ["myimage", "manifests", ""],
            ["docker", "myimage", "blobs"],
        ],
    )
    def test_invalid_paths(self, segments):
        assert parse_registry_path(segments) is None

    def test_no_case_normalisation(self):
        parsed = parse_registry_path(["MyImage", "manifests", "Latest"], owner="me")

        assert parsed.image_name == "me/MyImage"
        assert parsed.reference == "Latest"


class TestBuildBackendUrl:
    def test_docker_url(self):
        url = build_backend_url(RegistryBackend.DOCKER, "me/app", "manifests", "latest")

        assert url == "https://registry-1.docker.io/v2/me/app/manifests/latest"

    def test_ghcr_url(self):
        url = build_backend_url(RegistryBackend.GHCR, "me/app", "tags", "list")

        assert url == "https://ghcr.io/v2/me/app/tags/list"
