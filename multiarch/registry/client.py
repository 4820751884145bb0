"""Registry client backed by the Docker CLI.

This module handles:
- Registry login with opaque credentials
- Publishing a manifest list under every tag in one `imagetools create` call
- Reading a published manifest list back with `imagetools inspect --raw`
"""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
from collections.abc import Sequence
from typing import Protocol

from multiarch.errors import RegistryFailureError
from multiarch.registry.models import (
    DEFAULT_REGISTRY,
    ManifestList,
    parse_manifest_list,
    parse_repository,
)

logger = logging.getLogger(__name__)


class ManifestReader(Protocol):
    """Reads a published manifest list."""

    def inspect(self, reference: str) -> ManifestList: ...


class RegistryClient(ManifestReader, Protocol):
    """Pushes manifest lists and manages tags in a registry."""

    def login(self, registry: str, username: str, password: str) -> None: ...

    def publish_manifest_list(
        self,
        repository: str,
        digests: Sequence[str],
        tags: Sequence[str],
    ) -> None: ...


def compose_create_command(
    repository: str,
    digests: Sequence[str],
    tags: Sequence[str],
    docker_bin: str = "docker",
) -> list[str]:
    """Compose the `imagetools create` command publishing every tag at once.

    Args:
        repository: Target repository coordinate.
        digests: Platform image digests to join.
        tags: Tags the manifest list is published under.
        docker_bin: Docker CLI executable.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [docker_bin, "buildx", "imagetools", "create"]
    for tag in tags:
        cmd.extend(["-t", f"{repository}:{tag}"])
    cmd.extend(f"{repository}@{digest}" for digest in digests)
    return cmd


def compose_inspect_command(reference: str, docker_bin: str = "docker") -> list[str]:
    """Compose the `imagetools inspect --raw` command."""
    return [docker_bin, "buildx", "imagetools", "inspect", "--raw", reference]


def registry_host(repository: str) -> str:
    """Return the registry host to log in to for a repository."""
    registry = parse_repository(repository).registry
    # docker login treats an empty server as Docker Hub
    return "" if registry == DEFAULT_REGISTRY else registry


class BuildxRegistryClient:
    """RegistryClient implemented with `docker login` and `buildx imagetools`."""

    def __init__(self, docker_bin: str = "docker") -> None:
        self.docker_bin = docker_bin

    def login(self, registry: str, username: str, password: str) -> None:
        """Log in to a registry, passing the password on stdin.

        Raises:
            RegistryFailureError: If login fails.
        """
        cmd = [self.docker_bin, "login", "--username", username, "--password-stdin"]
        if registry:
            cmd.append(registry)
        logger.info("Logging in to %s as %s", registry or DEFAULT_REGISTRY, username)
        try:
            subprocess.run(
                cmd,
                input=password,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise RegistryFailureError(
                f"Login to {registry or DEFAULT_REGISTRY} failed: {e.stderr.strip()}"
            ) from e
        except OSError as e:
            raise RegistryFailureError(f"Failed to run docker login: {e}") from e

    def publish_manifest_list(
        self,
        repository: str,
        digests: Sequence[str],
        tags: Sequence[str],
    ) -> None:
        """Create the manifest list and point every tag at it in one call.

        Raises:
            RegistryFailureError: If the registry call fails.
        """
        cmd = compose_create_command(repository, digests, tags, self.docker_bin)
        logger.info("Publishing manifest list: %s", shlex.join(cmd))
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise RegistryFailureError(
                f"Publishing {repository} failed with exit code "
                f"{e.returncode}: {e.stderr.strip()}"
            ) from e
        except OSError as e:
            raise RegistryFailureError(f"Failed to run imagetools create: {e}") from e

    def inspect(self, reference: str) -> ManifestList:
        """Read a manifest list back from the registry.

        Raises:
            RegistryFailureError: If the read fails or is not a manifest list.
        """
        cmd = compose_inspect_command(reference, self.docker_bin)
        logger.debug("Inspecting %s", reference)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise RegistryFailureError(
                f"Inspecting {reference} failed: {e.stderr.strip()}"
            ) from e
        except OSError as e:
            raise RegistryFailureError(f"Failed to run imagetools inspect: {e}") from e

        try:
            document = json.loads(result.stdout)
            return parse_manifest_list(reference, document)
        except (json.JSONDecodeError, ValueError) as e:
            raise RegistryFailureError(
                f"Unexpected manifest for {reference}: {e}"
            ) from e


__all__ = [
    "BuildxRegistryClient",
    "ManifestReader",
    "RegistryClient",
    "compose_create_command",
    "compose_inspect_command",
    "registry_host",
]
