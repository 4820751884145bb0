"""Build runner for executing per-platform image builds.

This module handles:
- Composing `docker buildx build` commands for one platform
- Executing builds with subprocess
- Capturing stdout/stderr to per-platform log files
- Reading the pushed image digest from the buildx metadata file

Builds push by digest only; tags are applied once, at merge time.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from multiarch.builds.digests import validate_digest
from multiarch.types import PlatformTarget

logger = logging.getLogger(__name__)

METADATA_DIGEST_KEY = "containerimage.digest"


class BuildExecutionError(Exception):
    """Raised when a platform build fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
        log_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code
        self.log_path = log_path


@dataclass(frozen=True)
class BuildContext:
    """Shared, read-only inputs handed to every platform build.

    Attributes:
        path: Build context directory (from the source checkout).
        dockerfile: Optional Dockerfile path.
        build_args: Build-time variables.
        cache_from: Cache import specs (e.g., 'type=gha').
        cache_to: Cache export specs (e.g., 'type=gha,mode=max').
    """

    path: Path
    dockerfile: Path | None = None
    build_args: dict[str, str] = field(default_factory=dict)
    cache_from: tuple[str, ...] = ()
    cache_to: tuple[str, ...] = ()


@dataclass
class BuildResult:
    """Result of a successful platform build.

    Attributes:
        platform: The platform that was built.
        digest: Content digest of the pushed image.
        log_path: Path to the build log file.
        started_at: Build start time.
        finished_at: Build finish time.
        command: The command that was executed.
    """

    platform: PlatformTarget
    digest: str
    log_path: Path | None
    started_at: datetime
    finished_at: datetime
    command: str = ""


class ImageBuilder(Protocol):
    """Builds and pushes one platform image, returning its digest."""

    def build(
        self,
        context: BuildContext,
        platform: PlatformTarget,
        repository: str,
        log_dir: Path,
    ) -> BuildResult: ...


def compose_output_arg(repository: str) -> str:
    """Compose the --output value that pushes by digest only.

    Args:
        repository: Target repository coordinate.

    Returns:
        Output spec string.
    """
    return (
        f"type=image,name={repository},push-by-digest=true,"
        "name-canonical=true,push=true"
    )


def compose_buildx_command(
    context: BuildContext,
    platform: PlatformTarget,
    repository: str,
    metadata_file: Path,
    docker_bin: str = "docker",
) -> list[str]:
    """Compose the `docker buildx build` command for one platform.

    Args:
        context: Shared build context.
        platform: Platform to build.
        repository: Target repository coordinate.
        metadata_file: Where buildx writes the build metadata JSON.
        docker_bin: Docker CLI executable.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [docker_bin, "buildx", "build", "--platform", str(platform)]

    if context.dockerfile is not None:
        cmd.extend(["--file", str(context.dockerfile)])

    for key in sorted(context.build_args):
        cmd.extend(["--build-arg", f"{key}={context.build_args[key]}"])

    for spec in context.cache_from:
        cmd.extend(["--cache-from", spec])
    for spec in context.cache_to:
        cmd.extend(["--cache-to", spec])

    cmd.extend(["--output", compose_output_arg(repository)])
    cmd.extend(["--metadata-file", str(metadata_file)])
    cmd.append(str(context.path))
    return cmd


def read_metadata_digest(metadata_file: Path) -> str:
    """Read the pushed image digest from a buildx metadata file.

    Args:
        metadata_file: Path to the JSON metadata written by buildx.

    Returns:
        Validated digest string.

    Raises:
        BuildExecutionError: If the file is missing or has no valid digest.
    """
    try:
        data = json.loads(metadata_file.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise BuildExecutionError(
            f"Build metadata not found: {metadata_file}",
            code="metadata_missing",
        ) from e
    except json.JSONDecodeError as e:
        raise BuildExecutionError(
            f"Build metadata is not valid JSON: {e}",
            code="metadata_invalid",
        ) from e

    digest = data.get(METADATA_DIGEST_KEY) if isinstance(data, dict) else None
    if not isinstance(digest, str):
        raise BuildExecutionError(
            f"Build metadata has no '{METADATA_DIGEST_KEY}'",
            code="metadata_invalid",
        )
    try:
        return validate_digest(digest)
    except ValueError as e:
        raise BuildExecutionError(str(e), code="metadata_invalid") from e


def run_build(
    context: BuildContext,
    platform: PlatformTarget,
    repository: str,
    log_dir: Path,
    docker_bin: str = "docker",
    env_override: dict[str, str] | None = None,
) -> BuildResult:
    """Execute a single-platform build and push by digest.

    Args:
        context: Shared build context.
        platform: Platform to build.
        repository: Target repository coordinate.
        log_dir: Directory for the build log and metadata file.
        docker_bin: Docker CLI executable.
        env_override: Optional environment variable overrides.

    Returns:
        BuildResult with the pushed digest.

    Raises:
        BuildExecutionError: If the build fails or yields no digest.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"build-{platform.pair}.log"
    metadata_file = log_dir / f"metadata-{platform.pair}.json"
    metadata_file.unlink(missing_ok=True)

    cmd = compose_buildx_command(
        context=context,
        platform=platform,
        repository=repository,
        metadata_file=metadata_file,
        docker_bin=docker_bin,
    )
    cmd_str = shlex.join(cmd)
    logger.info("Building %s: %s", platform, cmd_str)

    started_at = datetime.now(timezone.utc)

    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Platform: {platform}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            env: dict[str, str] | None = None
            if env_override:
                env = dict(os.environ)
                env.update(env_override)

            result = subprocess.run(
                cmd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                env=env,
                check=False,
            )
    except OSError as e:
        message = f"Failed to execute build for {platform}: {e}"
        logger.error(message)
        raise BuildExecutionError(
            message,
            code="execution_error",
            log_path=log_path,
        ) from e

    finished_at = datetime.now(timezone.utc)
    exit_code = result.returncode

    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Duration: {duration:.1f}s\n")

    if exit_code != 0:
        message = f"Build for {platform} failed with exit code {exit_code}"
        logger.error("%s. See log: %s", message, log_path)
        raise BuildExecutionError(
            message,
            exit_code=exit_code,
            code="build_failed",
            log_path=log_path,
        )

    try:
        digest = read_metadata_digest(metadata_file)
    except BuildExecutionError as e:
        e.log_path = log_path
        raise

    logger.info("Built %s -> %s", platform, digest)
    return BuildResult(
        platform=platform,
        digest=digest,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        command=cmd_str,
    )


class BuildxImageBuilder:
    """ImageBuilder backed by `docker buildx build`."""

    def __init__(self, docker_bin: str = "docker") -> None:
        self.docker_bin = docker_bin

    def build(
        self,
        context: BuildContext,
        platform: PlatformTarget,
        repository: str,
        log_dir: Path,
    ) -> BuildResult:
        return run_build(
            context=context,
            platform=platform,
            repository=repository,
            log_dir=log_dir,
            docker_bin=self.docker_bin,
        )


__all__ = [
    "BuildContext",
    "BuildExecutionError",
    "BuildResult",
    "BuildxImageBuilder",
    "ImageBuilder",
    "compose_buildx_command",
    "compose_output_arg",
    "read_metadata_digest",
    "run_build",
]
