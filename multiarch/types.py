"""Shared type definitions for multiarch.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

# os/arch[/variant], lowercase identifiers as used by OCI image indexes
PLATFORM_PATTERN = re.compile(
    r"^(?P<os>[a-z0-9_]+)/(?P<architecture>[a-z0-9_]+)(?:/(?P<variant>[a-z0-9_]+))?$"
)

_ARCH_ALIASES = {"aarch64": "arm64", "x86_64": "amd64", "x86-64": "amd64"}


class BuildStatus(str, Enum):
    """Status of a single platform build job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunState(str, Enum):
    """State of a coordinated run."""

    DISPATCHED = "dispatched"
    BUILDING = "building"
    ALL_SUCCEEDED = "all_succeeded"
    ANY_FAILED = "any_failed"
    MERGING = "merging"
    PUBLISHED = "published"
    MERGE_FAILED = "merge_failed"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"


class TriggerEvent(str, Enum):
    """Cause of a run."""

    PUSH = "push"
    SCHEDULE = "schedule"
    MANUAL = "manual"


class ShaFormat(str, Enum):
    """Length of the commit-derived tag."""

    SHORT = "short"
    LONG = "long"


@dataclass(frozen=True)
class PlatformTarget:
    """An operating-system/architecture pair identifying one build variant.

    Attributes:
        os: Operating system (e.g., 'linux').
        architecture: CPU architecture (e.g., 'arm64').
        variant: Optional CPU variant (e.g., 'v7').
    """

    os: str
    architecture: str
    variant: str | None = None

    @classmethod
    def parse(cls, value: str) -> "PlatformTarget":
        """Parse an 'os/arch[/variant]' string.

        Args:
            value: Platform string such as 'linux/arm64'.

        Returns:
            PlatformTarget instance.

        Raises:
            ValueError: If the string is not a valid platform.
        """
        match = PLATFORM_PATTERN.match(value.strip().lower())
        if match is None:
            raise ValueError(
                f"Invalid platform '{value}', expected 'os/arch[/variant]'"
            )
        return cls(
            os=match.group("os"),
            architecture=match.group("architecture"),
            variant=match.group("variant"),
        )

    def normalized(self) -> "PlatformTarget":
        """Canonical form used when comparing platforms read from registries.

        Lowercases every field and applies the containerd defaults:
        'aarch64' is 'arm64', 'x86_64' is 'amd64', 'arm64/v8' is plain
        'arm64', and a bare 'arm' is 'arm/v7'.
        """
        architecture = self.architecture.lower()
        variant = self.variant.lower() if self.variant else None
        architecture = _ARCH_ALIASES.get(architecture, architecture)
        if architecture == "arm64" and variant == "v8":
            variant = None
        elif architecture == "arm" and variant is None:
            variant = "v7"
        return PlatformTarget(os=self.os.lower(), architecture=architecture, variant=variant)

    @property
    def pair(self) -> str:
        """Filesystem-safe form, e.g. 'linux-arm64'."""
        return str(self).replace("/", "-")

    def __str__(self) -> str:
        parts = [self.os, self.architecture]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)


@dataclass
class OperationResult:
    """Result of an operation (run, publish, etc.)."""

    success: bool
    message: str
    code: str | None = None
    log_path: str | None = None
    details: dict[str, object] = field(default_factory=dict)


__all__ = [
    "BuildStatus",
    "OperationResult",
    "PLATFORM_PATTERN",
    "PlatformTarget",
    "RunState",
    "ShaFormat",
    "TriggerEvent",
]
