"""Error taxonomy for multiarch.

Every coordinator failure is a MultiarchError subclass carrying a stable
code, so the CLI, the run ledger and the HTTP API can report failures
uniformly.
"""

from typing import Any

# Stable error codes
BUILD_FAILED = "build_failed"
ARTIFACT_MISSING = "artifact_missing"
ARTIFACT_SURPLUS = "artifact_surplus"
REGISTRY_FAILED = "registry_failed"
VERIFICATION_FAILED = "verification_failed"
TAG_RESOLUTION = "tag_resolution"
RUN_LOCKED = "run_locked"
INVALID_TRANSITION = "invalid_transition"
RUN_NOT_FOUND = "run_not_found"
UNEXPECTED_ERROR = "unexpected_error"


class MultiarchError(Exception):
    """Base error for coordinator operations."""

    default_code = "multiarch_error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        run_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.run_id = run_id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.run_id is not None:
            result["run_id"] = self.run_id
        return result


class BuildFailureError(MultiarchError):
    """Raised when one or more platform builds failed.

    Attributes:
        failures: Mapping of platform string to failure message.
    """

    default_code = BUILD_FAILED

    def __init__(
        self,
        failures: dict[str, str],
        run_id: int | None = None,
    ) -> None:
        platforms = ", ".join(sorted(failures))
        super().__init__(f"Build failed for platform(s): {platforms}", run_id=run_id)
        self.failures = failures

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failures"] = dict(self.failures)
        return result


class ArtifactMissingError(MultiarchError):
    """Raised when collected digests do not reconcile with succeeded builds."""

    default_code = ARTIFACT_MISSING

    def __init__(
        self,
        message: str,
        expected: int,
        found: int,
        code: str | None = None,
        run_id: int | None = None,
    ) -> None:
        super().__init__(message, code=code, run_id=run_id)
        self.expected = expected
        self.found = found


class RegistryFailureError(MultiarchError):
    """Raised when a registry call (publish, login) fails."""

    default_code = REGISTRY_FAILED


class VerificationFailureError(MultiarchError):
    """Raised when the post-publish readback fails or mismatches."""

    default_code = VERIFICATION_FAILED


class TagResolutionError(MultiarchError):
    """Raised when tags cannot be derived from the trigger context."""

    default_code = TAG_RESOLUTION


class RunLockTimeoutError(MultiarchError):
    """Raised when another run holds the repository lock too long."""

    default_code = RUN_LOCKED


class InvalidTransitionError(MultiarchError):
    """Raised on an illegal run state change."""

    default_code = INVALID_TRANSITION


class RunNotFoundError(MultiarchError):
    """Raised when a run is not found in the ledger."""

    default_code = RUN_NOT_FOUND

    def __init__(self, run_id: int) -> None:
        super().__init__(f"Run not found: {run_id}", run_id=run_id)


__all__ = [
    "ARTIFACT_MISSING",
    "ARTIFACT_SURPLUS",
    "BUILD_FAILED",
    "INVALID_TRANSITION",
    "REGISTRY_FAILED",
    "RUN_LOCKED",
    "RUN_NOT_FOUND",
    "TAG_RESOLUTION",
    "UNEXPECTED_ERROR",
    "VERIFICATION_FAILED",
    "ArtifactMissingError",
    "BuildFailureError",
    "InvalidTransitionError",
    "MultiarchError",
    "RegistryFailureError",
    "RunLockTimeoutError",
    "RunNotFoundError",
    "TagResolutionError",
    "VerificationFailureError",
]
