"""Digest collection for a run.

This module handles:
- Digest validation and content addressing
- The run-scoped, write-once digest store shared by all platform builds
- Reconciling collected digests against the platforms that succeeded

The store keys entries by the digest value itself (one empty file per
digest), so writes from concurrent builds commute and duplicate writes of
the same content collapse to one entry.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
from pathlib import Path

from multiarch.errors import ARTIFACT_SURPLUS, ArtifactMissingError

logger = logging.getLogger(__name__)

DIGEST_ALGORITHM = "sha256"
DIGEST_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")
HEX_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def validate_digest(digest: str) -> str:
    """Validate a content digest.

    Args:
        digest: Digest string, e.g. 'sha256:<64 hex>'.

    Returns:
        The digest, unchanged.

    Raises:
        ValueError: If the digest is malformed.
    """
    if not DIGEST_PATTERN.match(digest):
        raise ValueError(f"Invalid digest: '{digest}'")
    return digest


def digest_for_content(content: bytes) -> str:
    """Compute the content-addressed digest of a blob.

    Args:
        content: Raw bytes.

    Returns:
        Digest string 'sha256:<hex>'.
    """
    return f"{DIGEST_ALGORITHM}:{hashlib.sha256(content).hexdigest()}"


class DigestStore:
    """Run-scoped, append-only set of digests backed by a directory.

    Attributes:
        root: Directory holding one empty file per recorded digest.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def for_run(cls, work_dir: Path, run_id: int) -> DigestStore:
        """Create the store for a single run.

        Args:
            work_dir: Root working directory.
            run_id: Run identifier; scopes the store to that run.

        Returns:
            DigestStore rooted at <work_dir>/runs/<run_id>/digests.
        """
        return cls(work_dir / "runs" / str(run_id) / "digests")

    def record(self, digest: str) -> bool:
        """Record a digest.

        Re-recording an existing digest is a no-op.

        Args:
            digest: Digest produced by a platform build.

        Returns:
            True if the digest was newly recorded.

        Raises:
            ValueError: If the digest is malformed.
        """
        validate_digest(digest)
        self.root.mkdir(parents=True, exist_ok=True)
        entry = self.root / digest.removeprefix(f"{DIGEST_ALGORITHM}:")
        try:
            fd = os.open(str(entry), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            logger.debug("Digest already recorded: %s", digest)
            return False
        os.close(fd)
        logger.debug("Recorded digest %s", digest)
        return True

    def digests(self) -> list[str]:
        """Return every distinct recorded digest, sorted."""
        if not self.root.exists():
            return []
        return sorted(
            f"{DIGEST_ALGORITHM}:{path.name}"
            for path in self.root.iterdir()
            if path.is_file() and HEX_PATTERN.match(path.name)
        )

    def collect(self, expected: int, run_id: int | None = None) -> list[str]:
        """Return the digest set for merging, reconciled against successes.

        Args:
            expected: Number of platforms that reported success.
            run_id: Optional run id attached to raised errors.

        Returns:
            Sorted list of distinct digests.

        Raises:
            ArtifactMissingError: If nothing was collected, or the number of
                distinct digests differs from the number of successes.
        """
        found = self.digests()
        if not found:
            raise ArtifactMissingError(
                "No digests were collected for this run",
                expected=expected,
                found=0,
                run_id=run_id,
            )
        if len(found) < expected:
            raise ArtifactMissingError(
                f"Collected {len(found)} distinct digest(s) for {expected} "
                "successful platform build(s); a platform is missing or two "
                "platforms produced identical content",
                expected=expected,
                found=len(found),
                run_id=run_id,
            )
        if len(found) > expected:
            raise ArtifactMissingError(
                f"Collected {len(found)} distinct digest(s) but only {expected} "
                "platform build(s) succeeded",
                expected=expected,
                found=len(found),
                code=ARTIFACT_SURPLUS,
                run_id=run_id,
            )
        return found

    def purge(self) -> None:
        """Remove every entry; the store does not outlive its run."""
        if self.root.exists():
            shutil.rmtree(self.root, ignore_errors=True)
            logger.debug("Purged digest store %s", self.root)


__all__ = [
    "DIGEST_ALGORITHM",
    "DIGEST_PATTERN",
    "DigestStore",
    "digest_for_content",
    "validate_digest",
]
