"""Post-publish verification.

Re-reads the manifest list for the primary tag and checks it lists the
expected platforms. This is a smoke test of visibility, not a proof of
image contents.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from multiarch.errors import MultiarchError, VerificationFailureError
from multiarch.registry.client import ManifestReader
from multiarch.registry.models import ManifestList
from multiarch.types import PlatformTarget

logger = logging.getLogger(__name__)


def verify_publication(
    reader: ManifestReader,
    repository: str,
    primary_tag: str,
    expected_platforms: Sequence[PlatformTarget],
    run_id: int | None = None,
) -> ManifestList:
    """Read back a published manifest list and check its platforms.

    Attestation entries are ignored. When the registry reports platforms
    for every entry, the platform set must match as well as the count.
    Platforms are compared in their canonical form, so a registry that
    reports 'linux/arm64' satisfies an expected 'linux/arm64/v8'.

    Args:
        reader: Manifest reader.
        repository: Target repository coordinate.
        primary_tag: Tag to read back.
        expected_platforms: Platforms the manifest list must contain.
        run_id: Optional run id attached to raised errors.

    Returns:
        The ManifestList as read from the registry.

    Raises:
        VerificationFailureError: If the read fails or the contents differ.
    """
    reference = f"{repository}:{primary_tag}"
    try:
        manifest = reader.inspect(reference)
    except MultiarchError as e:
        raise VerificationFailureError(
            f"Could not read back {reference}: {e}", run_id=run_id
        ) from e

    images = manifest.images
    if len(images) != len(expected_platforms):
        raise VerificationFailureError(
            f"{reference} lists {len(images)} platform(s), "
            f"expected {len(expected_platforms)}",
            run_id=run_id,
        )

    found = manifest.platforms
    canonical_found = {p.normalized() for p in found}
    canonical_expected = {p.normalized() for p in expected_platforms}
    if len(found) == len(images) and canonical_found != canonical_expected:
        raise VerificationFailureError(
            f"{reference} lists platforms "
            f"{', '.join(sorted(str(p) for p in found))}, expected "
            f"{', '.join(sorted(str(p) for p in expected_platforms))}",
            run_id=run_id,
        )

    logger.info("Verified %s with %d platform(s)", reference, len(images))
    return manifest


__all__ = ["verify_publication"]
