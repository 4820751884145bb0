"""Manifest merging and publishing.

Joins the collected platform digests into one manifest list and publishes
it under every resolved tag in a single registry call, so the manifest
and all of its tags become visible together.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from multiarch.builds.dispatcher import BuildOutcome
from multiarch.errors import RegistryFailureError
from multiarch.registry.client import RegistryClient
from multiarch.registry.models import ManifestEntry, ManifestList

logger = logging.getLogger(__name__)


def plan_manifest_list(
    repository: str,
    digests: Sequence[str],
    outcomes: Sequence[BuildOutcome] = (),
) -> ManifestList:
    """Build the manifest list to publish, one entry per distinct digest.

    Platform metadata is taken from the builder outcomes as reported,
    never recomputed.

    Args:
        repository: Target repository coordinate.
        digests: Distinct digests collected for the run.
        outcomes: Build outcomes used to label each digest's platform.

    Returns:
        ManifestList (unpublished, no digest of its own yet).
    """
    platform_by_digest = {o.digest: o.platform for o in outcomes if o.digest}
    entries = [
        ManifestEntry(digest=digest, platform=platform_by_digest.get(digest))
        for digest in dict.fromkeys(digests)
    ]
    return ManifestList(reference=repository, entries=entries)


def merge_and_publish(
    registry: RegistryClient,
    repository: str,
    digests: Sequence[str],
    tags: Sequence[str],
    outcomes: Sequence[BuildOutcome] = (),
    run_id: int | None = None,
) -> ManifestList:
    """Publish the manifest list under every tag in one registry call.

    There is no retry: a failed publish fails the whole merge.

    Args:
        registry: Registry client.
        repository: Target repository coordinate.
        digests: Distinct digests collected for the run.
        tags: Resolved tags, all applied in the same call.
        outcomes: Build outcomes, for platform labels.
        run_id: Optional run id attached to raised errors.

    Returns:
        The published ManifestList.

    Raises:
        RegistryFailureError: If the publish call fails, or there is
            nothing to publish.
    """
    if not digests:
        raise RegistryFailureError("No digests to publish", run_id=run_id)
    if not tags:
        raise RegistryFailureError("No tags to publish under", run_id=run_id)

    manifest = plan_manifest_list(repository, digests, outcomes)
    logger.info(
        "Publishing %s with %d platform(s) under %s",
        repository,
        len(manifest.entries),
        ", ".join(tags),
    )

    try:
        registry.publish_manifest_list(
            repository, [e.digest for e in manifest.entries], list(tags)
        )
    except RegistryFailureError as e:
        e.run_id = run_id
        raise

    manifest.reference = f"{repository}:{tags[0]}"
    return manifest


__all__ = ["merge_and_publish", "plan_manifest_list"]
