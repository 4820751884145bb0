"""Platform build dispatcher.

Fans out one independent build per platform target and joins them at a
single barrier. A failing build never cancels its siblings: every build
runs to its own completion, and the result reports each platform's digest
or failure together.
"""

from __future__ import annotations

import logging
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from multiarch.builds.digests import DigestStore
from multiarch.builds.runner import (
    BuildContext,
    BuildExecutionError,
    BuildResult,
    ImageBuilder,
)
from multiarch.types import BuildStatus, PlatformTarget

logger = logging.getLogger(__name__)


@dataclass
class BuildOutcome:
    """Terminal outcome of one platform build job.

    Attributes:
        platform: Platform that was built.
        status: SUCCEEDED or FAILED.
        digest: Pushed image digest (on success).
        error_type: Stable failure code (on failure).
        error_message: Failure message (on failure).
        log_path: Build log file, if one was written.
        started_at: When the job started.
        finished_at: When the job reached a terminal state.
    """

    platform: PlatformTarget
    status: BuildStatus
    digest: str | None = None
    error_type: str | None = None
    error_message: str | None = None
    log_path: Path | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == BuildStatus.SUCCEEDED


@dataclass
class DispatchResult:
    """Outcomes of every platform build of a run, in configured order."""

    outcomes: list[BuildOutcome]

    @property
    def all_succeeded(self) -> bool:
        return all(o.succeeded for o in self.outcomes)

    @property
    def succeeded(self) -> list[BuildOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[BuildOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    def failures(self) -> dict[str, str]:
        """Map each failed platform to its failure message."""
        return {str(o.platform): o.error_message or "unknown error" for o in self.failed}


def _run_job(
    builder: ImageBuilder,
    context: BuildContext,
    platform: PlatformTarget,
    repository: str,
    store: DigestStore,
    log_dir: Path,
) -> BuildOutcome:
    """Run one build job and record its digest.

    Never raises; every failure becomes a FAILED outcome.
    """
    started_at = datetime.now(timezone.utc)
    try:
        result: BuildResult = builder.build(context, platform, repository, log_dir)
        store.record(result.digest)
    except BuildExecutionError as e:
        return BuildOutcome(
            platform=platform,
            status=BuildStatus.FAILED,
            error_type=e.code,
            error_message=str(e),
            log_path=e.log_path,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
    except Exception as e:
        logger.exception("Unexpected error building %s", platform)
        return BuildOutcome(
            platform=platform,
            status=BuildStatus.FAILED,
            error_type=type(e).__name__,
            error_message=str(e),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    return BuildOutcome(
        platform=platform,
        status=BuildStatus.SUCCEEDED,
        digest=result.digest,
        log_path=result.log_path,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
    )


def dispatch_builds(
    builder: ImageBuilder,
    context: BuildContext,
    platforms: list[PlatformTarget],
    repository: str,
    store: DigestStore,
    log_dir: Path,
    max_workers: int | None = None,
) -> DispatchResult:
    """Build every platform in parallel and wait for all of them.

    Args:
        builder: Image builder used for every platform.
        context: Shared build context.
        platforms: Ordered platform targets; one job each.
        repository: Target repository coordinate.
        store: Run-scoped digest store the jobs write into.
        log_dir: Directory for build logs.
        max_workers: Thread pool size (defaults to one per platform).

    Returns:
        DispatchResult with one outcome per platform, in input order.

    Raises:
        ValueError: If platforms is empty or contains duplicates.
    """
    if not platforms:
        raise ValueError("At least one platform target is required")
    if len(set(platforms)) != len(platforms):
        raise ValueError("Platform targets must be unique")

    workers = min(max_workers or len(platforms), len(platforms))
    logger.info(
        "Dispatching %d build(s) for %s with %d worker(s)",
        len(platforms),
        repository,
        workers,
    )

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="build") as pool:
        futures: dict[PlatformTarget, Future[BuildOutcome]] = {
            platform: pool.submit(
                _run_job, builder, context, platform, repository, store, log_dir
            )
            for platform in platforms
        }
        # Barrier: wait for every job, success or failure
        wait(futures.values(), return_when=ALL_COMPLETED)

    outcomes = [futures[platform].result() for platform in platforms]
    for outcome in outcomes:
        if outcome.succeeded:
            logger.info("Platform %s succeeded: %s", outcome.platform, outcome.digest)
        else:
            logger.error(
                "Platform %s failed: %s", outcome.platform, outcome.error_message
            )
    return DispatchResult(outcomes=outcomes)


__all__ = ["BuildOutcome", "DispatchResult", "dispatch_builds"]
