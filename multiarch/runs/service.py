"""Run coordination service.

This module provides the high-level run API:
- execute_run(): Main entry point - build every platform, merge, publish, verify
- Per-repository locking so runs against one image never overlap
- Run ledger persistence (runs, build jobs, tag assignments)
"""

from __future__ import annotations

import fcntl
import logging
import os
import re
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from multiarch.builds.digests import DigestStore
from multiarch.builds.dispatcher import DispatchResult, dispatch_builds
from multiarch.builds.runner import BuildContext, ImageBuilder
from multiarch.config import get_settings
from multiarch.errors import (
    UNEXPECTED_ERROR,
    ArtifactMissingError,
    BuildFailureError,
    RegistryFailureError,
    RunLockTimeoutError,
    RunNotFoundError,
    VerificationFailureError,
)
from multiarch.publish.merger import merge_and_publish
from multiarch.publish.verify import verify_publication
from multiarch.registry.client import ManifestReader, RegistryClient
from multiarch.runs.models import BuildJobRecord, RunRecord, TagRecord
from multiarch.runs.state import transition
from multiarch.tags.resolver import TagPolicy, TriggerContext, resolve_tags
from multiarch.types import BuildStatus, PlatformTarget, RunState

if TYPE_CHECKING:
    from multiarch.config import Settings

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL = 0.1
_UNSAFE_LOCK_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class RunRequest:
    """Everything a run needs besides its collaborators.

    Attributes:
        repository: Target repository coordinate.
        platforms: Ordered platform targets.
        context: Shared build context.
        trigger: Why the run started.
        tag_policy: How tags are derived.
        verify: Whether to read the published manifest list back.
    """

    repository: str
    platforms: tuple[PlatformTarget, ...]
    context: BuildContext
    trigger: TriggerContext
    tag_policy: TagPolicy
    verify: bool = True


@contextmanager
def run_lock(
    lock_dir: Path,
    repository: str,
    timeout: float | None = None,
) -> Iterator[None]:
    """Acquire the run lock for a repository.

    Uses a file-based lock so that only one run per repository publishes
    at a time, across processes.

    Args:
        lock_dir: Directory for lock files.
        repository: Repository coordinate to lock on.
        timeout: Lock acquisition timeout in seconds (None = blocking).

    Yields:
        None when lock is acquired.

    Raises:
        RunLockTimeoutError: If lock cannot be acquired within timeout.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    safe_name = _UNSAFE_LOCK_CHARS.sub("_", repository)[:128]
    lock_file = lock_dir / f"run_{safe_name}.lock"

    logger.debug("Acquiring run lock for %s", repository)

    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    lock_acquired = False
    try:
        if timeout is not None:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    lock_acquired = True
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= timeout:
                        raise RunLockTimeoutError(
                            f"Another run for {repository} is in progress"
                        ) from None
                    time.sleep(LOCK_POLL_INTERVAL)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)
            lock_acquired = True

        logger.debug("Run lock acquired for %s", repository)
        yield
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Run lock released for %s", repository)
        os.close(fd)


def _advance(session: Session, run: RunRecord, target: RunState) -> None:
    """Move a run to a new state and commit it so observers see progress."""
    run.state = transition(RunState(run.state), target, run_id=run.id).value
    logger.info("Run %d: %s", run.id, run.state)
    session.commit()


def _fail(
    session: Session,
    run: RunRecord,
    target: RunState,
    error_type: str,
    message: str,
) -> None:
    run.mark_failed(error_type, message)
    _advance(session, run, target)


def _describe(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


def _create_run_record(
    session: Session,
    request: RunRequest,
    tags: list[str],
) -> RunRecord:
    run = RunRecord(
        repository=request.repository,
        trigger_event=request.trigger.event.value,
        commit_sha=request.trigger.commit_sha,
        state=RunState.DISPATCHED.value,
        platforms=[str(p) for p in request.platforms],
        tags=tags,
    )
    for platform in request.platforms:
        run.jobs.append(
            BuildJobRecord(platform=str(platform), status=BuildStatus.PENDING.value)
        )
    session.add(run)
    session.commit()
    return run


def _record_outcomes(run: RunRecord, result: DispatchResult) -> None:
    jobs = {job.platform: job for job in run.jobs}
    for outcome in result.outcomes:
        job = jobs[str(outcome.platform)]
        job.status = outcome.status.value
        job.digest = outcome.digest
        job.log_path = str(outcome.log_path) if outcome.log_path else None
        job.started_at = outcome.started_at
        job.finished_at = outcome.finished_at
        job.error_type = outcome.error_type
        job.error_message = outcome.error_message


def _repoint_tags(session: Session, run: RunRecord, digests: list[str]) -> None:
    """Point every tag of a published run at its manifest list."""
    now = datetime.now()
    for name in run.tags:
        stmt = select(TagRecord).where(
            TagRecord.repository == run.repository,
            TagRecord.name == name,
        )
        record = session.execute(stmt).scalar_one_or_none()
        if record is None:
            session.add(
                TagRecord(
                    repository=run.repository,
                    name=name,
                    run_id=run.id,
                    digests=list(digests),
                    updated_at=now,
                )
            )
        else:
            record.run_id = run.id
            record.digests = list(digests)
            record.updated_at = now


def execute_run(
    session: Session,
    request: RunRequest,
    builder: ImageBuilder,
    registry: RegistryClient,
    settings: Settings | None = None,
    reader: ManifestReader | None = None,
) -> RunRecord:
    """Build every platform, publish one manifest list, and verify it.

    This is the main entry point of the coordinator. It:
    1. Resolves the tag set for the trigger
    2. Takes the repository run lock
    3. Dispatches one build per platform and waits for all of them
    4. Collects the digests and reconciles them with the successes
    5. Publishes the manifest list under every tag in one call
    6. Reads the primary tag back

    Each state change is committed as it happens. Any failure leaves the
    run in a terminal failure state, never touches existing tags, and is
    re-raised.

    Args:
        session: Database session.
        request: Run request.
        builder: Image builder used for every platform.
        registry: Registry client used for publishing.
        settings: Application settings.
        reader: Manifest reader for verification (defaults to registry).

    Returns:
        The finished RunRecord.

    Raises:
        TagResolutionError: If tags cannot be derived (no run is recorded).
        RunLockTimeoutError: If another run holds the repository lock.
        BuildFailureError: If any platform build failed.
        ArtifactMissingError: If collected digests do not reconcile.
        RegistryFailureError: If publishing failed.
        VerificationFailureError: If the readback failed.
    """
    if settings is None:
        settings = get_settings()
    if reader is None:
        reader = registry
    if not request.platforms:
        raise ValueError("At least one platform target is required")
    if len(set(request.platforms)) != len(request.platforms):
        raise ValueError("Platform targets must be unique")

    tags = list(resolve_tags(request.trigger, request.tag_policy).tags)

    with run_lock(settings.lock_dir, request.repository, settings.run_lock_timeout):
        run = _create_run_record(session, request, tags)
        logger.info(
            "Run %d for %s: platforms=%s tags=%s",
            run.id,
            request.repository,
            ", ".join(run.platforms),
            ", ".join(tags),
        )

        run_dir = settings.work_dir / "runs" / str(run.id)
        store = DigestStore.for_run(settings.work_dir, run.id)
        # Never reuse entries left behind under a recycled run id
        store.purge()
        try:
            run.started_at = datetime.now()
            for job in run.jobs:
                job.status = BuildStatus.RUNNING.value
            _advance(session, run, RunState.BUILDING)

            try:
                result = dispatch_builds(
                    builder=builder,
                    context=request.context,
                    platforms=list(request.platforms),
                    repository=request.repository,
                    store=store,
                    log_dir=run_dir / "logs",
                    max_workers=settings.max_concurrent_builds,
                )
                _record_outcomes(run, result)
            except Exception as e:
                for job in run.jobs:
                    if job.status == BuildStatus.RUNNING.value:
                        job.status = BuildStatus.FAILED.value
                _fail(session, run, RunState.ANY_FAILED, UNEXPECTED_ERROR, _describe(e))
                raise

            if not result.all_succeeded:
                error = BuildFailureError(result.failures(), run_id=run.id)
                _fail(session, run, RunState.ANY_FAILED, error.code, str(error))
                raise error
            _advance(session, run, RunState.ALL_SUCCEEDED)

            _advance(session, run, RunState.MERGING)
            try:
                digests = store.collect(len(result.succeeded), run_id=run.id)
                merge_and_publish(
                    registry,
                    request.repository,
                    digests,
                    tags,
                    outcomes=result.outcomes,
                    run_id=run.id,
                )
            except (ArtifactMissingError, RegistryFailureError) as e:
                _fail(session, run, RunState.MERGE_FAILED, e.code, str(e))
                raise
            except Exception as e:
                _fail(session, run, RunState.MERGE_FAILED, UNEXPECTED_ERROR, _describe(e))
                raise

            run.digests = digests
            _repoint_tags(session, run, digests)
            if not request.verify:
                run.finished_at = datetime.now()
            _advance(session, run, RunState.PUBLISHED)
            if not request.verify:
                return run

            try:
                verify_publication(
                    reader,
                    request.repository,
                    tags[0],
                    request.platforms,
                    run_id=run.id,
                )
            except VerificationFailureError as e:
                _fail(session, run, RunState.VERIFICATION_FAILED, e.code, str(e))
                raise
            except Exception as e:
                _fail(
                    session,
                    run,
                    RunState.VERIFICATION_FAILED,
                    UNEXPECTED_ERROR,
                    _describe(e),
                )
                raise

            run.finished_at = datetime.now()
            _advance(session, run, RunState.VERIFIED)
            return run
        finally:
            store.purge()


def get_run(session: Session, run_id: int) -> RunRecord:
    """Get a run record by ID.

    Raises:
        RunNotFoundError: If run not found.
    """
    run = session.get(RunRecord, run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    return run


def list_runs(
    session: Session,
    repository: str | None = None,
    state: RunState | None = None,
    limit: int = 100,
) -> list[RunRecord]:
    """List run records with optional filters, newest first.

    Args:
        session: Database session.
        repository: Filter by repository coordinate.
        state: Filter by run state.
        limit: Maximum results to return.

    Returns:
        List of RunRecord instances.
    """
    stmt = select(RunRecord)
    if repository is not None:
        stmt = stmt.where(RunRecord.repository == repository)
    if state is not None:
        stmt = stmt.where(RunRecord.state == state.value)
    stmt = stmt.order_by(RunRecord.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


def list_tags(session: Session, repository: str | None = None) -> list[TagRecord]:
    """List tag assignments, optionally for one repository."""
    stmt = select(TagRecord)
    if repository is not None:
        stmt = stmt.where(TagRecord.repository == repository)
    stmt = stmt.order_by(TagRecord.repository, TagRecord.name)
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "RunRequest",
    "execute_run",
    "get_run",
    "list_runs",
    "list_tags",
    "run_lock",
]
