"""Run ledger endpoints.

- GET /runs - List runs
- GET /runs/{id} - Get run by ID
- GET /runs/{id}/jobs - Get per-platform build jobs for a run
- GET /tags - List where each published tag points
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from sqlalchemy.orm import Session

from multiarch.errors import RUN_NOT_FOUND, RunNotFoundError
from multiarch.runs.models import BuildJobRecord, RunRecord, TagRecord
from multiarch.runs.service import get_run, list_runs, list_tags
from multiarch.types import RunState
from web.deps import get_db

router = APIRouter()
tags_router = APIRouter()


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _run_to_dict(run: RunRecord) -> dict[str, Any]:
    """Convert a run record to a dictionary."""
    return {
        "id": run.id,
        "repository": run.repository,
        "trigger_event": run.trigger_event,
        "commit_sha": run.commit_sha,
        "state": run.state,
        "platforms": list(run.platforms),
        "tags": list(run.tags),
        "primary_tag": run.primary_tag,
        "digests": list(run.digests) if run.digests else [],
        "requested_at": _isoformat(run.requested_at),
        "started_at": _isoformat(run.started_at),
        "finished_at": _isoformat(run.finished_at),
        "error_type": run.error_type,
        "error_message": run.error_message,
        "job_count": len(run.jobs),
    }


def _job_to_dict(job: BuildJobRecord) -> dict[str, Any]:
    """Convert a build job record to a dictionary."""
    return {
        "id": job.id,
        "run_id": job.run_id,
        "platform": job.platform,
        "status": job.status,
        "digest": job.digest,
        "log_path": job.log_path,
        "started_at": _isoformat(job.started_at),
        "finished_at": _isoformat(job.finished_at),
        "error_type": job.error_type,
        "error_message": job.error_message,
    }


def _tag_to_dict(tag: TagRecord) -> dict[str, Any]:
    return {
        "repository": tag.repository,
        "name": tag.name,
        "run_id": tag.run_id,
        "digests": list(tag.digests),
        "updated_at": _isoformat(tag.updated_at),
    }


def _get_run_or_404(db: Session, run_id: int) -> RunRecord:
    try:
        return get_run(db, run_id)
    except RunNotFoundError:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "code": RUN_NOT_FOUND,
                "message": f"Run not found: {run_id}",
            },
        ) from None


@router.get("")
def list_runs_endpoint(
    repository: str | None = Query(None, description="Filter by repository"),
    state: str | None = Query(None, description="Filter by run state"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List run records, newest first."""
    state_filter: RunState | None = None
    if state:
        try:
            state_filter = RunState(state)
        except ValueError:
            valid = ", ".join(s.value for s in RunState)
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_state",
                    "message": f"Invalid state: {state}. Valid values: {valid}",
                },
            ) from None

    runs = list_runs(db, repository=repository, state=state_filter, limit=limit)
    return [_run_to_dict(r) for r in runs]


@router.get("/{run_id}")
def get_run_endpoint(
    run_id: int,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a run record by ID.

    Raises:
        HTTPException: 404 if the run does not exist.
    """
    return _run_to_dict(_get_run_or_404(db, run_id))


@router.get("/{run_id}/jobs")
def get_run_jobs_endpoint(
    run_id: int,
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get the per-platform build jobs of a run."""
    run = _get_run_or_404(db, run_id)
    return [_job_to_dict(j) for j in run.jobs]


@tags_router.get("")
def list_tags_endpoint(
    repository: str | None = Query(None, description="Filter by repository"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List tag assignments recorded after successful publishes."""
    return [_tag_to_dict(t) for t in list_tags(db, repository=repository)]
