"""Thin CLI wrapper for multiarch.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console

from multiarch import __version__
from multiarch.config import Settings, get_settings, print_settings_json
from multiarch.errors import MultiarchError
from multiarch.types import OperationResult, RunState, TriggerEvent

app = typer.Typer(
    name="multiarch",
    help="Multi-platform image publisher - build per platform, publish one manifest list",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"multiarch-publish version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Multi-platform image publisher - build per platform, publish one manifest list."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _run_to_dict(run: Any) -> dict[str, Any]:
    """Convert a run record to a dictionary."""
    return {
        "id": run.id,
        "repository": run.repository,
        "trigger_event": run.trigger_event,
        "commit_sha": run.commit_sha,
        "state": run.state,
        "platforms": list(run.platforms),
        "tags": list(run.tags),
        "digests": list(run.digests) if run.digests else [],
        "requested_at": _isoformat(run.requested_at),
        "started_at": _isoformat(run.started_at),
        "finished_at": _isoformat(run.finished_at),
        "error_type": run.error_type,
        "error_message": run.error_message,
    }


def _job_to_dict(job: Any) -> dict[str, Any]:
    """Convert a build job record to a dictionary."""
    return {
        "platform": job.platform,
        "status": job.status,
        "digest": job.digest,
        "log_path": job.log_path,
        "error_type": job.error_type,
        "error_message": job.error_message,
    }


def _trigger_from_options(
    event: str | None,
    sha: str | None,
    schedule: str | None,
    github_env: bool,
) -> Any:
    """Build a TriggerContext from CLI options or GitHub variables."""
    from multiarch.tags.resolver import TriggerContext

    if github_env:
        return TriggerContext.from_github_env(os.environ)

    if not sha:
        console.print("[red]Error: --sha is required (or use --github-env)[/red]")
        raise typer.Exit(code=1)
    try:
        trigger_event = TriggerEvent(event or TriggerEvent.MANUAL.value)
    except ValueError:
        console.print(f"[red]Invalid event: {event}[/red]")
        console.print("Valid values: push, schedule, manual")
        raise typer.Exit(code=1) from None
    return TriggerContext(event=trigger_event, commit_sha=sha, schedule=schedule)


def _default_tag_policy(settings: Settings) -> Any:
    from multiarch.tags.resolver import TagPolicy

    return TagPolicy(
        nightly_schedule=settings.nightly_schedule,
        nightly_pattern=settings.nightly_pattern,
        sha_prefix=settings.sha_prefix,
        sha_format=settings.sha_format,
    )


def _load_pipeline_or_exit(path: Path) -> Any:
    from multiarch.pipeline.io import load_pipeline

    if not path.exists():
        console.print(f"[red]Pipeline file not found: {path}[/red]")
        raise typer.Exit(code=1)
    try:
        return load_pipeline(path)
    except ValidationError as e:
        console.print("[red]Invalid pipeline:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Invalid pipeline: {e}[/red]")
        raise typer.Exit(code=1) from None


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print(f"  Lock directory:      {settings.lock_dir}")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print()
    console.print("[bold]Builds:[/bold]")
    console.print(f"  Docker binary:       {settings.docker_bin}")
    console.print(f"  Max builds:          {settings.max_concurrent_builds}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Tags:[/bold]")
    console.print(f"  Nightly schedule:    {settings.nightly_schedule or '(any)'}")
    console.print(f"  Nightly pattern:     {settings.nightly_pattern}")
    console.print(f"  SHA prefix:          {settings.sha_prefix}")
    console.print(f"  SHA format:          {settings.sha_format.value}")
    console.print()
    console.print("[bold]Registry:[/bold]")
    console.print(f"  Username:            {settings.registry_username or '(none)'}")
    console.print(
        f"  Password:            {'(set)' if settings.registry_password else '(none)'}"
    )
    console.print(f"  Verify:              {settings.verify}")
    console.print(f"  Verify reader:       {settings.verify_reader}")
    lock_timeout = (
        "(block)" if settings.run_lock_timeout is None else settings.run_lock_timeout
    )
    console.print(f"  Run lock timeout:    {lock_timeout}")


tags_app = typer.Typer(help="Resolve and list tags")
app.add_typer(tags_app, name="tags")


@tags_app.command("resolve")
def tags_resolve(
    event: Annotated[
        str | None,
        typer.Option("--event", "-e", help="Trigger event: push, schedule, manual"),
    ] = None,
    sha: Annotated[
        str | None,
        typer.Option("--sha", help="Source commit identifier"),
    ] = None,
    schedule: Annotated[
        str | None,
        typer.Option("--schedule", help="Cron expression of the firing schedule"),
    ] = None,
    pipeline: Annotated[
        Path | None,
        typer.Option("--pipeline", "-p", help="Pipeline file with tag settings"),
    ] = None,
    github_env: Annotated[
        bool,
        typer.Option("--github-env", help="Read the trigger from GitHub Actions"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the tags a run would publish under."""
    from multiarch.tags.resolver import resolve_tags

    settings = get_settings()
    policy = _default_tag_policy(settings)
    if pipeline is not None:
        policy = _load_pipeline_or_exit(pipeline).tag_policy(policy)

    try:
        trigger = _trigger_from_options(event, sha, schedule, github_env)
        resolved = resolve_tags(trigger, policy)
    except MultiarchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        _echo_json({"tags": list(resolved.tags), "primary": resolved.primary})
    else:
        console.print(f"[bold]Tags ({trigger.event.value}):[/bold]")
        for tag in resolved.tags:
            marker = " (primary)" if tag == resolved.primary else ""
            console.print(f"  {tag}{marker}")


@tags_app.command("list")
def tags_list(
    repository: Annotated[
        str | None,
        typer.Option("--repository", "-r", help="Filter by repository"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List published tags recorded in the run ledger."""
    from multiarch.db import create_all_tables, get_engine, get_session_factory
    from multiarch.runs.service import list_tags

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        records = list_tags(session, repository=repository)

        if json_output:
            _echo_json(
                [
                    {
                        "repository": t.repository,
                        "name": t.name,
                        "run_id": t.run_id,
                        "digests": list(t.digests),
                        "updated_at": _isoformat(t.updated_at),
                    }
                    for t in records
                ]
            )
            return

        if not records:
            console.print("[yellow]No tags recorded[/yellow]")
            return
        console.print(f"[bold]Found {len(records)} tag(s):[/bold]")
        for t in records:
            console.print(
                f"  [green]{t.repository}:{t.name}[/green] -> run #{t.run_id} "
                f"({len(t.digests)} platform(s))"
            )


@app.command()
def run(
    pipeline: Annotated[
        Path | None,
        typer.Option("--pipeline", "-p", help="Pipeline file (YAML or JSON)"),
    ] = None,
    image: Annotated[
        str | None,
        typer.Option("--image", "-i", help="Target repository (overrides pipeline)"),
    ] = None,
    platforms: Annotated[
        list[str] | None,
        typer.Option("--platform", help="Platform to build (can be repeated)"),
    ] = None,
    context: Annotated[
        Path | None,
        typer.Option("--context", "-c", help="Build context directory"),
    ] = None,
    dockerfile: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Dockerfile path"),
    ] = None,
    event: Annotated[
        str | None,
        typer.Option("--event", "-e", help="Trigger event: push, schedule, manual"),
    ] = None,
    sha: Annotated[
        str | None,
        typer.Option("--sha", help="Source commit identifier"),
    ] = None,
    schedule: Annotated[
        str | None,
        typer.Option("--schedule", help="Cron expression of the firing schedule"),
    ] = None,
    github_env: Annotated[
        bool,
        typer.Option("--github-env", help="Read the trigger from GitHub Actions"),
    ] = False,
    no_verify: Annotated[
        bool,
        typer.Option("--no-verify", help="Skip reading the manifest list back"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build every platform and publish one manifest list.

    Exits 0 only if every platform builds, the manifest list publishes,
    and verification succeeds.
    """
    from multiarch.builds.runner import BuildContext, BuildxImageBuilder
    from multiarch.db import create_all_tables, get_engine, get_session_factory
    from multiarch.registry.client import BuildxRegistryClient, registry_host
    from multiarch.registry.distribution import DistributionManifestReader
    from multiarch.registry.models import parse_repository
    from multiarch.runs.service import RunRequest, execute_run
    from multiarch.types import PlatformTarget

    settings = get_settings()
    policy = _default_tag_policy(settings)

    if pipeline is not None:
        definition = _load_pipeline_or_exit(pipeline)
        build_context = definition.build_context(pipeline.parent)
        repository = image or definition.image
        targets = definition.targets
        policy = definition.tag_policy(policy)
    else:
        if not image:
            console.print("[red]Error: --image or --pipeline is required[/red]")
            raise typer.Exit(code=1)
        repository = image
        build_context = BuildContext(path=(context or Path.cwd()).resolve())
        targets = []

    if platforms:
        try:
            targets = [PlatformTarget.parse(p) for p in platforms]
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None
    if not targets:
        console.print("[red]Error: at least one --platform is required[/red]")
        raise typer.Exit(code=1)
    if len(set(targets)) != len(targets):
        console.print("[red]Error: platforms must be unique[/red]")
        raise typer.Exit(code=1)
    if context is not None and pipeline is not None:
        build_context = BuildContext(
            path=context.resolve(),
            dockerfile=build_context.dockerfile,
            build_args=build_context.build_args,
            cache_from=build_context.cache_from,
            cache_to=build_context.cache_to,
        )
    if dockerfile is not None:
        build_context = BuildContext(
            path=build_context.path,
            dockerfile=dockerfile.resolve(),
            build_args=build_context.build_args,
            cache_from=build_context.cache_from,
            cache_to=build_context.cache_to,
        )

    try:
        parse_repository(repository)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    builder = BuildxImageBuilder(docker_bin=settings.docker_bin)
    registry = BuildxRegistryClient(docker_bin=settings.docker_bin)
    password = (
        settings.registry_password.get_secret_value()
        if settings.registry_password
        else None
    )
    reader: Any = registry
    if settings.verify_reader == "distribution":
        reader = DistributionManifestReader(
            username=settings.registry_username, password=password
        )

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    try:
        trigger = _trigger_from_options(event, sha, schedule, github_env)
        if settings.registry_username and password:
            registry.login(
                registry_host(repository), settings.registry_username, password
            )

        request = RunRequest(
            repository=repository,
            platforms=tuple(targets),
            context=build_context,
            trigger=trigger,
            tag_policy=policy,
            verify=settings.verify and not no_verify,
        )
        with factory() as session:
            record = execute_run(
                session,
                request,
                builder=builder,
                registry=registry,
                settings=settings,
                reader=reader,
            )
            result = OperationResult(
                success=True,
                message=f"Published {repository} under {', '.join(record.tags)}",
                details={"run": _run_to_dict(record)},
            )
    except MultiarchError as e:
        result = OperationResult(
            success=False,
            message=str(e),
            code=e.code,
            details=e.to_dict(),
        )

    if json_output:
        _echo_json(
            {
                "success": result.success,
                "message": result.message,
                "code": result.code,
                "details": result.details,
            }
        )
    elif result.success:
        console.print(f"[green]✓ {result.message}[/green]")
    else:
        console.print(f"[red]✗ {result.message}[/red]")
        failures = result.details.get("failures")
        if isinstance(failures, dict):
            for platform, message in failures.items():
                console.print(f"    {platform}: {message}")

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def inspect(
    reference: Annotated[str, typer.Argument(help="Reference (repository:tag)")],
    reader_name: Annotated[
        str | None,
        typer.Option("--reader", help="imagetools or distribution"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Read a published manifest list back."""
    from multiarch.registry.client import BuildxRegistryClient
    from multiarch.registry.distribution import DistributionManifestReader

    settings = get_settings()
    name = reader_name or settings.verify_reader
    if name == "distribution":
        password = (
            settings.registry_password.get_secret_value()
            if settings.registry_password
            else None
        )
        reader: Any = DistributionManifestReader(
            username=settings.registry_username, password=password
        )
    elif name == "imagetools":
        reader = BuildxRegistryClient(docker_bin=settings.docker_bin)
    else:
        console.print(f"[red]Invalid reader: {name}[/red]")
        console.print("Valid values: imagetools, distribution")
        raise typer.Exit(code=1)

    try:
        manifest = reader.inspect(reference)
    except MultiarchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        typer.echo(manifest.model_dump_json(indent=2))
        return

    console.print(f"[bold]{manifest.reference}[/bold] ({manifest.media_type})")
    for entry in manifest.images:
        platform = str(entry.platform) if entry.platform else "unknown"
        console.print(f"  {platform:<20} {entry.digest}")


pipeline_app = typer.Typer(help="Pipeline files")
app.add_typer(pipeline_app, name="pipeline")


@pipeline_app.command("validate")
def pipeline_validate(
    path: Annotated[Path, typer.Argument(help="Pipeline file to validate")],
) -> None:
    """Validate a pipeline file and print its normalized form."""
    from multiarch.pipeline.io import pipeline_to_yaml_string

    definition = _load_pipeline_or_exit(path)
    console.print(f"[green]✓ Valid pipeline: {definition.image}[/green]")
    console.print(pipeline_to_yaml_string(definition), markup=False)


runs_app = typer.Typer(help="Inspect the run ledger")
app.add_typer(runs_app, name="runs")


@runs_app.command("list")
def runs_list(
    repository: Annotated[
        str | None,
        typer.Option("--repository", "-r", help="Filter by repository"),
    ] = None,
    state: Annotated[
        str | None,
        typer.Option("--state", "-s", help="Filter by run state"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of runs"),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List recorded runs, newest first."""
    from multiarch.db import create_all_tables, get_engine, get_session_factory
    from multiarch.runs.service import list_runs
    from multiarch.runs.state import FAILURE_STATES, is_success

    state_filter: RunState | None = None
    if state:
        try:
            state_filter = RunState(state)
        except ValueError:
            console.print(f"[red]Invalid state: {state}[/red]")
            console.print(f"Valid values: {', '.join(s.value for s in RunState)}")
            raise typer.Exit(code=1) from None

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        runs = list_runs(session, repository=repository, state=state_filter, limit=limit)

        if json_output:
            _echo_json([_run_to_dict(r) for r in runs])
            return

        if not runs:
            console.print("[yellow]No runs found[/yellow]")
            return

        console.print(f"[bold]Found {len(runs)} run(s):[/bold]")
        console.print()
        for r in runs:
            run_state = RunState(r.state)
            if run_state in FAILURE_STATES:
                color = "red"
            elif is_success(run_state, verify=False):
                color = "green"
            else:
                color = "blue"
            console.print(f"  [{color}]Run #{r.id}[/{color}] {r.repository}")
            console.print(f"    State: {r.state}")
            console.print(f"    Trigger: {r.trigger_event} @ {r.commit_sha[:12]}")
            console.print(f"    Tags: {', '.join(r.tags)}")
            if r.error_message:
                console.print(f"    Error: {r.error_message}")
            console.print()


@runs_app.command("show")
def runs_show(
    run_id: Annotated[int, typer.Argument(help="Run ID to show")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a run and its per-platform build jobs."""
    from multiarch.db import create_all_tables, get_engine, get_session_factory
    from multiarch.errors import RunNotFoundError
    from multiarch.runs.service import get_run

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        try:
            record = get_run(session, run_id)
        except RunNotFoundError:
            console.print(f"[red]Run not found: {run_id}[/red]")
            raise typer.Exit(code=1) from None

        if json_output:
            data = _run_to_dict(record)
            data["jobs"] = [_job_to_dict(j) for j in record.jobs]
            _echo_json(data)
            return

        console.print(f"[bold]Run #{record.id}[/bold] {record.repository}")
        console.print(f"  State:   {record.state}")
        console.print(f"  Trigger: {record.trigger_event} @ {record.commit_sha}")
        console.print(f"  Tags:    {', '.join(record.tags)}")
        if record.error_message:
            console.print(f"  Error:   {record.error_message}")
        console.print()
        console.print("[bold]Build jobs:[/bold]")
        for job in record.jobs:
            detail = job.digest or job.error_message or ""
            console.print(f"  {job.platform:<20} {job.status:<10} {detail}")


if __name__ == "__main__":
    app()
