"""Tag resolution from trigger context.

This module handles:
- Describing why a run started (TriggerContext)
- Recognizing the nightly schedule and rendering its alias
- Deriving the commit tag every run carries
- Ordering tags by priority to pick the primary tag

Only the tags resolved here, at merge time, are ever applied; platform
builds push by digest and carry no tags.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from multiarch.errors import TagResolutionError
from multiarch.types import ShaFormat, TriggerEvent

logger = logging.getLogger(__name__)

# Docker tag grammar: [A-Za-z0-9_][A-Za-z0-9_.-]{0,127}
TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
COMMIT_PATTERN = re.compile(r"^[0-9a-f]{7,64}$")
DATE_EXPRESSION = re.compile(r"\{\{\s*date\s+'([^']*)'\s*\}\}")

SHORT_SHA_LENGTH = 7
SCHEDULE_PRIORITY = 1000
SHA_PRIORITY = 100

# Longest tokens first so 'YYYY' wins over 'YY'
_DATE_TOKENS = {
    "YYYY": "%Y",
    "YY": "%y",
    "MM": "%m",
    "DD": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_DATE_TOKEN_PATTERN = re.compile("|".join(_DATE_TOKENS))

_GITHUB_EVENTS = {
    "push": TriggerEvent.PUSH,
    "schedule": TriggerEvent.SCHEDULE,
    "workflow_dispatch": TriggerEvent.MANUAL,
}


@dataclass(frozen=True)
class TriggerContext:
    """Why and from which commit a run started.

    Attributes:
        event: Trigger event (push, schedule, manual).
        commit_sha: Full source commit identifier.
        ref: Optional git ref (e.g., 'refs/heads/main').
        schedule: Cron expression of the schedule that fired, if any.
        timestamp: Time the trigger fired.
    """

    event: TriggerEvent
    commit_sha: str
    ref: str | None = None
    schedule: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_github_env(cls, environ: Mapping[str, str]) -> TriggerContext:
        """Build a trigger context from GitHub Actions variables.

        Args:
            environ: Environment mapping (usually os.environ).

        Returns:
            TriggerContext instance.

        Raises:
            TagResolutionError: If required variables are missing or the
                event is not recognized.
        """
        event_name = environ.get("GITHUB_EVENT_NAME")
        commit_sha = environ.get("GITHUB_SHA")
        if not event_name or not commit_sha:
            raise TagResolutionError(
                "GITHUB_EVENT_NAME and GITHUB_SHA must be set"
            )
        event = _GITHUB_EVENTS.get(event_name)
        if event is None:
            raise TagResolutionError(f"Unsupported trigger event: {event_name}")

        schedule: str | None = None
        event_path = environ.get("GITHUB_EVENT_PATH")
        if event == TriggerEvent.SCHEDULE and event_path:
            try:
                payload = json.loads(Path(event_path).read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Could not read event payload %s: %s", event_path, e)
            else:
                if isinstance(payload, dict) and isinstance(payload.get("schedule"), str):
                    schedule = payload["schedule"]

        return cls(
            event=event,
            commit_sha=commit_sha,
            ref=environ.get("GITHUB_REF"),
            schedule=schedule,
        )


@dataclass(frozen=True)
class TagPolicy:
    """How tags are derived for a repository.

    Attributes:
        nightly_schedule: Cron expression identifying the nightly trigger
            (None accepts any schedule trigger).
        nightly_pattern: Alias applied to nightly runs; may contain
            {{date 'FORMAT'}} expressions.
        sha_prefix: Prefix of the commit tag.
        sha_format: Short (7 chars) or long (full) commit tag.
    """

    nightly_schedule: str | None = "0 1 * * *"
    nightly_pattern: str = "nightly"
    sha_prefix: str = "sha-"
    sha_format: ShaFormat = ShaFormat.SHORT


@dataclass(frozen=True)
class ResolvedTags:
    """Tag set for one run, highest priority first."""

    tags: tuple[str, ...]

    @property
    def primary(self) -> str:
        """The highest priority tag, used for verification."""
        return self.tags[0]

    def references(self, repository: str) -> list[str]:
        """Render 'repository:tag' for every tag."""
        return [f"{repository}:{tag}" for tag in self.tags]


def normalize_cron(expression: str) -> str:
    """Normalize whitespace in a cron expression.

    Args:
        expression: Cron expression.

    Returns:
        Expression with single spaces between fields.

    Raises:
        TagResolutionError: If the expression does not have five fields.
    """
    fields = expression.split()
    if len(fields) != 5:
        raise TagResolutionError(
            f"Invalid cron expression '{expression}': expected 5 fields"
        )
    return " ".join(fields)


def is_nightly_trigger(context: TriggerContext, policy: TagPolicy) -> bool:
    """Check whether a trigger is the recognized nightly schedule."""
    if context.event != TriggerEvent.SCHEDULE:
        return False
    if policy.nightly_schedule is None or context.schedule is None:
        return True
    return normalize_cron(context.schedule) == normalize_cron(policy.nightly_schedule)


def render_pattern(pattern: str, timestamp: datetime) -> str:
    """Render {{date 'FORMAT'}} expressions in a tag pattern.

    FORMAT tokens (YYYY, YY, MM, DD, HH, mm, ss) are matched in one pass;
    any other text in FORMAT is copied unchanged.

    Args:
        pattern: Tag pattern, e.g. "nightly-{{date 'YYYYMMDD'}}".
        timestamp: Time used for date expressions (converted to UTC).

    Returns:
        Rendered tag.
    """
    moment = timestamp.astimezone(timezone.utc)

    def _token(match: re.Match[str]) -> str:
        return moment.strftime(_DATE_TOKENS[match.group(0)])

    def _render(match: re.Match[str]) -> str:
        return _DATE_TOKEN_PATTERN.sub(_token, match.group(1))

    return DATE_EXPRESSION.sub(_render, pattern)


def commit_tag(commit_sha: str, policy: TagPolicy) -> str:
    """Derive the commit tag.

    Args:
        commit_sha: Source commit identifier (hex).
        policy: Tag policy.

    Returns:
        Commit-derived tag (e.g., 'sha-abc1234').

    Raises:
        TagResolutionError: If the commit identifier is not hex.
    """
    sha = commit_sha.strip().lower()
    if not COMMIT_PATTERN.match(sha):
        raise TagResolutionError(f"Invalid commit identifier: '{commit_sha}'")
    if policy.sha_format == ShaFormat.SHORT:
        sha = sha[:SHORT_SHA_LENGTH]
    return f"{policy.sha_prefix}{sha}"


def validate_tag(tag: str) -> str:
    """Validate a Docker tag.

    Raises:
        TagResolutionError: If the tag is not valid.
    """
    if not TAG_PATTERN.match(tag):
        raise TagResolutionError(f"Invalid tag: '{tag}'")
    return tag


def resolve_tags(context: TriggerContext, policy: TagPolicy) -> ResolvedTags:
    """Derive the tag set for a run.

    Args:
        context: Trigger context.
        policy: Tag policy.

    Returns:
        ResolvedTags, highest priority first, without duplicates.

    Raises:
        TagResolutionError: If a tag cannot be derived or is invalid.
    """
    candidates: list[tuple[int, str]] = []

    if is_nightly_trigger(context, policy):
        candidates.append(
            (SCHEDULE_PRIORITY, render_pattern(policy.nightly_pattern, context.timestamp))
        )

    candidates.append((SHA_PRIORITY, commit_tag(context.commit_sha, policy)))

    tags: list[str] = []
    for _, tag in sorted(candidates, key=lambda c: -c[0]):
        validate_tag(tag)
        if tag not in tags:
            tags.append(tag)

    logger.info("Resolved tags for %s trigger: %s", context.event.value, tags)
    return ResolvedTags(tags=tuple(tags))


__all__ = [
    "ResolvedTags",
    "TagPolicy",
    "TriggerContext",
    "commit_tag",
    "is_nightly_trigger",
    "normalize_cron",
    "render_pattern",
    "resolve_tags",
    "validate_tag",
]
