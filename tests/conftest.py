"""Shared fixtures and in-memory collaborators for multiarch tests."""

import threading
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from multiarch.builds.digests import digest_for_content
from multiarch.builds.runner import BuildContext, BuildExecutionError, BuildResult
from multiarch.config import Settings
from multiarch.db import create_all_tables
from multiarch.errors import RegistryFailureError
from multiarch.registry.models import ManifestEntry, ManifestList
from multiarch.types import PlatformTarget


class FakeImageBuilder:
    """ImageBuilder that derives digests from platform content.

    Attributes:
        fail: Platforms (as strings) whose builds fail.
        content: Optional per-platform content override, used to force
            two platforms to produce identical images.
        calls: Platforms built, in completion order.
    """

    def __init__(
        self,
        fail: Sequence[str] = (),
        content: dict[str, bytes] | None = None,
    ) -> None:
        self.fail = set(fail)
        self.content = content or {}
        self.calls: list[PlatformTarget] = []
        self._lock = threading.Lock()

    def digest_for(self, platform: PlatformTarget, repository: str) -> str:
        data = self.content.get(str(platform), f"{repository}|{platform}".encode())
        return digest_for_content(data)

    def build(
        self,
        context: BuildContext,
        platform: PlatformTarget,
        repository: str,
        log_dir: Path,
    ) -> BuildResult:
        with self._lock:
            self.calls.append(platform)
        if str(platform) in self.fail:
            raise BuildExecutionError(
                f"Build for {platform} failed with exit code 1",
                exit_code=1,
                code="build_failed",
            )
        now = datetime.now(timezone.utc)
        return BuildResult(
            platform=platform,
            digest=self.digest_for(platform, repository),
            log_path=None,
            started_at=now,
            finished_at=now,
        )


class FakeRegistry:
    """In-memory RegistryClient.

    Attributes:
        manifests: Published manifest lists keyed by 'repository:tag'.
        publish_calls: (repository, digests, tags) per publish call.
        inspect_calls: References read back.
        fail_publish: Make every publish call fail.
    """

    def __init__(self, fail_publish: bool = False) -> None:
        self.manifests: dict[str, ManifestList] = {}
        self.publish_calls: list[tuple[str, list[str], list[str]]] = []
        self.inspect_calls: list[str] = []
        self.logins: list[tuple[str, str]] = []
        self.fail_publish = fail_publish

    def login(self, registry: str, username: str, password: str) -> None:
        self.logins.append((registry, username))

    def publish_manifest_list(
        self,
        repository: str,
        digests: Sequence[str],
        tags: Sequence[str],
    ) -> None:
        self.publish_calls.append((repository, list(digests), list(tags)))
        if self.fail_publish:
            raise RegistryFailureError(f"Publishing {repository} failed")
        entries = [ManifestEntry(digest=d) for d in digests]
        for tag in tags:
            self.manifests[f"{repository}:{tag}"] = ManifestList(
                reference=f"{repository}:{tag}", entries=list(entries)
            )

    def inspect(self, reference: str) -> ManifestList:
        self.inspect_calls.append(reference)
        try:
            return self.manifests[reference]
        except KeyError:
            raise RegistryFailureError(f"{reference} not found") from None


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine with all tables."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    create_all_tables(engine)
    return engine


@pytest.fixture
def session_factory(engine):
    """Create a session factory for testing."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """Create a session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory."""
    return Settings(
        work_dir=tmp_path / "work",
        lock_dir=tmp_path / "locks",
        db_url=f"sqlite:///{tmp_path / 'test.db'}",
        max_concurrent_builds=4,
    )


@pytest.fixture
def builder():
    return FakeImageBuilder()


@pytest.fixture
def registry():
    return FakeRegistry()
