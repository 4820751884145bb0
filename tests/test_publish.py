"""Tests for publish/merger.py and publish/verify.py modules."""

import pytest
from conftest import FakeRegistry

from multiarch.builds.dispatcher import BuildOutcome
from multiarch.errors import RegistryFailureError, VerificationFailureError
from multiarch.publish.merger import merge_and_publish, plan_manifest_list
from multiarch.publish.verify import verify_publication
from multiarch.registry.models import ManifestEntry, ManifestList
from multiarch.types import BuildStatus, PlatformTarget

REPO = "flashbots/rollup-boost"
D1 = "sha256:" + "a" * 64
D2 = "sha256:" + "b" * 64
D3 = "sha256:" + "c" * 64
AMD64 = PlatformTarget.parse("linux/amd64")
ARM64 = PlatformTarget.parse("linux/arm64")


def _outcome(platform: PlatformTarget, digest: str) -> BuildOutcome:
    return BuildOutcome(platform=platform, status=BuildStatus.SUCCEEDED, digest=digest)


class TestPlanManifestList:
    """Test plan_manifest_list function."""

    def test_labels_platforms_from_outcomes(self) -> None:
        manifest = plan_manifest_list(
            REPO, [D1, D2], [_outcome(AMD64, D1), _outcome(ARM64, D2)]
        )
        assert [(e.digest, e.platform) for e in manifest.entries] == [
            (D1, AMD64),
            (D2, ARM64),
        ]

    def test_duplicate_digests_collapse(self) -> None:
        manifest = plan_manifest_list(REPO, [D1, D1, D2])
        assert [e.digest for e in manifest.entries] == [D1, D2]
        assert all(e.platform is None for e in manifest.entries)


class TestMergeAndPublish:
    """Test merge_and_publish function."""

    def test_single_publish_call_with_every_tag(self) -> None:
        registry = FakeRegistry()
        manifest = merge_and_publish(
            registry, REPO, [D1, D2], ["nightly", "sha-abc1234"], run_id=3
        )

        assert registry.publish_calls == [(REPO, [D1, D2], ["nightly", "sha-abc1234"])]
        assert manifest.reference == f"{REPO}:nightly"
        assert set(registry.manifests) == {f"{REPO}:nightly", f"{REPO}:sha-abc1234"}

    def test_publish_failure_carries_run_id(self) -> None:
        registry = FakeRegistry(fail_publish=True)
        with pytest.raises(RegistryFailureError) as exc_info:
            merge_and_publish(registry, REPO, [D1], ["nightly"], run_id=9)
        assert exc_info.value.run_id == 9
        assert registry.manifests == {}

    def test_no_digests(self) -> None:
        registry = FakeRegistry()
        with pytest.raises(RegistryFailureError, match="No digests"):
            merge_and_publish(registry, REPO, [], ["nightly"])
        assert registry.publish_calls == []

    def test_no_tags(self) -> None:
        registry = FakeRegistry()
        with pytest.raises(RegistryFailureError, match="No tags"):
            merge_and_publish(registry, REPO, [D1], [])
        assert registry.publish_calls == []


class TestVerifyPublication:
    """Test verify_publication function."""

    def _publish(self, registry: FakeRegistry, entries: list[ManifestEntry]) -> None:
        registry.manifests[f"{REPO}:nightly"] = ManifestList(
            reference=f"{REPO}:nightly", entries=entries
        )

    def test_matching_platforms(self) -> None:
        registry = FakeRegistry()
        self._publish(
            registry,
            [
                ManifestEntry(digest=D1, platform=AMD64),
                ManifestEntry(digest=D2, platform=ARM64),
                ManifestEntry(digest=D3, platform=PlatformTarget("unknown", "unknown")),
            ],
        )
        manifest = verify_publication(registry, REPO, "nightly", [AMD64, ARM64])
        assert registry.inspect_calls == [f"{REPO}:nightly"]
        assert len(manifest.images) == 2

    def test_count_only_without_platform_metadata(self) -> None:
        registry = FakeRegistry()
        self._publish(registry, [ManifestEntry(digest=D1), ManifestEntry(digest=D2)])
        verify_publication(registry, REPO, "nightly", [AMD64, ARM64])

    def test_missing_platform(self) -> None:
        registry = FakeRegistry()
        self._publish(registry, [ManifestEntry(digest=D1, platform=AMD64)])
        with pytest.raises(VerificationFailureError, match="expected 2"):
            verify_publication(registry, REPO, "nightly", [AMD64, ARM64], run_id=4)

    def test_wrong_platform(self) -> None:
        registry = FakeRegistry()
        riscv = PlatformTarget.parse("linux/riscv64")
        self._publish(
            registry,
            [
                ManifestEntry(digest=D1, platform=AMD64),
                ManifestEntry(digest=D2, platform=riscv),
            ],
        )
        with pytest.raises(VerificationFailureError, match="linux/riscv64"):
            verify_publication(registry, REPO, "nightly", [AMD64, ARM64])

    def test_unreadable(self) -> None:
        with pytest.raises(VerificationFailureError, match="Could not read back") as exc_info:
            verify_publication(FakeRegistry(), REPO, "nightly", [AMD64], run_id=2)
        assert exc_info.value.run_id == 2
        assert exc_info.value.code == "verification_failed"

    def test_arm64_v8_matches_plain_arm64(self) -> None:
        registry = FakeRegistry()
        self._publish(
            registry,
            [
                ManifestEntry(digest=D1, platform=AMD64),
                ManifestEntry(digest=D2, platform=ARM64),
            ],
        )
        expected = [AMD64, PlatformTarget.parse("linux/arm64/v8")]
        manifest = verify_publication(registry, REPO, "nightly", expected)
        assert len(manifest.images) == 2

    def test_arm_v7_matches_bare_arm(self) -> None:
        registry = FakeRegistry()
        self._publish(
            registry,
            [
                ManifestEntry(digest=D1, platform=PlatformTarget("Linux", "ARM", "V7")),
                ManifestEntry(digest=D2, platform=PlatformTarget("linux", "aarch64")),
            ],
        )
        expected = [PlatformTarget.parse("linux/arm"), PlatformTarget.parse("linux/arm64/v8")]
        verify_publication(registry, REPO, "nightly", expected)

    def test_arm_v6_does_not_match_arm_v7(self) -> None:
        registry = FakeRegistry()
        self._publish(
            registry,
            [ManifestEntry(digest=D1, platform=PlatformTarget.parse("linux/arm/v6"))],
        )
        with pytest.raises(VerificationFailureError, match="linux/arm/v6"):
            verify_publication(
                registry, REPO, "nightly", [PlatformTarget.parse("linux/arm/v7")]
            )
