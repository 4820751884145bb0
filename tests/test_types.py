"""Tests for shared types module."""

import pytest

from multiarch.types import (
    BuildStatus,
    OperationResult,
    PlatformTarget,
    RunState,
    ShaFormat,
    TriggerEvent,
)


class TestEnums:
    """Test enum definitions."""

    def test_build_status_values(self) -> None:
        """BuildStatus should have expected values."""
        assert BuildStatus.PENDING.value == "pending"
        assert BuildStatus.RUNNING.value == "running"
        assert BuildStatus.SUCCEEDED.value == "succeeded"
        assert BuildStatus.FAILED.value == "failed"

    def test_run_state_values(self) -> None:
        """RunState should cover every step of a run."""
        assert {s.value for s in RunState} == {
            "dispatched",
            "building",
            "all_succeeded",
            "any_failed",
            "merging",
            "published",
            "merge_failed",
            "verified",
            "verification_failed",
        }

    def test_trigger_event_values(self) -> None:
        assert TriggerEvent("push") == TriggerEvent.PUSH
        assert TriggerEvent("schedule") == TriggerEvent.SCHEDULE
        assert TriggerEvent("manual") == TriggerEvent.MANUAL

    def test_sha_format_values(self) -> None:
        assert ShaFormat.SHORT.value == "short"
        assert ShaFormat.LONG.value == "long"


class TestPlatformTarget:
    """Test PlatformTarget parsing and rendering."""

    def test_parse_pair(self) -> None:
        platform = PlatformTarget.parse("linux/arm64")
        assert platform.os == "linux"
        assert platform.architecture == "arm64"
        assert platform.variant is None
        assert str(platform) == "linux/arm64"

    def test_parse_variant(self) -> None:
        platform = PlatformTarget.parse("linux/arm/v7")
        assert platform.variant == "v7"
        assert str(platform) == "linux/arm/v7"
        assert platform.pair == "linux-arm-v7"

    def test_parse_normalizes_case_and_whitespace(self) -> None:
        assert PlatformTarget.parse(" Linux/AMD64 ") == PlatformTarget("linux", "amd64")

    @pytest.mark.parametrize("value", ["linux", "linux/", "/amd64", "linux/arm/v7/x", ""])
    def test_parse_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="Invalid platform"):
            PlatformTarget.parse(value)

    def test_hashable_and_comparable(self) -> None:
        """Equal platforms should collapse in sets."""
        targets = {
            PlatformTarget.parse("linux/amd64"),
            PlatformTarget("linux", "amd64"),
            PlatformTarget.parse("linux/arm64"),
        }
        assert len(targets) == 2

    @pytest.mark.parametrize(
        ("value", "canonical"),
        [
            ("linux/arm64/v8", "linux/arm64"),
            ("linux/arm64", "linux/arm64"),
            ("linux/aarch64", "linux/arm64"),
            ("linux/x86_64", "linux/amd64"),
            ("linux/arm", "linux/arm/v7"),
            ("linux/arm/v7", "linux/arm/v7"),
            ("linux/arm/v6", "linux/arm/v6"),
        ],
    )
    def test_normalized(self, value: str, canonical: str) -> None:
        assert str(PlatformTarget.parse(value).normalized()) == canonical

    def test_normalized_lowercases(self) -> None:
        platform = PlatformTarget("Linux", "ARM64", "V8")
        assert platform.normalized() == PlatformTarget("linux", "arm64")


class TestOperationResult:
    """Test OperationResult dataclass."""

    def test_success_result(self) -> None:
        result = OperationResult(success=True, message="Published")
        assert result.success is True
        assert result.code is None
        assert result.details == {}

    def test_failure_result(self) -> None:
        result = OperationResult(
            success=False,
            message="Build failed",
            code="build_failed",
            details={"failures": {"linux/arm64": "exit code 1"}},
        )
        assert result.code == "build_failed"
        assert result.details["failures"] == {"linux/arm64": "exit code 1"}
