"""Tests for builds/runner.py module.

Tests buildx command composition and build execution with a mocked
subprocess.
"""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from multiarch.builds.digests import digest_for_content
from multiarch.builds.runner import (
    BuildContext,
    BuildExecutionError,
    BuildxImageBuilder,
    compose_buildx_command,
    compose_output_arg,
    read_metadata_digest,
    run_build,
)
from multiarch.types import PlatformTarget

REPO = "flashbots/rollup-boost"
ARM64 = PlatformTarget.parse("linux/arm64")
DIGEST = digest_for_content(b"arm64 image")


def _write_metadata(digest: str):
    """Side effect that writes the buildx metadata file like buildx does."""

    def _run(cmd, **kwargs):
        metadata_file = Path(cmd[cmd.index("--metadata-file") + 1])
        metadata_file.write_text(json.dumps({"containerimage.digest": digest}))
        return MagicMock(returncode=0)

    return _run


class TestComposeCommand:
    """Test compose_buildx_command function."""

    def test_minimal_command(self, tmp_path) -> None:
        cmd = compose_buildx_command(
            BuildContext(path=tmp_path), ARM64, REPO, tmp_path / "meta.json"
        )
        assert cmd[:5] == ["docker", "buildx", "build", "--platform", "linux/arm64"]
        assert cmd[-1] == str(tmp_path)
        assert "--tag" not in cmd
        assert "-t" not in cmd
        output = cmd[cmd.index("--output") + 1]
        assert output == compose_output_arg(REPO)
        assert "push-by-digest=true" in output
        assert cmd[cmd.index("--metadata-file") + 1] == str(tmp_path / "meta.json")

    def test_full_context(self, tmp_path) -> None:
        context = BuildContext(
            path=tmp_path,
            dockerfile=tmp_path / "Dockerfile.release",
            build_args={"VERSION": "1.0", "FEATURES": "all"},
            cache_from=("type=gha",),
            cache_to=("type=gha,mode=max",),
        )
        cmd = compose_buildx_command(
            context, ARM64, REPO, tmp_path / "m.json", docker_bin="/usr/bin/docker"
        )
        assert cmd[0] == "/usr/bin/docker"
        assert cmd[cmd.index("--file") + 1] == str(tmp_path / "Dockerfile.release")
        build_args = [cmd[i + 1] for i, a in enumerate(cmd) if a == "--build-arg"]
        assert build_args == ["FEATURES=all", "VERSION=1.0"]
        assert cmd[cmd.index("--cache-from") + 1] == "type=gha"
        assert cmd[cmd.index("--cache-to") + 1] == "type=gha,mode=max"


class TestReadMetadataDigest:
    """Test read_metadata_digest function."""

    def test_valid(self, tmp_path) -> None:
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"containerimage.digest": DIGEST}))
        assert read_metadata_digest(path) == DIGEST

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(BuildExecutionError) as exc_info:
            read_metadata_digest(tmp_path / "none.json")
        assert exc_info.value.code == "metadata_missing"

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "m.json"
        path.write_text("{not json")
        with pytest.raises(BuildExecutionError) as exc_info:
            read_metadata_digest(path)
        assert exc_info.value.code == "metadata_invalid"

    def test_missing_key(self, tmp_path) -> None:
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"image.name": REPO}))
        with pytest.raises(BuildExecutionError, match="containerimage.digest"):
            read_metadata_digest(path)

    def test_malformed_digest(self, tmp_path) -> None:
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"containerimage.digest": "sha256:short"}))
        with pytest.raises(BuildExecutionError) as exc_info:
            read_metadata_digest(path)
        assert exc_info.value.code == "metadata_invalid"


class TestRunBuild:
    """Test run_build function."""

    def test_successful_build(self, tmp_path) -> None:
        with patch("subprocess.run", side_effect=_write_metadata(DIGEST)) as mock_run:
            result = run_build(BuildContext(path=tmp_path), ARM64, REPO, tmp_path / "logs")

        assert result.digest == DIGEST
        assert result.platform == ARM64
        assert result.log_path == tmp_path / "logs" / "build-linux-arm64.log"
        assert "# Exit code: 0" in result.log_path.read_text()
        assert "buildx build" in result.command
        mock_run.assert_called_once()

    def test_failed_build(self, tmp_path) -> None:
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1)
            with pytest.raises(BuildExecutionError) as exc_info:
                run_build(BuildContext(path=tmp_path), ARM64, REPO, tmp_path)

        assert exc_info.value.exit_code == 1
        assert exc_info.value.code == "build_failed"
        assert exc_info.value.log_path == tmp_path / "build-linux-arm64.log"

    def test_missing_docker(self, tmp_path) -> None:
        with patch("subprocess.run", side_effect=FileNotFoundError("docker")):
            with pytest.raises(BuildExecutionError) as exc_info:
                run_build(BuildContext(path=tmp_path), ARM64, REPO, tmp_path)
        assert exc_info.value.code == "execution_error"

    def test_stale_metadata_is_not_reused(self, tmp_path) -> None:
        """A metadata file from an earlier build must not supply the digest."""
        (tmp_path / "metadata-linux-arm64.json").write_text(
            json.dumps({"containerimage.digest": DIGEST})
        )
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            with pytest.raises(BuildExecutionError) as exc_info:
                run_build(BuildContext(path=tmp_path), ARM64, REPO, tmp_path)
        assert exc_info.value.code == "metadata_missing"
        assert exc_info.value.log_path == tmp_path / "build-linux-arm64.log"

    def test_buildx_image_builder(self, tmp_path) -> None:
        builder = BuildxImageBuilder(docker_bin="podman")
        with patch("subprocess.run", side_effect=_write_metadata(DIGEST)) as mock_run:
            result = builder.build(BuildContext(path=tmp_path), ARM64, REPO, tmp_path)
        assert result.digest == DIGEST
        assert mock_run.call_args.args[0][0] == "podman"
