"""Tests for pipeline schema and file loading."""

import json

import pytest
import yaml
from pydantic import ValidationError

from multiarch.pipeline.io import load_pipeline, pipeline_to_yaml_string
from multiarch.pipeline.schema import PipelineSchema
from multiarch.tags.resolver import TagPolicy
from multiarch.types import PlatformTarget, ShaFormat


@pytest.fixture
def pipeline_data():
    """Return a complete pipeline definition."""
    return {
        "image": "flashbots/rollup-boost",
        "platforms": ["linux/amd64", "linux/arm64"],
        "context": ".",
        "dockerfile": "Dockerfile",
        "build_args": {"VERSION": "1.0"},
        "cache_from": ["type=gha"],
        "cache_to": ["type=gha,mode=max"],
        "tags": {"nightly_pattern": "nightly-{{date 'YYYYMMDD'}}", "sha_format": "long"},
    }


class TestPipelineSchema:
    """Test PipelineSchema validation."""

    def test_minimal(self) -> None:
        pipeline = PipelineSchema(image="alpine", platforms=["linux/amd64"])
        assert pipeline.context == "."
        assert pipeline.targets == [PlatformTarget("linux", "amd64")]

    def test_platforms_normalized_in_order(self) -> None:
        pipeline = PipelineSchema(
            image="team/app", platforms=["Linux/ARM64", "linux/arm/v7", "linux/amd64"]
        )
        assert pipeline.platforms == ["linux/arm64", "linux/arm/v7", "linux/amd64"]

    def test_empty_platforms(self) -> None:
        with pytest.raises(ValidationError):
            PipelineSchema(image="team/app", platforms=[])

    def test_duplicate_platforms(self) -> None:
        with pytest.raises(ValidationError, match="duplicate platforms"):
            PipelineSchema(image="team/app", platforms=["linux/amd64", "LINUX/amd64"])

    def test_invalid_platform(self) -> None:
        with pytest.raises(ValidationError, match="Invalid platform"):
            PipelineSchema(image="team/app", platforms=["amd64"])

    def test_image_with_tag_rejected(self) -> None:
        with pytest.raises(ValidationError, match="tag"):
            PipelineSchema(image="team/app:latest", platforms=["linux/amd64"])

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PipelineSchema(image="team/app", platforms=["linux/amd64"], push=True)

    def test_invalid_schedule(self) -> None:
        with pytest.raises(ValidationError, match="5 cron fields"):
            PipelineSchema(
                image="team/app",
                platforms=["linux/amd64"],
                tags={"nightly_schedule": "@daily"},
            )

    def test_build_context(self, tmp_path, pipeline_data) -> None:
        context = PipelineSchema(**pipeline_data).build_context(tmp_path)
        assert context.path == tmp_path.resolve()
        assert context.dockerfile == (tmp_path / "Dockerfile").resolve()
        assert context.build_args == {"VERSION": "1.0"}
        assert context.cache_from == ("type=gha",)
        assert context.cache_to == ("type=gha,mode=max",)

    def test_tag_policy_overlay(self, pipeline_data) -> None:
        defaults = TagPolicy(sha_prefix="git-")
        policy = PipelineSchema(**pipeline_data).tag_policy(defaults)
        assert policy.nightly_pattern == "nightly-{{date 'YYYYMMDD'}}"
        assert policy.sha_format == ShaFormat.LONG
        assert policy.sha_prefix == "git-"
        assert policy.nightly_schedule == "0 1 * * *"

    def test_tag_policy_defaults(self) -> None:
        defaults = TagPolicy(nightly_schedule="0 3 * * *")
        policy = PipelineSchema(image="team/app", platforms=["linux/amd64"]).tag_policy(
            defaults
        )
        assert policy == defaults


class TestLoadPipeline:
    """Test load_pipeline function."""

    def test_load_yaml(self, tmp_path, pipeline_data) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text(yaml.safe_dump(pipeline_data))
        pipeline = load_pipeline(path)
        assert pipeline.image == "flashbots/rollup-boost"
        assert len(pipeline.targets) == 2

    def test_load_json(self, tmp_path, pipeline_data) -> None:
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps(pipeline_data))
        assert load_pipeline(path).build_args == {"VERSION": "1.0"}

    def test_empty_yaml(self, tmp_path) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text("")
        with pytest.raises(ValidationError):
            load_pipeline(path)

    def test_yaml_list_rejected(self, tmp_path) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text("- linux/amd64\n")
        with pytest.raises(ValueError, match="YAML mapping"):
            load_pipeline(path)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_pipeline(tmp_path / "missing.yaml")

    def test_yaml_string_roundtrip(self, tmp_path, pipeline_data) -> None:
        pipeline = PipelineSchema(**pipeline_data)
        path = tmp_path / "out.yaml"
        path.write_text(pipeline_to_yaml_string(pipeline))
        assert load_pipeline(path) == pipeline
