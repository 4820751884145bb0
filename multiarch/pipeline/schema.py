"""Pydantic models for pipeline file validation.

A pipeline file describes one image: the repository it is published to,
the ordered platforms it is built for, the shared build context, and how
its tags are derived.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from multiarch.builds.runner import BuildContext
from multiarch.registry.models import parse_repository
from multiarch.tags.resolver import TagPolicy
from multiarch.types import PlatformTarget, ShaFormat


class TagsSchema(BaseModel):
    """Schema for tag derivation settings.

    Unset fields fall back to the application settings.
    """

    model_config = ConfigDict(extra="forbid")

    nightly_schedule: str | None = Field(
        default=None, description="Cron expression of the nightly trigger"
    )
    nightly_pattern: str | None = Field(
        default=None, description="Alias applied to nightly runs"
    )
    sha_prefix: str | None = Field(default=None, description="Commit tag prefix")
    sha_format: ShaFormat | None = Field(default=None, description="short or long")

    @field_validator("nightly_schedule")
    @classmethod
    def validate_schedule(cls, v: str | None) -> str | None:
        """Validate the cron expression has five fields."""
        if v is not None and len(v.split()) != 5:
            raise ValueError(f"nightly_schedule must have 5 cron fields, got '{v}'")
        return v


class PipelineSchema(BaseModel):
    """Schema for a multi-platform image pipeline.

    Attributes:
        image: Target repository coordinate (e.g., 'flashbots/rollup-boost').
        platforms: Ordered platform list ('os/arch[/variant]').
        context: Build context directory, relative to the pipeline file.
        dockerfile: Optional Dockerfile path, relative to the pipeline file.
        build_args: Build-time variables.
        cache_from: Cache import specs.
        cache_to: Cache export specs.
        tags: Tag derivation settings.
    """

    model_config = ConfigDict(extra="forbid")

    image: str = Field(description="Target repository coordinate")
    platforms: list[str] = Field(min_length=1, description="Ordered platform list")
    context: str = Field(default=".", description="Build context directory")
    dockerfile: str | None = Field(default=None, description="Dockerfile path")
    build_args: dict[str, str] = Field(default_factory=dict)
    cache_from: list[str] = Field(default_factory=list)
    cache_to: list[str] = Field(default_factory=list)
    tags: TagsSchema = Field(default_factory=TagsSchema)

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        """Validate the repository coordinate."""
        parse_repository(v)
        return v.strip()

    @field_validator("platforms")
    @classmethod
    def validate_platforms(cls, v: list[str]) -> list[str]:
        """Validate platforms parse and are unique, normalizing them."""
        normalized = [str(PlatformTarget.parse(p)) for p in v]
        duplicates = sorted({p for p in normalized if normalized.count(p) > 1})
        if duplicates:
            raise ValueError(f"duplicate platforms: {', '.join(duplicates)}")
        return normalized

    @property
    def targets(self) -> list[PlatformTarget]:
        """Platforms as PlatformTarget instances, in configured order."""
        return [PlatformTarget.parse(p) for p in self.platforms]

    def build_context(self, base_path: Path) -> BuildContext:
        """Resolve the shared build context against a base directory.

        Args:
            base_path: Directory the relative paths are resolved against.

        Returns:
            BuildContext instance.
        """
        return BuildContext(
            path=(base_path / self.context).resolve(),
            dockerfile=(base_path / self.dockerfile).resolve()
            if self.dockerfile
            else None,
            build_args=dict(self.build_args),
            cache_from=tuple(self.cache_from),
            cache_to=tuple(self.cache_to),
        )

    def tag_policy(self, defaults: TagPolicy) -> TagPolicy:
        """Overlay this pipeline's tag settings on default settings."""
        return TagPolicy(
            nightly_schedule=self.tags.nightly_schedule
            if self.tags.nightly_schedule is not None
            else defaults.nightly_schedule,
            nightly_pattern=self.tags.nightly_pattern or defaults.nightly_pattern,
            sha_prefix=self.tags.sha_prefix
            if self.tags.sha_prefix is not None
            else defaults.sha_prefix,
            sha_format=self.tags.sha_format or defaults.sha_format,
        )


__all__ = ["PipelineSchema", "TagsSchema"]
