"""Pipeline definitions: which image, which platforms, which tags."""

from multiarch.pipeline.io import load_pipeline
from multiarch.pipeline.schema import PipelineSchema, TagsSchema

__all__ = ["PipelineSchema", "TagsSchema", "load_pipeline"]
