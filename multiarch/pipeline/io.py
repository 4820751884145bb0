"""Pipeline file loading.

This module provides helpers for loading pipeline definitions from
YAML or JSON files and validating them against the schema.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from multiarch.pipeline.schema import PipelineSchema


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValueError: If the top level is not an object.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_pipeline(path: Path) -> PipelineSchema:
    """Load and validate a pipeline from a YAML or JSON file.

    The format is chosen by file extension (.json for JSON, anything
    else is read as YAML).

    Args:
        path: Path to the pipeline file.

    Returns:
        Validated PipelineSchema instance.

    Raises:
        pydantic.ValidationError: If data does not match schema.
    """
    if path.suffix.lower() == ".json":
        data = load_json(path)
    else:
        data = load_yaml(path)
    return PipelineSchema.model_validate(data)


def pipeline_to_yaml_string(pipeline: PipelineSchema) -> str:
    """Render a pipeline as YAML text."""
    data = pipeline.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


__all__ = ["load_json", "load_pipeline", "load_yaml", "pipeline_to_yaml_string"]
