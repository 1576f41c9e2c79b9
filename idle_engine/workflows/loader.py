"""
Workflow, request and execution-options loaders.

Reads ``.yaml``/``.yml``/``.json`` documents and validates them into the
engine models. Parse and validation failures raise the engine
ValidationError naming the file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ..errors import ValidationError
from ..models import ExecutionOptions, LifecycleRequest, WorkflowDefinition

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")
JSON_SUFFIXES = (".json",)


def load_document(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML or JSON document into a plain mapping.

    Args:
        path: File to read

    Returns:
        The parsed top-level mapping
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(f"File not found: {path}", path=str(path))

    suffix = path.suffix.lower()
    try:
        with open(path, encoding="utf-8") as f:
            if suffix in YAML_SUFFIXES:
                data = yaml.safe_load(f)
            elif suffix in JSON_SUFFIXES:
                data = json.load(f)
            else:
                raise ValidationError(
                    f"Unsupported file type '{suffix}' for {path}; expected .yaml, .yml or .json",
                    path=str(path),
                )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValidationError(f"Could not parse {path}: {e}", path=str(path)) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping at the top level", path=str(path))

    logger.debug(f"Loaded document {path}")
    return data


def load_workflow(path: Union[str, Path]) -> WorkflowDefinition:
    """Load and validate a workflow definition file."""
    workflow = WorkflowDefinition.from_data(load_document(path), source=Path(path).name)
    logger.info(f"Loaded workflow '{workflow.name}' ({workflow.lifecycle_event}) from {path}")
    return workflow


def load_request(path: Union[str, Path]) -> LifecycleRequest:
    """Load and validate a lifecycle request file."""
    return LifecycleRequest.from_data(load_document(path), source=Path(path).name)


def load_execution_options(path: Union[str, Path]) -> ExecutionOptions:
    """Load and validate an execution options file."""
    return ExecutionOptions.from_data(load_document(path), source=Path(path).name)
