"""
Stage 1: parse editor JSON into a strongly typed WorkflowDefinition.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from steprail.errors import DefinitionError
from steprail.schema.models import WorkflowDefinition


def parse_workflow_definition(payload: Any) -> WorkflowDefinition:
    """
    Accepts either a JSON string or an object compatible with the
    WorkflowDefinition model and returns a validated instance.
    """

    if isinstance(payload, WorkflowDefinition):
        return payload
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise DefinitionError(f"Invalid workflow JSON payload: {exc}") from exc
    elif isinstance(payload, Mapping):
        data = payload
    else:
        raise DefinitionError(
            f"Unsupported payload type {type(payload).__name__}; expected str or Mapping"
        )

    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as exc:
        raise DefinitionError(_format_validation_errors(exc)) from exc


def load_workflow_file(path: str | Path) -> WorkflowDefinition:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise DefinitionError(f"Cannot read workflow file '{path}': {exc}") from exc
    return parse_workflow_definition(text)


def _format_validation_errors(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return messages or [str(exc)]
