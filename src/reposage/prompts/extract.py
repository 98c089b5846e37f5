import json
from typing import Any

from pydantic import BaseModel, ValidationError


def extract_json_blocks_from_text(text: str) -> list[str]:
    """Extract all fenced (```) blocks from a text string."""

    lines = text.strip().split("\n")

    start_index: int | None = None
    end_index: int | None = None

    matches: list[str] = []

    for i, line in enumerate(lines):
        if line.startswith("```") and start_index is None:
            start_index = i + 1
            continue
        if line.startswith("```") and start_index is not None and end_index is None:
            end_index = i

        if start_index is not None and end_index is not None:
            matches.append("\n".join(lines[start_index:end_index]))
            start_index = None
            end_index = None

    return matches


def parse_json_object(text: str | None) -> dict[str, Any]:
    """Parse a JSON object from a model response, accepting a bare object or a single fenced block.

    Anything that does not yield a JSON object yields an empty dict."""

    if not text:
        return {}

    candidates: list[str] = [text.strip(), *extract_json_blocks_from_text(text)]

    for candidate in candidates:
        try:
            parsed: Any = json.loads(candidate)
        except ValueError:
            continue

        if isinstance(parsed, dict):
            return parsed  # pyright: ignore[reportUnknownVariableType]

    return {}


def extract_object[T: BaseModel](payload: dict[str, Any], object_type: type[T]) -> T | None:
    """Validate a parsed payload into `object_type`, or None if it does not fit."""

    try:
        return object_type.model_validate(payload)
    except ValidationError:
        return None
