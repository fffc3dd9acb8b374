"""Parse-or-default boundary for structured LLM output.

Models asked for JSON sometimes wrap it in code fences, add prose around
it, or return something that does not match the requested shape. Every
structured ask goes through ``parse_json_or_default`` so the fallback path
is an explicit, tagged result instead of an exception.
"""

import json
import re
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


@dataclass(frozen=True)
class Parsed(Generic[ModelT]):
    """The response matched the schema."""

    value: ModelT

    @property
    def is_fallback(self) -> bool:
        return False


@dataclass(frozen=True)
class Fallback(Generic[ModelT]):
    """The default was used; ``reason`` says why."""

    value: ModelT
    reason: str

    @property
    def is_fallback(self) -> bool:
        return True


ParseResult = Parsed[ModelT] | Fallback[ModelT]


def extract_json_text(text: str) -> str:
    """Strip code fences and surrounding prose from a JSON object response."""
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1).strip()
    if stripped.startswith("{"):
        return stripped
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        return stripped[start : end + 1]
    return stripped


def parse_json_or_default(
    text: str | None,
    schema: type[ModelT],
    default: ModelT,
) -> ParseResult[ModelT]:
    """Validate ``text`` as JSON against ``schema`` or return ``default``."""
    if text is None or not text.strip():
        return Fallback(value=default, reason="empty response")

    try:
        data = json.loads(extract_json_text(text))
    except json.JSONDecodeError as exc:
        return Fallback(value=default, reason=f"invalid JSON: {exc.msg}")

    if not isinstance(data, dict):
        return Fallback(
            value=default,
            reason=f"expected a JSON object, got {type(data).__name__}",
        )

    try:
        return Parsed(value=schema.model_validate(data))
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "<root>"
            for error in exc.errors()
        )
        return Fallback(value=default, reason=f"schema mismatch: {fields}")
