"""Extraction and repair of JSON embedded in LLM output."""

from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_CONFIDENCE_RANGE = re.compile(r'("confidence"\s*:\s*)([\d.]+)\s*-\s*[\d.]+')
_TRAILING_COMMA_OBJ = re.compile(r",\s*}")
_TRAILING_COMMA_ARR = re.compile(r",\s*]")


def _alternatives(values: str) -> re.Pattern:
    # "fast_rag or reasoning" / "fast_rag或reasoning" -> first alternative
    return re.compile(rf':\s*"?({values})"?\s*(?:\bor\b|或)[^,}}]*')


_ENUM_ALTERNATIVES = _alternatives("chat|fast_rag|reasoning|low|medium|high")
_BOOL_ALTERNATIVES = _alternatives("true|false")


def repair_json(text: str) -> str:
    """Fix the defects small models commonly put in JSON output."""
    text = _CONFIDENCE_RANGE.sub(r"\1\2", text)
    text = _ENUM_ALTERNATIVES.sub(r': "\1"', text)
    text = _BOOL_ALTERNATIVES.sub(r": \1", text)
    text = _TRAILING_COMMA_OBJ.sub("}", text)
    text = _TRAILING_COMMA_ARR.sub("]", text)
    return text


def extract_json(text: str) -> dict | None:
    """Return the first JSON object found in ``text``, repaired if needed."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return None
    candidate = match.group(0)
    for attempt in (candidate, repair_json(candidate)):
        try:
            data = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def parse_json_model(text: str, model: type[T]) -> T | None:
    data = extract_json(text)
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        return None
