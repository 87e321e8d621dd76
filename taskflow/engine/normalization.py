"""Normalization of AI JSON replies.

Providers in JSON mode do not reliably return the shape that was asked for. A
list request may come back as a bare array, as an object wrapping the array, or
as the single item itself. `normalize_list` accepts exactly these shapes, in
this order:

1. array   - the reply is a JSON array
2. wrapped - the reply is an object; take the value under `wrapper_key`, else
             the first property holding a non-empty array of objects
3. single  - the reply is one bare object (only when `promote_single` is set)

Anything else is an `AIResponseError`. Items are validated with a pydantic model.
"""

import json
import logging
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Type

from pydantic import BaseModel, ValidationError

from taskflow.integrations.errors import AIResponseError
from taskflow.integrations.openai_client import strip_code_fences

logger = logging.getLogger(__name__)


class ResponseShape(str, Enum):
    """Shape the reply arrived in."""
    ARRAY = "array"
    WRAPPED = "wrapped"
    SINGLE = "single"


class Normalized(NamedTuple):
    shape: ResponseShape
    items: List[BaseModel]


def parse_json(raw: str) -> Any:
    """Decode a reply, tolerating a markdown code fence around it."""
    try:
        return json.loads(strip_code_fences(raw))
    except (TypeError, json.JSONDecodeError) as e:
        raise AIResponseError(f"AI reply is not valid JSON: {type(e).__name__}") from e


def _unwrap(value: dict, wrapper_key: Optional[str]) -> Optional[list]:
    if wrapper_key and isinstance(value.get(wrapper_key), list):
        return value[wrapper_key]
    for candidate in value.values():
        if isinstance(candidate, list) and candidate and all(isinstance(item, dict) for item in candidate):
            return candidate
    return None


def _validate(items: list, model: Type[BaseModel]) -> List[BaseModel]:
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as e:
        raise AIResponseError(f"AI reply failed {model.__name__} validation: {e.error_count()} error(s)") from e


def normalize_list(
    raw: str,
    model: Type[BaseModel],
    wrapper_key: Optional[str] = None,
    promote_single: bool = False,
    min_items: int = 0,
) -> Normalized:
    """Normalize a reply expected to hold a list of `model` items.

    Raises:
        AIResponseError: Invalid JSON, an unsupported shape, fewer than
            `min_items` items, or items failing validation
    """
    value = parse_json(raw)

    if isinstance(value, list):
        shape, items = ResponseShape.ARRAY, value
    elif isinstance(value, dict):
        items = _unwrap(value, wrapper_key)
        if items is not None:
            shape = ResponseShape.WRAPPED
        elif promote_single:
            shape, items = ResponseShape.SINGLE, [value]
        else:
            raise AIResponseError(f"AI reply object has no list of {model.__name__} items")
    else:
        raise AIResponseError(f"AI reply is a {type(value).__name__}, expected a list")

    if len(items) < min_items:
        raise AIResponseError(f"AI reply holds {len(items)} {model.__name__} item(s), expected at least {min_items}")

    logger.debug(f"Normalized {len(items)} {model.__name__} item(s) from {shape.value} reply")
    return Normalized(shape, _validate(items, model))


def normalize_object(raw: str, model: Type[BaseModel]) -> BaseModel:
    """Normalize a reply expected to hold one `model` object.

    A one-element array is accepted as well.
    """
    value = parse_json(raw)
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if not isinstance(value, dict):
        raise AIResponseError(f"AI reply is not a {model.__name__} object")
    return _validate([value], model)[0]
