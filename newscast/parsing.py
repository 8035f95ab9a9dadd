"""
Structured-response parsing for model output.

Every stage that asks the generative provider for JSON goes through
parse_structured_response(), so fence stripping, object/array recovery and
shape validation follow one policy. Failures are returned as ParseFailure
values rather than raised.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Union, get_origin

from pydantic import TypeAdapter, ValidationError

from newscast.utils import strip_think_blocks

logger = logging.getLogger(__name__)

_OBJECT_RE = re.compile(r'\{[\s\S]*\}')
_ARRAY_RE = re.compile(r'\[[\s\S]*\]')


@dataclass(frozen=True)
class ParseFailure:
    """Model output that could not be read as the requested shape."""
    reason: str
    raw: str = ""


def _expects_array(shape) -> bool:
    return shape is list or get_origin(shape) is list


def _candidates(cleaned: str, want_array: bool):
    """Yield JSON substrings to try, most likely first."""
    patterns = (_ARRAY_RE, _OBJECT_RE) if want_array else (_OBJECT_RE, _ARRAY_RE)
    for pattern in patterns:
        match = pattern.search(cleaned)
        if match:
            yield match.group()
    yield cleaned.strip()


def _strip_fences(text: str) -> str:
    cleaned = strip_think_blocks(text or "")
    cleaned = re.sub(r'```(?:json)?\s*', '', cleaned)
    return re.sub(r'```', '', cleaned).strip()


def extract_json(text: str, want_array: bool = False):
    """Pull the first decodable JSON value out of an LLM response.

    Handles markdown code fences and prose around the payload.
    Raises ValueError when nothing decodes.
    """
    cleaned = _strip_fences(text)
    for candidate in _candidates(cleaned, want_array):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError("no JSON value found in response")


def parse_structured_response(raw: str, shape: Any = dict, strict: bool = False) -> Union[Any, ParseFailure]:
    """Parse model output into `shape`, or return a ParseFailure.

    Args:
        raw: Raw text returned by the generative provider.
        shape: Any type pydantic can validate: dict, list, a BaseModel
            subclass, List[str], List[SomeModel], ...
        strict: Only code fences and think blocks are removed; the rest of
            the text must decode as a whole. No extraction from surrounding
            prose and no unwrapping of {"key": [...]} objects.

    Returns:
        The validated value, or ParseFailure describing what went wrong.
    """
    if not raw or not raw.strip():
        return ParseFailure("empty response", raw or "")
    want_array = _expects_array(shape)
    if strict:
        try:
            data = json.loads(_strip_fences(raw))
        except json.JSONDecodeError as e:
            logger.debug("Strict parse failed: %s | raw=%.200s", e, raw)
            return ParseFailure(f"not valid JSON: {e.msg}", raw)
        if want_array and not isinstance(data, list):
            return ParseFailure("expected a JSON array", raw)
    else:
        try:
            data = extract_json(raw, want_array=want_array)
        except ValueError as e:
            logger.debug("Structured parse failed: %s | raw=%.200s", e, raw)
            return ParseFailure(str(e), raw)

    # A lone object where a list was requested is usually a wrapper: {"topics": [...]}
    if want_array and isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list)]
        if len(lists) != 1:
            return ParseFailure("expected a JSON array", raw)
        data = lists[0]

    try:
        return TypeAdapter(shape).validate_python(data)
    except ValidationError as e:
        logger.debug("Structured response failed validation: %s", e)
        return ParseFailure(f"invalid shape: {e.error_count()} error(s)", raw)
