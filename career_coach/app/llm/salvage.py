"""Parsing of structured model output, with recovery of truncated arrays.

Generation backends cut long answers off at their token budget. When the
answer is a JSON object holding a long array, everything before the cut is
usually intact. `salvage_array` walks the raw text and keeps each array
element that parses on its own and carries the required keys.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Sequence

from langchain_core.utils.json import parse_json_markdown

log = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?\s*```\s*$")


@dataclass(frozen=True)
class SalvageRule:
    """Which array may be salvaged and what a usable element must contain.

    Attributes:
        array_field (str): Name of the array field in the top-level object.
        required_keys (tuple[str, ...]): Keys every kept element must have, with a non-empty value.

    """

    array_field: str
    required_keys: tuple[str, ...] = field(default_factory=tuple)


class ScanState(Enum):
    SEEKING_ARRAY = "seeking-array"
    IN_ARRAY_BEFORE_OBJECT = "in-array-before-object"
    IN_OBJECT = "in-object"
    DONE = "done"


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN_RE.sub("", cleaned)
        cleaned = _FENCE_CLOSE_RE.sub("", cleaned)
    return cleaned


def parse_structured_output(raw: str) -> Any:
    """Parse a complete JSON payload, tolerating a Markdown code fence.

    Args:
        raw (str): The model's text.

    Returns:
        Any: The decoded JSON value.

    Raises:
        json.JSONDecodeError: If the text is not a complete JSON document.

    Notes:
        1. A strict parser is used. A truncated document is an error here and
           is never closed up into a plausible-looking value.

    """
    return parse_json_markdown(raw, parser=json.loads)


def _find_array_start(text: str, array_field: str) -> int:
    """Return the index just past the `[` opening `array_field`, or -1."""
    token = f'"{array_field}"'
    position = text.find(token)
    while position != -1:
        cursor = position + len(token)
        while cursor < len(text) and text[cursor].isspace():
            cursor += 1
        if cursor < len(text) and text[cursor] == ":":
            cursor += 1
            while cursor < len(text) and text[cursor].isspace():
                cursor += 1
            if cursor < len(text) and text[cursor] == "[":
                return cursor + 1
        position = text.find(token, position + 1)
    return -1


def iter_array_elements(text: str, array_field: str) -> Iterator[str]:
    """Yield the source text of every complete object in `array_field`.

    The scan is a small state machine. Brace depth is only tracked outside
    string literals, so a `{` or `}` inside a quoted value does not end an
    element early. An element still open when the text runs out is not yielded.

    Args:
        text (str): Raw model output, possibly truncated.
        array_field (str): Name of the array to scan.

    Yields:
        str: The text of one `{...}` element, braces included.

    """
    state = ScanState.SEEKING_ARRAY
    position = 0
    depth = 0
    start = -1
    in_string = False
    escaped = False

    while state is not ScanState.DONE and position < len(text):
        if state is ScanState.SEEKING_ARRAY:
            position = _find_array_start(text, array_field)
            if position == -1:
                return
            state = ScanState.IN_ARRAY_BEFORE_OBJECT
            continue

        char = text[position]

        if state is ScanState.IN_ARRAY_BEFORE_OBJECT:
            if char == "{":
                state = ScanState.IN_OBJECT
                depth = 1
                start = position
                in_string = False
                escaped = False
            elif char == "]":
                state = ScanState.DONE
        elif state is ScanState.IN_OBJECT:
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : position + 1]
                    state = ScanState.IN_ARRAY_BEFORE_OBJECT

        position += 1


def _has_required_keys(element: Any, required_keys: Sequence[str]) -> bool:
    if not isinstance(element, dict):
        return False
    return all(element.get(key) not in (None, "", [], {}) for key in required_keys)


def salvage_array(raw: str, array_field: str, required_keys: Sequence[str] = ()) -> list[dict]:
    """Recover the complete, well-formed elements of a truncated array.

    Args:
        raw (str): Raw model output that failed to parse.
        array_field (str): Name of the array to recover.
        required_keys (Sequence[str]): Keys each kept element must carry.

    Returns:
        list[dict]: The recovered elements, in order. May be empty.

    Notes:
        1. Each candidate element is parsed on its own.
        2. Candidates that fail to parse or lack a required key are discarded silently.

    """
    recovered = []
    for candidate in iter_array_elements(strip_code_fences(raw), array_field):
        try:
            element = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if _has_required_keys(element, required_keys):
            recovered.append(element)
    return recovered


def parse_or_salvage(raw: str, rule: SalvageRule | None = None) -> tuple[Any, bool]:
    """Parse model output, falling back to array salvage when a rule is given.

    Args:
        raw (str): The model's text.
        rule (SalvageRule | None): Enables salvage of one array field.

    Returns:
        tuple[Any, bool]: The payload and whether it was salvaged. A salvaged
            payload is `{rule.array_field: [elements]}` and holds a lower bound
            of what the model meant to return.

    Raises:
        json.JSONDecodeError: The original parse error, when there is no rule
            or when salvage recovers nothing.

    """
    try:
        return parse_structured_output(raw), False
    except json.JSONDecodeError as parse_error:
        if rule is None:
            raise
        elements = salvage_array(raw, rule.array_field, rule.required_keys)
        if not elements:
            raise parse_error
        _msg = f"Salvaged {len(elements)} '{rule.array_field}' elements from a malformed response"
        log.warning(_msg)
        return {rule.array_field: elements}, True
