"""Utilities for handling chat model translation replies."""

import json
import logging
import re
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class GPTJSONParsingError(Exception):
    """
    Exception for unparsable model replies.

    Treated as transient: the model usually returns well-formed JSON on the
    next attempt.
    """


def clean_markdown_code_fences(response: str) -> str:
    """
    Remove markdown code fences from a model reply.

    Examples:
        >>> clean_markdown_code_fences('```json\\n[{"id": 1}]\\n```')
        '[{"id": 1}]'
        >>> clean_markdown_code_fences('[{"id": 1}]')
        '[{"id": 1}]'
    """
    cleaned = response.strip()

    if cleaned.startswith("```"):
        lines = cleaned.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()

    # Language tag left on its own line
    if cleaned.startswith("json"):
        cleaned = cleaned[4:].strip()

    return cleaned


def _insert_missing_commas(text: str) -> str:
    return re.sub(r"\}(\s*)\{", r"},\1{", text)


def _collapse_double_braces(text: str) -> str:
    text = text.replace('""}},', '"},').replace('""}}', '"}')
    return re.sub(r"\}\}(?=\s*[\],])", "}", text)


def _escape_stray_backslashes(text: str) -> str:
    return re.sub(r'\\([^"\\/bfnrtu])', r"\\\\\1", text)


def _close_truncated_array(text: str) -> str:
    stripped = text.rstrip()
    if stripped.startswith("[") and not stripped.endswith("]"):
        last_brace = stripped.rfind("}")
        if last_brace > 0:
            return stripped[: last_brace + 1] + "]"
    return text


def _extract_array(text: str) -> str:
    match = re.search(r"\[\s*\{.*\}\s*\]", text, re.DOTALL)
    return match.group(0) if match else text


# Applied one at a time, then all together
_REPAIRS: List[Callable[[str], str]] = [
    _insert_missing_commas,
    _collapse_double_braces,
    _escape_stray_backslashes,
    _close_truncated_array,
    _extract_array,
]


def parse_json_robustly(text: str) -> Any:
    """
    Parse JSON, repairing the formatting defects chat models commonly produce.

    Handles missing commas between objects, doubled closing braces, invalid
    escape sequences, a truncated final object and prose around the array.

    Args:
        text: JSON text to parse

    Returns:
        Parsed JSON data

    Raises:
        GPTJSONParsingError: If no repair produces valid JSON
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"Standard JSON parsing failed: {e}. Trying repairs...")

    for repair in _REPAIRS:
        try:
            return json.loads(repair(text))
        except json.JSONDecodeError:
            logger.debug(f"JSON repair {repair.__name__} failed")

    combined = text
    for repair in _REPAIRS:
        combined = repair(combined)
    try:
        return json.loads(combined)
    except json.JSONDecodeError as e:
        raise GPTJSONParsingError(
            f"Failed to parse JSON after trying all repairs: {e}"
        ) from e
