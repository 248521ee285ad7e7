"""
Lenient JSON parsing for model responses.

Model output may arrive wrapped in markdown fences or cut off at the token
limit. These helpers recover as much structured data as possible instead of
discarding the whole response.
"""

import json
import re
from typing import Any, Optional
import structlog

logger = structlog.get_logger(__name__)

_FENCE_START = re.compile(r"^```(?:json)?\s*")
_FENCE_END = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove ```json ... ``` markers if present."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_START.sub("", cleaned)
        cleaned = _FENCE_END.sub("", cleaned)
    return cleaned


def parse_json_response(text: str) -> Optional[Any]:
    """
    Parse a complete JSON document from model output.

    Returns:
        Parsed value, or None if the text is not valid JSON
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        return None

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Model sometimes adds prose around the JSON; try the outermost object
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            return None
    return None


def salvage_array_objects(text: str, key: str) -> list[dict]:
    """
    Recover complete objects from a possibly truncated array.

    Given '{"products": [{"name": "A"}, {"name": "B"}, {"na' and key
    "products", returns [{"name": "A"}, {"name": "B"}].

    Args:
        text: Raw model output
        key: Name of the array property to read

    Returns:
        Every object in the array that parsed completely
    """
    cleaned = strip_code_fences(text)
    match = re.search(r'"%s"\s*:\s*\[' % re.escape(key), cleaned)
    if match:
        pos = match.end()
    else:
        # Bare top-level array
        pos = cleaned.find("[")
        if pos == -1:
            return []
        pos += 1

    decoder = json.JSONDecoder()
    objects: list[dict] = []
    length = len(cleaned)

    while pos < length:
        while pos < length and cleaned[pos] in " \t\r\n,":
            pos += 1
        if pos >= length or cleaned[pos] != "{":
            break
        try:
            value, pos = decoder.raw_decode(cleaned, pos)
        except json.JSONDecodeError:
            break
        if isinstance(value, dict):
            objects.append(value)

    if objects:
        logger.info("json_array_salvaged", key=key, count=len(objects))
    return objects
