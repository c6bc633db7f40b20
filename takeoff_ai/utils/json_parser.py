import json
import re
from typing import Any, Dict, List, Union

from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json|JSON)?\s*|\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from model output, repairing common formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Prose before or after the JSON document
    - Concatenated JSON documents (e.g., {...}\\n{...})
    - Trailing commas before a closing bracket

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if nothing could be recovered
    """
    if not text or not text.strip():
        return None

    cleaned_text = strip_code_fences(text)

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    without_trailing_commas = re.sub(r",\s*([\]}])", r"\1", cleaned_text)
    if without_trailing_commas != cleaned_text:
        try:
            return json.loads(without_trailing_commas)
        except json.JSONDecodeError:
            LOGGER.debug("Trailing comma repair did not produce valid JSON")

    documents = _decode_documents(without_trailing_commas)
    if documents:
        if len(documents) > 1:
            LOGGER.info(f"Merged {len(documents)} concatenated JSON documents")
        return _merge_json_objects(documents)

    LOGGER.error("Failed to parse JSON from model output", extra={"preview": cleaned_text[:200]})
    return None


def _decode_documents(text: str) -> List[Any]:
    """Decode every top-level JSON object or array embedded in text."""
    decoder = json.JSONDecoder()
    results: List[Any] = []
    idx = 0

    while idx < len(text):
        starts = [pos for pos in (text.find("{", idx), text.find("[", idx)) if pos != -1]
        if not starts:
            break
        start = min(starts)
        try:
            obj, end_idx = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            idx = start + 1
            continue
        results.append(obj)
        idx = end_idx

    return results


def _merge_json_objects(objects: List[Any]) -> Union[Dict[str, Any], List[Any]]:
    """Merge parsed documents: dicts merge key-wise (lists concatenated), lists flatten."""
    if len(objects) == 1:
        return objects[0]

    if all(isinstance(obj, dict) for obj in objects):
        merged: Dict[str, Any] = {}
        for obj in objects:
            for key, value in obj.items():
                existing = merged.get(key)
                if isinstance(existing, list) and isinstance(value, list):
                    merged[key] = existing + value
                elif isinstance(existing, dict) and isinstance(value, dict):
                    merged[key] = {**existing, **value}
                else:
                    merged[key] = value
        return merged

    if all(isinstance(obj, list) for obj in objects):
        flattened: List[Any] = []
        for obj in objects:
            flattened.extend(obj)
        return flattened

    return objects
