"""
call-ai - Utilities
"""

import re
from typing import Any, Dict


def join_url_parts(base: str, path: str) -> str:
    """Join a base URL and a path with exactly one slash between them."""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def recursively_add_additional_properties(schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Prepare a JSON schema for strict structured output.

    Every object gets ``additionalProperties: false`` (unless set) and a
    ``required`` list; nested objects and array items are processed too.
    The input is not modified.
    """
    result = dict(schema)

    if result.get("type") == "object":
        result.setdefault("additionalProperties", False)

        properties = result.get("properties")
        if isinstance(properties, dict) and properties:
            result.setdefault("required", list(properties))
            result["properties"] = {
                key: _process_nested(value) for key, value in properties.items()
            }

    if result.get("type") == "array" and isinstance(result.get("items"), dict):
        result["items"] = _process_nested(result["items"])

    return result


def _process_nested(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    processed = recursively_add_additional_properties(value)
    # Strict mode requires every nested property to be listed
    if processed.get("type") == "object" and processed.get("properties"):
        processed["required"] = list(processed["properties"])
    return processed


_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")


def extract_fenced_json(text: str) -> str:
    """Return the body of the first fenced code block, or the stripped text."""
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    if match:
        return match.group(1)
    return text.strip()
