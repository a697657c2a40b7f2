import json
from typing import Any

CIRCULAR_SENTINEL = '[Circular]'


def sanitize_for_json(value: Any, _ancestors: set[int] | None = None) -> Any:
    """Returns a copy of `value` that can always be serialized to JSON.

    Containers that refer back to one of their ancestors are replaced by `CIRCULAR_SENTINEL`. Objects that are only
    shared (referenced twice without forming a cycle) are serialized normally. Values JSON does not know are turned
    into strings.

    Args:
        value: any value, typically an ADF `attrs` dictionary.

    Returns:
        A structure made only of dicts, lists, strings, numbers, booleans and `None`.
    """
    if _ancestors is None:
        _ancestors = set()

    if value is None or isinstance(value, (str, bool, int, float)):
        return value

    if isinstance(value, (dict, list, tuple)):
        marker = id(value)
        if marker in _ancestors:
            return CIRCULAR_SENTINEL
        _ancestors.add(marker)
        try:
            if isinstance(value, dict):
                return {str(k): sanitize_for_json(v, _ancestors) for k, v in value.items()}
            return [sanitize_for_json(item, _ancestors) for item in value]
        finally:
            _ancestors.discard(marker)

    return str(value)


def safe_json_dumps(value: Any, indent: int | None = None) -> str:
    """Serializes `value` to JSON, terminating on self-referential structures.

    Non-ASCII characters are kept as is so that attribute values stay readable inside markdown.
    """
    return json.dumps(sanitize_for_json(value), indent=indent, ensure_ascii=False)


def try_parse_json(text: str) -> Any | None:
    """Parses `text` as JSON, returning `None` when it is not valid JSON."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None
