"""Codec for the metadata micro-format.

Attributes that markdown can not express natively travel in two forms:

* HTML comments: `<!-- adf:<kind> attrs='<json>' -->`, the simple `<!-- adf:<kind> -->` and the closing
  `<!-- /adf:<kind> -->`. The comment body may also use the `key=value` grammar of fence headers.
* Fence headers: `~~~panel type=warning title="Heads up" attrs='{"k": "v"}'`.

The `attrs='<json>'` pair is merged into the attribute map, never nested under an `attrs` key.
"""

from dataclasses import dataclass, field
import json
import re
from typing import Any

from adfmark.utils.json_utils import safe_json_dumps, sanitize_for_json

METADATA_COMMENT_PATTERN = re.compile(r'<!--\s*(/?)adf:([a-zA-Z][a-zA-Z0-9]*)(.*?)-->', re.DOTALL)
STANDALONE_COMMENT_PATTERN = re.compile(r'^\s*<!--\s*(/?)adf:([a-zA-Z][a-zA-Z0-9]*)(.*?)-->\s*$', re.DOTALL)
TRAILING_COMMENT_PATTERN = re.compile(r'\s*<!--\s*adf:([a-zA-Z][a-zA-Z0-9]*)((?:(?!-->).)*)-->\s*$')
ATTRIBUTE_PAIR_PATTERN = re.compile(r'''(\w+)=(?:"((?:[^"\\]|\\.)*)"|'([^']*)'|(\S+))''')
ATTRS_JSON_PATTERN = re.compile(r"""attrs='([^']*)'""")

INTEGER_PATTERN = re.compile(r'^-?\d+$')
FLOAT_PATTERN = re.compile(r'^-?\d*\.\d+$')

STANDARD_ATTRIBUTES: dict[str, frozenset[str]] = {
    'heading': frozenset({'level'}),
    'panel': frozenset({'panelType'}),
    'expand': frozenset({'title'}),
    'nestedExpand': frozenset({'title'}),
    'codeBlock': frozenset({'language'}),
    'orderedList': frozenset({'order'}),
    'link': frozenset({'href', 'title'}),
    'textColor': frozenset({'color'}),
    'backgroundColor': frozenset({'color'}),
    'subsup': frozenset({'type'}),
    'table': frozenset({'isNumberColumnEnabled', 'layout'}),
    'tableCell': frozenset({'colspan', 'colwidth', 'rowspan', 'background'}),
    'tableHeader': frozenset({'colspan', 'colwidth', 'rowspan', 'background'}),
}
"""Attributes that are expressed by the markdown syntax itself and therefore never repeated in a comment."""


@dataclass
class MetadataComment:
    kind: str
    attrs: dict[str, Any] = field(default_factory=dict)
    closing: bool = False
    raw: str = ''
    json_error: str | None = None
    """Set when an `attrs='...'` payload was present but was not a valid JSON object."""


def coerce_value(value: str) -> Any:
    """Converts an unquoted fence-header token into a boolean, integer or float when it looks like one."""
    if value == 'true':
        return True
    if value == 'false':
        return False
    if INTEGER_PATTERN.match(value):
        return int(value)
    if FLOAT_PATTERN.match(value):
        return float(value)
    return value


def _unescape_double_quoted(value: str) -> str:
    return re.sub(r'\\(.)', r'\1', value)


def parse_attribute_string(text: str) -> dict[str, Any]:
    """Parses a `key=value` attribute string.

    Unquoted values are coerced with `coerce_value`, quoted values are kept as strings and an `attrs='<json>'` pair
    holding a JSON object is merged into the result. An `attrs` payload that is not valid JSON is kept as a plain
    string under the `attrs` key.

    Args:
        text: the attribute part of a fence header or metadata comment.

    Returns:
        The attributes in source order.
    """
    attributes: dict[str, Any] = {}
    if not text or not text.strip():
        return attributes

    for match in ATTRIBUTE_PAIR_PATTERN.finditer(text):
        key, double_quoted, single_quoted, bare = match.groups()
        if key == 'attrs' and single_quoted is not None:
            try:
                payload = json.loads(single_quoted)
            except ValueError:
                attributes[key] = single_quoted
                continue
            if isinstance(payload, dict):
                attributes.update(payload)
            else:
                attributes[key] = single_quoted
        elif double_quoted is not None:
            attributes[key] = _unescape_double_quoted(double_quoted)
        elif single_quoted is not None:
            attributes[key] = single_quoted
        else:
            attributes[key] = coerce_value(bare)

    return attributes


def _encode_json_payload(attrs: dict[str, Any]) -> str:
    # The payload is embedded in single quotes inside an HTML comment, which may sit in a table row.
    return (
        safe_json_dumps(attrs).replace("'", '\\u0027').replace('-->', '--\\u003e').replace('|', '\\u007c')
    )


def _needs_quotes(value: str) -> bool:
    return value == '' or any(ch.isspace() for ch in value) or any(ch in value for ch in '"\'=')


def _is_ambiguous_string(value: str) -> bool:
    return value in ('true', 'false') or bool(INTEGER_PATTERN.match(value) or FLOAT_PATTERN.match(value))


def format_attribute_string(attrs: dict[str, Any]) -> str:
    """Renders attributes with the fence-header grammar, in insertion order.

    Strings, numbers and booleans become `key=value` pairs (quoted when the value contains whitespace or quotes).
    Everything that would not survive `parse_attribute_string` unchanged (nested values, `None`, strings that look
    like numbers or booleans) is collected into a trailing `attrs='<json>'` pair.
    """
    pairs: list[str] = []
    remainder: dict[str, Any] = {}

    for key, value in attrs.items():
        if not re.fullmatch(r'\w+', key) or key == 'attrs':
            remainder[key] = value
        elif isinstance(value, bool):
            pairs.append(f'{key}={"true" if value else "false"}')
        elif isinstance(value, (int, float)):
            pairs.append(f'{key}={value}')
        elif isinstance(value, str) and not _is_ambiguous_string(value):
            if _needs_quotes(value):
                escaped = value.replace('\\', '\\\\').replace('"', '\\"')
                pairs.append(f'{key}="{escaped}"')
            else:
                pairs.append(f'{key}={value}')
        else:
            remainder[key] = value

    if remainder:
        pairs.append(f"attrs='{_encode_json_payload(remainder)}'")

    return ' '.join(pairs)


def _parse_comment_body(body: str) -> tuple[dict[str, Any], str | None]:
    json_error = None
    if match := ATTRS_JSON_PATTERN.search(body):
        try:
            payload = json.loads(match.group(1))
            if not isinstance(payload, dict):
                json_error = 'Metadata attrs must be a JSON object'
        except ValueError as e:
            json_error = f'Invalid JSON in metadata comment: {e}'
    attrs = parse_attribute_string(body)
    if json_error:
        attrs.pop('attrs', None)
    return attrs, json_error


def parse_metadata_comment(text: str) -> MetadataComment | None:
    """Parses a standalone metadata comment, returning `None` when `text` is not exactly one metadata comment."""
    match = STANDALONE_COMMENT_PATTERN.match(text)
    if not match:
        return None
    closing, kind, body = match.groups()
    if '<!--' in body:
        return None
    attrs, json_error = _parse_comment_body(body)
    return MetadataComment(
        kind=kind, attrs=attrs, closing=bool(closing), raw=text.strip(), json_error=json_error
    )


def is_metadata_comment(text: str) -> bool:
    return parse_metadata_comment(text) is not None


def find_metadata_comments(text: str) -> list[tuple[int, int, MetadataComment]]:
    """Locates every metadata comment in `text`, returning `(start, end, comment)` tuples."""
    found = []
    for match in METADATA_COMMENT_PATTERN.finditer(text):
        closing, kind, body = match.groups()
        attrs, json_error = _parse_comment_body(body)
        found.append(
            (
                match.start(),
                match.end(),
                MetadataComment(
                    kind=kind,
                    attrs=attrs,
                    closing=bool(closing),
                    raw=match.group(0),
                    json_error=json_error,
                ),
            )
        )
    return found


def strip_trailing_metadata_comment(text: str) -> tuple[str, MetadataComment | None]:
    """Splits a trailing `<!-- adf:... -->` comment off the end of a line of text."""
    match = TRAILING_COMMENT_PATTERN.search(text)
    if not match:
        return text, None
    kind, body = match.groups()
    attrs, json_error = _parse_comment_body(body)
    comment = MetadataComment(kind=kind, attrs=attrs, raw=match.group(0).strip(), json_error=json_error)
    return text[: match.start()], comment


def format_metadata_comment(kind: str, attrs: dict[str, Any] | None = None) -> str:
    """Renders a metadata comment carrying every attribute in `attrs`."""
    if not attrs:
        return f'<!-- adf:{kind} -->'
    return f"<!-- adf:{kind} attrs='{_encode_json_payload(attrs)}' -->"


def generate_metadata_comment(node_type: str, attrs: dict[str, Any] | None) -> str:
    """Renders a metadata comment for the attributes of `node_type` that markdown can not express.

    Returns an empty string when no such attribute is left.
    """
    if not attrs:
        return ''
    standard = STANDARD_ATTRIBUTES.get(node_type, frozenset())
    remainder = {k: v for k, v in attrs.items() if k not in standard}
    if not remainder:
        return ''
    return format_metadata_comment(node_type, remainder)


def format_closing_comment(kind: str) -> str:
    return f'<!-- /adf:{kind} -->'


def validate_metadata_comment(text: str) -> tuple[bool, str | None]:
    """Checks a single metadata comment.

    Returns:
        `(True, None)` for a well-formed comment, otherwise `(False, reason)`.
    """
    comment = parse_metadata_comment(text)
    if comment is None:
        return False, 'Not a metadata comment'
    if comment.json_error:
        return False, comment.json_error
    return True, None


def merge_attrs(node: dict, attrs: dict[str, Any]) -> dict:
    """Merges `attrs` into the attributes of `node` in place and returns the node."""
    if not attrs:
        return node
    merged = dict(node.get('attrs') or {})
    merged.update(sanitize_for_json(attrs))
    node['attrs'] = merged
    return node
