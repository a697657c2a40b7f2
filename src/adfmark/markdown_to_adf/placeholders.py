"""Resolution of the inline placeholder syntax into ADF inline nodes.

* `{user:<id>}` becomes a `mention`
* `{status:<text>|color:<color>}` becomes a `status`; unknown colors fall back to `neutral`
* `{date:<iso date>}` becomes a `date` holding the UTC midnight timestamp in milliseconds, as a string
* `{media:<id>}` becomes a `media` of type `file`
* `:shortname:` becomes an `emoji` when the short name is known
"""

import calendar
from datetime import timezone
import re
from urllib.parse import unquote

from dateutil.parser import isoparse

from adfmark.constants import DEFAULT_MEDIA_TYPE, DEFAULT_STATUS_COLOR, STATUS_COLORS
from adfmark.utils.emoji_mapping import get_emoji

PLACEHOLDER_PATTERN = re.compile(
    r'\{(?P<kind>user|status|date|media):(?P<value>[^{}\n]*)\}|:(?P<emoji>[a-zA-Z0-9_+\-]+):'
)

CARD_URL_PREFIX = 'adf://card/'
MENTION_URL_PREFIX = 'adf://mention/'
MEDIA_URL_PREFIX = 'adf:media:'


def _text_node(text: str, marks: list[dict] | None) -> dict:
    node: dict = {'type': 'text', 'text': text}
    if marks:
        node['marks'] = [dict(mark) for mark in marks]
    return node


def parse_status(value: str) -> dict:
    """Parses the body of a `{status:...}` placeholder into status attributes."""
    text, *parameters = value.split('|')
    color = DEFAULT_STATUS_COLOR
    for parameter in parameters:
        key, _, parameter_value = parameter.partition(':')
        if key.strip() == 'color':
            color = parameter_value.strip().lower()
    if color not in STATUS_COLORS:
        color = DEFAULT_STATUS_COLOR
    return {'text': text.strip(), 'color': color}


def date_to_timestamp(value: str) -> str | None:
    """Converts an ISO 8601 date to the millisecond timestamp of its UTC midnight.

    Returns:
        The timestamp as a string, or `None` when `value` is not an ISO date.
    """
    try:
        parsed = isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return str(calendar.timegm(parsed.date().timetuple()) * 1000)


def _resolve(match: re.Match) -> dict | None:
    if emoji := match.group('emoji'):
        character = get_emoji(emoji)
        if character is None:
            return None
        return {'type': 'emoji', 'attrs': {'shortName': f':{emoji}:', 'text': character}}

    kind, value = match.group('kind'), match.group('value')
    if kind == 'user':
        return {'type': 'mention', 'attrs': {'id': value.strip()}} if value.strip() else None
    if kind == 'status':
        return {'type': 'status', 'attrs': parse_status(value)}
    if kind == 'date':
        timestamp = date_to_timestamp(value)
        return {'type': 'date', 'attrs': {'timestamp': timestamp}} if timestamp else None
    if value.strip():
        return {'type': 'media', 'attrs': {'id': value.strip(), 'type': DEFAULT_MEDIA_TYPE}}
    return None


def resolve_placeholders(text: str, marks: list[dict] | None = None) -> list[dict]:
    """Splits `text` into text nodes and the inline nodes its placeholders stand for.

    Placeholders that can not be resolved (an empty id, an invalid date, an unknown emoji) stay plain text. Text
    nodes receive a copy of `marks`; the resolved nodes carry none.
    """
    nodes: list[dict] = []
    position = 0
    for match in PLACEHOLDER_PATTERN.finditer(text):
        node = _resolve(match)
        if node is None:
            continue
        if match.start() > position:
            nodes.append(_text_node(text[position : match.start()], marks))
        nodes.append(node)
        position = match.end()

    if position < len(text):
        nodes.append(_text_node(text[position:], marks))
    return nodes


def link_to_node(href: str, text: str) -> dict | None:
    """Resolves the `adf://` link targets to the inline node they stand for, `None` for ordinary links."""
    if href.startswith(CARD_URL_PREFIX):
        return {'type': 'inlineCard', 'attrs': {'url': unquote(href[len(CARD_URL_PREFIX) :])}}
    if href.startswith(MENTION_URL_PREFIX):
        attrs = {'id': unquote(href[len(MENTION_URL_PREFIX) :])}
        if text:
            attrs['text'] = text
        return {'type': 'mention', 'attrs': attrs}
    return None


def image_to_media(src: str, alt: str, placeholder_alt: str) -> dict:
    """Builds a media node from an image; `adf:media:<id>` targets are file media, other targets external ones."""
    if src.startswith(MEDIA_URL_PREFIX):
        attrs = {'id': src[len(MEDIA_URL_PREFIX) :], 'type': DEFAULT_MEDIA_TYPE}
    else:
        attrs = {'type': 'external', 'url': src}
    if alt and alt != placeholder_alt:
        attrs['alt'] = alt
    return {'type': 'media', 'attrs': attrs}
