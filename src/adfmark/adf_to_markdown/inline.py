"""Converters for the inline ADF nodes that have a placeholder syntax."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from urllib.parse import quote

from adfmark.adf_to_markdown.registry import NodeConverter
from adfmark.constants import DEFAULT_STATUS_COLOR
from adfmark.utils.emoji_mapping import is_known_shortname
from adfmark.utils.metadata_comments import format_metadata_comment

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.context import ConversionContext

MILLISECONDS_PER_DAY = 86_400_000


def _with_comment(markdown: str, node_type: str, attrs: dict) -> str:
    if not attrs:
        return markdown
    return f'{markdown} {format_metadata_comment(node_type, attrs)}'


class MentionConverter(NodeConverter):
    node_type = 'mention'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        mention_id = attrs.get('id')
        if not mention_id:
            return str(attrs.get('text') or '@unknown')
        extra = {k: v for k, v in attrs.items() if k != 'id'}
        return _with_comment(f'{{user:{mention_id}}}', self.node_type, extra)


def format_timestamp(timestamp: str | int) -> str:
    """Formats an ADF millisecond timestamp as a UTC `YYYY-MM-DD` date."""
    milliseconds = int(str(timestamp).strip())
    return datetime.fromtimestamp(milliseconds / 1000, tz=timezone.utc).strftime('%Y-%m-%d')


class DateConverter(NodeConverter):
    """Renders `{date:YYYY-MM-DD}`.

    The timestamp itself is repeated in the comment only when the date alone would not restore it, that is when it
    is not a string holding midnight UTC.
    """

    node_type = 'date'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        timestamp = attrs.get('timestamp')
        if timestamp is None or timestamp == '':
            return '[Date]'

        try:
            day = format_timestamp(timestamp)
        except (TypeError, ValueError, OverflowError, OSError):
            return _with_comment('[Invalid Date]', self.node_type, attrs)

        extra = {k: v for k, v in attrs.items() if k != 'timestamp'}
        if not isinstance(timestamp, str) or int(timestamp) % MILLISECONDS_PER_DAY:
            extra = {'timestamp': timestamp, **extra}
        return _with_comment(f'{{date:{day}}}', self.node_type, extra)


class EmojiConverter(NodeConverter):
    node_type = 'emoji'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        short_name = attrs.get('shortName')
        if not short_name:
            text = attrs.get('text')
            return str(text) if text else ':emoji:'

        name = str(short_name).strip(':')
        markdown = f':{name}:'
        if is_known_shortname(name):
            extra = {k: v for k, v in attrs.items() if k != 'shortName'}
        else:
            extra = dict(attrs)
        if short_name != markdown:
            extra['shortName'] = short_name
        return _with_comment(markdown, self.node_type, extra)


class StatusConverter(NodeConverter):
    node_type = 'status'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        text = attrs.get('text') or 'Status'
        color = attrs.get('color')
        if color and color != DEFAULT_STATUS_COLOR:
            markdown = f'{{status:{text}|color:{color}}}'
        else:
            markdown = f'{{status:{text}}}'
        extra = {k: v for k, v in attrs.items() if k not in ('text', 'color')}
        return _with_comment(markdown, self.node_type, extra)


class InlineCardConverter(NodeConverter):
    """Renders `[title](adf://card/<encoded url>)`.

    The title is taken from `data.title`, then `data.name`, then `Card`. Without a `url` the card degrades to the
    literal `[Card]` and no comment is written, so a card without data can not be told apart from one whose data was
    omitted.
    """

    node_type = 'inlineCard'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        url = attrs.get('url')
        if not url:
            return '[Card]'
        data = attrs.get('data') if isinstance(attrs.get('data'), dict) else {}
        title = data.get('title') or data.get('name') or 'Card'
        markdown = f'[{title}](adf://card/{quote(str(url), safe="")})'
        return _with_comment(markdown, self.node_type, attrs)
