from __future__ import annotations

from typing import TYPE_CHECKING

from adfmark.adf_to_markdown.context import convert_blocks
from adfmark.adf_to_markdown.nodes import render_fence_block
from adfmark.adf_to_markdown.registry import NodeConverter
from adfmark.utils.metadata_comments import format_metadata_comment

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.context import ConversionContext

MEDIA_ATTRIBUTE_ORDER = ('id', 'type', 'collection', 'width', 'height')

MEDIA_ALT_PLACEHOLDER = 'Media'
"""Alt text written for media without an `alt` attribute; never read back as an `alt` value."""


def _ordered_media_attrs(attrs: dict) -> dict:
    ordered = {key: attrs[key] for key in MEDIA_ATTRIBUTE_ORDER if key in attrs}
    ordered.update((key, value) for key, value in attrs.items() if key not in ordered)
    return ordered


class MediaConverter(NodeConverter):
    """Renders media as an image whose target is `adf:media:<id>`, followed by a comment holding every attribute."""

    node_type = 'media'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        alt = str(attrs.get('alt') or MEDIA_ALT_PLACEHOLDER).replace(']', '')
        media_id = attrs.get('id')

        if media_id:
            target = f'adf:media:{media_id}'
        elif attrs.get('type') == 'external' and attrs.get('url'):
            target = attrs['url']
        else:
            return f'![{MEDIA_ALT_PLACEHOLDER}](adf:media:unknown)'

        return f'![{alt}]({target}) {format_metadata_comment(self.node_type, _ordered_media_attrs(attrs))}'


class MediaSingleConverter(NodeConverter):
    node_type = 'mediaSingle'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        items = convert_blocks(node.get('content'), context.descend(node))
        if not items:
            return ''
        return render_fence_block(self.node_type, dict(node.get('attrs') or {}), '\n'.join(items))


class MediaGroupConverter(MediaSingleConverter):
    node_type = 'mediaGroup'
