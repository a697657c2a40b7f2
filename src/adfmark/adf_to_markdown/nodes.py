"""Converters for the block-level ADF nodes and for text."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from adfmark.adf_to_markdown.context import apply_marks, convert_blocks, convert_node
from adfmark.adf_to_markdown.registry import NodeConverter
from adfmark.constants import DEFAULT_PANEL_TYPE
from adfmark.utils.metadata_comments import (
    format_attribute_string,
    format_metadata_comment,
    generate_metadata_comment,
)

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.context import ConversionContext

LIST_NODE_TYPES = ('bulletList', 'orderedList')


def _append_comment(markdown: str, comment: str, separator: str = ' ') -> str:
    if not comment:
        return markdown
    return f'{markdown}{separator}{comment}'


class DocConverter(NodeConverter):
    node_type = 'doc'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        return '\n\n'.join(convert_blocks(node.get('content'), context.within(node)))


class ParagraphConverter(NodeConverter):
    node_type = 'paragraph'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        content = node.get('content')
        if not content:
            return ''
        markdown = context.within(node).convert_children(content)
        if not markdown:
            return ''
        attrs = node.get('attrs')
        if attrs:
            markdown = _append_comment(markdown, format_metadata_comment('paragraph', attrs))
        return markdown


class TextConverter(NodeConverter):
    node_type = 'text'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        return apply_marks(node.get('text') or '', node.get('marks'), context)


class HeadingConverter(NodeConverter):
    node_type = 'heading'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        content = node.get('content')
        if not content:
            return ''
        attrs = node.get('attrs') or {}
        try:
            level = int(attrs.get('level', 1))
        except (TypeError, ValueError):
            level = 1
        level = min(max(level, 1), 6)
        text = context.within(node).convert_children(content).replace('  \n', ' ')
        markdown = f'{"#" * level} {text}'
        return _append_comment(markdown, generate_metadata_comment('heading', attrs))


class BulletListConverter(NodeConverter):
    node_type = 'bulletList'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        items = convert_blocks(node.get('content'), context.descend(node))
        markdown = '\n'.join(items)
        return _append_comment(markdown, generate_metadata_comment(self.node_type, node.get('attrs')), '\n')


class OrderedListConverter(NodeConverter):
    node_type = 'orderedList'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        try:
            start = int(attrs.get('order', 1))
        except (TypeError, ValueError):
            start = 1

        list_context = context.descend(node)
        items = []
        for index, item in enumerate(node.get('content') or []):
            if markdown := convert_node(item, list_context.with_list_marker(f'{start + index}. ')):
                items.append(markdown)
        markdown = '\n'.join(items)
        return _append_comment(markdown, generate_metadata_comment(self.node_type, attrs), '\n')


class ListItemConverter(NodeConverter):
    """Renders a list item as `<marker><first line>` with the following lines indented by the marker width.

    The marker is `- ` unless the enclosing ordered list numbers its items. A nested list directly follows the block
    before it; other blocks are separated by a blank line.
    """

    node_type = 'listItem'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        item_context = context.descend(node)
        parts: list[str] = []
        for child in node.get('content') or []:
            markdown = convert_node(child, item_context)
            if not markdown:
                continue
            if parts:
                is_list = isinstance(child, dict) and child.get('type') in LIST_NODE_TYPES
                parts.append('\n' if is_list else '\n\n')
            parts.append(markdown)

        comment = format_metadata_comment(self.node_type, node['attrs']) if node.get('attrs') else ''
        if comment:
            parts.append('\n' if parts else '')
            parts.append(comment)

        marker = context.list_marker
        body = ''.join(parts)
        if not body:
            return marker

        indent = ' ' * len(marker)
        lines = body.split('\n')
        rendered = [f'{marker}{lines[0]}']
        rendered.extend(f'{indent}{line}' if line else '' for line in lines[1:])
        return '\n'.join(rendered)


def _code_fence(text: str) -> str:
    longest = max((len(run) for run in re.findall(r'`{3,}', text)), default=0)
    return '`' * max(3, longest + 1)


class CodeBlockConverter(NodeConverter):
    node_type = 'codeBlock'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = node.get('attrs') or {}
        language = attrs.get('language') or ''
        text = ''.join(
            child.get('text') or ''
            for child in node.get('content') or []
            if isinstance(child, dict) and child.get('type') == 'text'
        )
        fence = _code_fence(text)
        markdown = f'{fence}{language}\n{text}\n{fence}'
        return _append_comment(markdown, generate_metadata_comment(self.node_type, attrs), '\n')


class BlockquoteConverter(NodeConverter):
    node_type = 'blockquote'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        blocks = convert_blocks(node.get('content'), context.descend(node))
        if not blocks:
            return '> '
        body = '\n\n'.join(blocks)
        markdown = '\n'.join(f'> {line}' if line else '>' for line in body.split('\n'))
        return _append_comment(markdown, generate_metadata_comment(self.node_type, node.get('attrs')), '\n')


class RuleConverter(NodeConverter):
    node_type = 'rule'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        return '---'


class HardBreakConverter(NodeConverter):
    node_type = 'hardBreak'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        return '  \n'


def render_fence_block(fence_type: str, header: dict, body: str) -> str:
    attributes = format_attribute_string(header)
    opening = f'~~~{fence_type} {attributes}' if attributes else f'~~~{fence_type}'
    return f'{opening}\n{body}\n~~~'


class PanelConverter(NodeConverter):
    node_type = 'panel'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        blocks = convert_blocks(node.get('content'), context.descend(node))
        if not blocks:
            return ''
        attrs = dict(node.get('attrs') or {})
        header = {'type': attrs.pop('panelType', None) or DEFAULT_PANEL_TYPE}
        header.update(attrs)
        return render_fence_block('panel', header, '\n\n'.join(blocks))


class ExpandConverter(NodeConverter):
    node_type = 'expand'
    nested = False

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        attrs = dict(node.get('attrs') or {})
        header = {}
        if 'title' in attrs:
            header['title'] = attrs.pop('title')
        if self.nested:
            header['nested'] = True
        header.update(attrs)
        blocks = convert_blocks(node.get('content'), context.descend(node))
        return render_fence_block('expand', header, '\n\n'.join(blocks))


class NestedExpandConverter(ExpandConverter):
    """Renders like `expand` with a `nested=true` flag so the reverse direction restores the node type."""

    node_type = 'nestedExpand'
    nested = True
