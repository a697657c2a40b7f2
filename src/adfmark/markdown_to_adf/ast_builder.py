"""Builds ADF documents from the token tree of `tokenize`.

Metadata comments are merged into the nodes they describe:

* a standalone comment naming the enclosing container (for example `listItem`) goes to that container
* a comment on the line right after a code block, table, list or blockquote of the same type goes to that block
* any other standalone comment goes to the next node, or to its first descendant of the named type
* a trailing inline comment goes to the inline node or mark before it, or else to the enclosing paragraph or heading

Comments with nothing to attach to are dropped.
"""

import logging
import re
from typing import Any

from adfmark.adf_to_markdown.media import MEDIA_ALT_PLACEHOLDER
from adfmark.config import ConversionOptions
from adfmark.constants import (
    ADF_VERSION,
    DEFAULT_MEDIA_SINGLE_LAYOUT,
    DEFAULT_PANEL_TYPE,
    LOGGER_NAME,
    MAX_TABLE_COLUMNS,
    TABLE_CELL_TYPES,
    TABLE_DEFAULT_ATTRIBUTES,
)
from adfmark.exceptions import MarkdownSyntaxError
from adfmark.markdown_to_adf.frontmatter import parse_frontmatter
from adfmark.markdown_to_adf.placeholders import image_to_media, link_to_node, resolve_placeholders
from adfmark.models import Token, TokenType
from adfmark.utils.json_utils import try_parse_json
from adfmark.utils.metadata_comments import merge_attrs

logger = logging.getLogger(LOGGER_NAME)

MEDIA_CONTAINER_TYPES = ('mediaSingle', 'mediaGroup')

TRAILING_COMMENT_TYPES = frozenset({'codeBlock', 'table', 'bulletList', 'orderedList', 'blockquote'})
"""Block types whose metadata comment is written on the line following the block."""

INLINE_MARK_TOKENS = {
    TokenType.STRONG: 'strong',
    TokenType.EMPHASIS: 'em',
    TokenType.UNDERLINE: 'underline',
    TokenType.STRIKE: 'strike',
}

EMOJI_SUFFIX_PATTERN = re.compile(r':([a-zA-Z0-9_+\-]+):$')


def empty_document() -> dict:
    return {'version': ADF_VERSION, 'type': 'doc', 'content': []}


def text_node(text: str, marks: list[dict] | None = None) -> dict:
    node: dict = {'type': 'text', 'text': text}
    if marks:
        node['marks'] = [dict(mark) for mark in marks]
    return node


def paragraph_node(content: list[dict], attrs: dict | None = None) -> dict:
    node: dict = {'type': 'paragraph', 'content': content}
    if attrs:
        node['attrs'] = attrs
    return node


def find_descendant(node: dict, node_type: str) -> dict | None:
    """Returns `node` or its first descendant, depth first, of type `node_type`."""
    if node.get('type') == node_type:
        return node
    for child in node.get('content') or []:
        if isinstance(child, dict) and (found := find_descendant(child, node_type)):
            return found
    return None


def merge_forward(node: dict, kind: str, attrs: dict) -> None:
    """Merges the attributes of a comment that precedes `node`."""
    merge_attrs(find_descendant(node, kind) or node, attrs)


def parse_preserved_node(text: str) -> dict | None:
    """Parses the JSON of a preserved unknown node; `None` when it is not a JSON object with a type."""
    node = try_parse_json(text.strip())
    if isinstance(node, dict) and isinstance(node.get('type'), str):
        return node
    return None


def fence_node(fence_type: str, attrs: dict, content: list[dict]) -> dict:
    """Builds the node of a fence block from its header attributes and body.

    A panel's `type` header becomes `panelType` (default `info`), `nested=true` turns an expand into a nestedExpand
    and a mediaSingle without a layout gets the default one.
    """
    if fence_type == 'panel':
        declared_type = attrs.pop('type', None)
        panel_type = attrs.pop('panelType', None)
        attrs = {'panelType': str(declared_type or panel_type or DEFAULT_PANEL_TYPE), **attrs}
    elif fence_type in ('expand', 'nestedExpand'):
        if attrs.pop('nested', False) is True:
            fence_type = 'nestedExpand'
    elif fence_type == 'mediaSingle':
        attrs = {'layout': DEFAULT_MEDIA_SINGLE_LAYOUT, **attrs}

    node: dict = {'type': fence_type}
    if attrs:
        node['attrs'] = attrs
    node['content'] = content
    return node


def is_media_only(nodes: list[dict]) -> bool:
    has_media = False
    for node in nodes:
        if node.get('type') == 'media':
            has_media = True
        elif node.get('type') == 'hardBreak':
            continue
        elif node.get('type') != 'text' or node.get('text', '').strip():
            return False
    return has_media


def wrap_media(nodes: list[dict]) -> dict:
    """Wraps the media of a media-only paragraph into a `mediaSingle`, or a `mediaGroup` for several items."""
    media = [node for node in nodes if node.get('type') == 'media']
    if len(media) == 1:
        return {'type': 'mediaSingle', 'attrs': {'layout': DEFAULT_MEDIA_SINGLE_LAYOUT}, 'content': media}
    return {'type': 'mediaGroup', 'content': media}


def _is_blank_inline(node: dict) -> bool:
    if node.get('type') == 'hardBreak':
        return True
    return node.get('type') == 'text' and not node.get('text', '').strip() and not node.get('marks')


def cell_content(collector: 'InlineCollector') -> list[dict]:
    """Builds the block content of a table cell.

    A cell is one paragraph unless it holds preserved block nodes; those are cut out of the inline run and the text
    around them becomes paragraphs of its own, without the line breaks that separated it from the block.
    """
    if not collector.preserved_blocks:
        return [paragraph_node(collector.nodes)]

    content: list[dict] = []
    run: list[dict] = []

    def close_run() -> None:
        while run and _is_blank_inline(run[0]):
            run.pop(0)
        while run and _is_blank_inline(run[-1]):
            run.pop()
        if run:
            content.append(paragraph_node(list(run)))
        run.clear()

    for node in collector.nodes:
        if id(node) in collector.preserved_blocks:
            close_run()
            content.append(node)
        else:
            run.append(node)
    close_run()
    return content


def _is_blank_cell(cell: dict) -> bool:
    return (
        cell.get('type') in TABLE_CELL_TYPES
        and 'attrs' not in cell
        and cell.get('content') == [paragraph_node([])]
    )


def drop_span_padding(cells: list[dict]) -> list[dict]:
    """Removes the empty cells written after a cell with a `colspan`, up to `colspan - 1` of them per cell."""
    kept: list[dict] = []
    padding = 0
    for cell in cells:
        if padding and _is_blank_cell(cell):
            padding -= 1
            continue
        kept.append(cell)
        colspan = (cell.get('attrs') or {}).get('colspan')
        padding = min(colspan, MAX_TABLE_COLUMNS) - 1 if isinstance(colspan, int) and colspan > 1 else 0
    return kept


class InlineCollector:
    """Accumulates the inline nodes of one block.

    Adjacent text runs with equal marks are joined. Trailing metadata comments are applied to the node before them;
    comments that do not belong to an inline node are kept in `block_comments` for the enclosing block. Preserved
    block nodes found inside a table cell are tracked in `preserved_blocks`.
    """

    def __init__(self, resolve_placeholders: bool = True):
        self.nodes: list[dict] = []
        self.block_comments: list[tuple[str, dict]] = []
        self.preserved_blocks: set[int] = set()
        self.resolve_placeholders = resolve_placeholders

    def add(self, node: dict) -> None:
        if node.get('type') == 'text' and not node.get('text'):
            return
        if self.nodes and node.get('type') == 'text':
            last = self.nodes[-1]
            if last.get('type') == 'text' and last.get('marks') == node.get('marks'):
                last['text'] += node['text']
                return
        self.nodes.append(node)

    def add_block(self, node: dict) -> None:
        self.nodes.append(node)
        self.preserved_blocks.add(id(node))

    def add_text(self, text: str, marks: list[dict] | None, literal: bool = False) -> None:
        if literal or not self.resolve_placeholders:
            self.add(text_node(text, marks))
            return
        for node in resolve_placeholders(text, marks):
            self.add(node)

    def _strip_separator(self) -> None:
        if not self.nodes:
            return
        last = self.nodes[-1]
        if last.get('type') == 'text' and last.get('text', '').endswith(' '):
            last['text'] = last['text'][:-1]
            if not last['text']:
                self.nodes.pop()

    def apply_comment(self, kind: str, attrs: dict[str, Any]) -> None:
        self._strip_separator()
        if kind == 'unknown':
            return

        previous = self.nodes[-1] if self.nodes else None
        if previous is None:
            self.block_comments.append((kind, attrs))
            return

        if kind == 'mark':
            if previous.get('type') == 'text':
                mark = {'type': attrs.get('type') or 'unknown'}
                if attrs.get('attrs'):
                    mark['attrs'] = attrs['attrs']
                previous['marks'] = [*previous.get('marks', []), mark]
            return

        if previous.get('type') == kind:
            merge_attrs(previous, attrs)
            return

        if previous.get('type') == 'text':
            for mark in previous.get('marks') or []:
                if mark.get('type') == kind:
                    merge_attrs(mark, attrs)
                    return
            if kind == 'emoji' and (match := EMOJI_SUFFIX_PATTERN.search(previous['text'])):
                self._split_emoji(previous, match, attrs)
                return

        self.block_comments.append((kind, attrs))

    def _split_emoji(self, previous: dict, match: re.Match, attrs: dict) -> None:
        previous['text'] = previous['text'][: match.start()]
        if not previous['text']:
            self.nodes.pop()
        emoji = {'type': 'emoji', 'attrs': {'shortName': match.group(0)}}
        merge_attrs(emoji, attrs)
        self.nodes.append(emoji)

    def block_attrs(self, block_type: str) -> dict:
        """Returns the attributes of the trailing comments naming `block_type`."""
        attrs: dict = {}
        for kind, comment_attrs in self.block_comments:
            if kind == block_type:
                attrs.update(comment_attrs)
            else:
                logger.debug(f'Dropping {kind} metadata that does not belong to a {block_type}')
        return attrs


class BlockSequence:
    """Collects the block children of one container and routes its standalone metadata comments.

    Line numbers only need to be consistent within one sequence: `extend` receives the number of the line right
    after the blocks it adds and `add_comment` the number of the comment's line.
    """

    def __init__(self, container_type: str, container_attrs: dict):
        self.container_type = container_type
        self.container_attrs = container_attrs
        self.nodes: list[dict] = []
        self.pending: list[tuple[str, dict]] = []
        self.previous: dict | None = None
        self.next_line: int | None = None

    def add_comment(self, kind: str, attrs: dict, line: int | None) -> None:
        if kind == 'unknown':
            return
        if kind.lower() == self.container_type.lower():
            self.container_attrs.update(attrs)
        elif (
            self.previous is not None
            and kind in TRAILING_COMMENT_TYPES
            and self.previous.get('type') == kind
            and line is not None
            and line == self.next_line
        ):
            merge_attrs(self.previous, attrs)
        else:
            self.pending.append((kind, attrs))

    def extend(self, nodes: list[dict], next_line: int | None) -> None:
        for node in nodes:
            for kind, attrs in self.pending:
                merge_forward(node, kind, attrs)
            self.pending = []
            self.nodes.append(node)
        if nodes:
            self.previous = nodes[-1]
            self.next_line = next_line

    def finish(self) -> list[dict]:
        for kind, _ in self.pending:
            logger.debug(f'Dropping orphaned {kind} metadata comment')
        self.pending = []
        return self.nodes


class AstBuilder:
    """Assembles an ADF document from block tokens.

    A builder holds the options of one parse. `frontmatter` is set by `build` when the input starts with a
    frontmatter block.
    """

    def __init__(self, options: ConversionOptions | dict | None = None):
        self.options = ConversionOptions.coerce(options)
        self.frontmatter: dict[str, Any] | None = None

    def build(self, tokens: list[Token]) -> dict:
        document = empty_document()
        document['content'] = self.build_blocks(tokens, 'doc', {})
        return document

    def build_blocks(self, tokens: list[Token], container_type: str, container_attrs: dict, media: bool = False):
        """Builds the block children of a container.

        Args:
            tokens: the block tokens of the container body.
            container_type: the ADF type of the container, used to route comments naming it.
            container_attrs: receives the attributes of comments naming the container.
            media: True inside `mediaSingle` and `mediaGroup`, where media are hoisted out of their paragraphs.

        Returns:
            The ADF block nodes.
        """
        sequence = BlockSequence(container_type, container_attrs)
        for token in tokens:
            if token.type is TokenType.METADATA_COMMENT:
                sequence.add_comment(token.metadata.node_type, token.metadata.attrs, token.position.line)
            else:
                sequence.extend(self.build_block(token, media), token.position.line + token.raw.count('\n') + 1)
        return sequence.finish()

    def build_block(self, token: Token, media: bool = False) -> list[dict]:
        builder = getattr(self, f'_build_{token.type.value}', None)
        if builder is None:
            logger.debug(f'No builder for {token.type.value} tokens')
            return []
        return builder(token, media)

    def build_inline(self, tokens: list[Token]) -> InlineCollector:
        collector = InlineCollector(resolve_placeholders=self.options.enable_adf_extensions)
        self._append_inline(tokens, [], collector)
        return collector

    def _append_inline(self, tokens: list[Token], marks: list[dict], collector: InlineCollector) -> None:
        for token in tokens:
            if token.type is TokenType.TEXT:
                collector.add_text(token.content, marks, literal=bool((token.attributes or {}).get('literal')))
            elif token.type in INLINE_MARK_TOKENS:
                self._append_inline(token.children, [{'type': INLINE_MARK_TOKENS[token.type]}, *marks], collector)
            elif token.type is TokenType.HTML_MARK:
                mark: dict = {'type': token.metadata.node_type}
                if token.metadata.attrs:
                    mark['attrs'] = dict(token.metadata.attrs)
                self._append_inline(token.children, [mark, *marks], collector)
            elif token.type is TokenType.CODE:
                collector.add(text_node(token.content, [{'type': 'code'}, *marks]))
            elif token.type is TokenType.LINK:
                self._append_link(token, marks, collector)
            elif token.type is TokenType.IMAGE:
                attributes = token.attributes or {}
                collector.add(image_to_media(attributes.get('src', ''), token.content, MEDIA_ALT_PLACEHOLDER))
            elif token.type is TokenType.HARD_BREAK:
                collector.add({'type': 'hardBreak'})
            elif token.type is TokenType.INLINE_COMMENT:
                collector.apply_comment(token.metadata.node_type, dict(token.metadata.attrs))
            elif token.type is TokenType.INLINE_UNKNOWN:
                self._append_preserved(token, marks, collector)

    def _append_preserved(self, token: Token, marks: list[dict], collector: InlineCollector) -> None:
        node = parse_preserved_node(token.content)
        if node is not None:
            if token.metadata is not None and token.metadata.attrs.get('block'):
                collector.add_block(node)
            else:
                collector.add(node)
            return
        if self.options.strict:
            line, column = token.position.line, token.position.column
            raise MarkdownSyntaxError('Invalid JSON in preserved inline node', line=line, column=column)
        collector.add_text(token.raw, marks, literal=True)

    def _append_link(self, token: Token, marks: list[dict], collector: InlineCollector) -> None:
        attributes = token.attributes or {}
        href = attributes.get('href') or ''
        if self.options.enable_adf_extensions:
            label = ''.join(child.content for child in token.children if child.type is TokenType.TEXT)
            if node := link_to_node(href, label):
                collector.add(node)
                return
        if not href:
            self._append_inline(token.children, marks, collector)
            return
        link_attrs = {'href': href}
        if 'title' in attributes:
            link_attrs['title'] = attributes['title']
        self._append_inline(token.children, [{'type': 'link', 'attrs': link_attrs}, *marks], collector)

    def _build_paragraph(self, token: Token, media: bool) -> list[dict]:
        collector = self.build_inline(token.children)
        if not collector.nodes:
            return []
        attrs = collector.block_attrs('paragraph')
        if is_media_only(collector.nodes):
            if media:
                return [node for node in collector.nodes if node.get('type') == 'media']
            return [wrap_media(collector.nodes)]
        if media:
            logger.warning('Dropping text inside a media block')
            return [node for node in collector.nodes if node.get('type') == 'media']
        return [paragraph_node(collector.nodes, attrs)]

    def _build_heading(self, token: Token, media: bool) -> list[dict]:
        collector = self.build_inline(token.children)
        attrs = dict(token.attributes or {'level': 1})
        attrs.update(collector.block_attrs('heading'))
        return [{'type': 'heading', 'attrs': attrs, 'content': collector.nodes}]

    def _build_code_block(self, token: Token, media: bool) -> list[dict]:
        node: dict = {'type': 'codeBlock'}
        if token.language:
            node['attrs'] = {'language': token.language}
        node['content'] = [text_node(token.content)] if token.content else []
        return [node]

    def _build_adf_block(self, token: Token, media: bool) -> list[dict]:
        fence_type = token.fence_type or ''
        attrs = dict(token.attributes or {})
        container_attrs: dict = {}
        content = self.build_blocks(
            token.children, fence_type, container_attrs, media=fence_type in MEDIA_CONTAINER_TYPES
        )
        attrs.update(container_attrs)
        return [fence_node(fence_type, attrs, content)]

    def _build_unknown_block(self, token: Token, media: bool) -> list[dict]:
        node = parse_preserved_node(token.content)
        if node is not None:
            return [node]
        if self.options.strict:
            raise MarkdownSyntaxError('Invalid JSON in preserved unknown node', line=token.position.line, column=1)
        logger.warning(f'Line {token.position.line}: keeping a preserved node with invalid JSON as text')
        return [paragraph_node([text_node(token.raw)])]

    def _build_table(self, token: Token, media: bool) -> list[dict]:
        rows = []
        for row in token.children:
            cells = []
            for cell in row.children:
                cell_type = 'tableHeader' if row.is_header else 'tableCell'
                attrs: dict = {}
                if cell.metadata is not None:
                    cell_type = cell.metadata.node_type
                    attrs.update(cell.metadata.attrs)
                if cell.attributes:
                    attrs.update(cell.attributes)
                collector = self.build_inline(cell.children)
                cell_node: dict = {'type': cell_type}
                if attrs:
                    cell_node['attrs'] = attrs
                cell_node['content'] = cell_content(collector)
                cells.append(cell_node)
            rows.append({'type': 'tableRow', 'content': drop_span_padding(cells)})
        return [{'type': 'table', 'attrs': dict(TABLE_DEFAULT_ATTRIBUTES), 'content': rows}]

    def _build_list(self, token: Token, media: bool) -> list[dict]:
        items = []
        for item in token.children:
            item_attrs: dict = {}
            content = self.build_blocks(item.children, 'listItem', item_attrs, media)
            item_node: dict = {'type': 'listItem'}
            if item_attrs:
                item_node['attrs'] = item_attrs
            item_node['content'] = content or [paragraph_node([])]
            items.append(item_node)
        if token.ordered:
            return [{'type': 'orderedList', 'attrs': {'order': token.start or 1}, 'content': items}]
        return [{'type': 'bulletList', 'content': items}]

    def _build_blockquote(self, token: Token, media: bool) -> list[dict]:
        return [{'type': 'blockquote', 'content': self.build_blocks(token.children, 'blockquote', {}, media)}]

    def _build_rule(self, token: Token, media: bool) -> list[dict]:
        return [{'type': 'rule'}]

    def _build_frontmatter(self, token: Token, media: bool) -> list[dict]:
        if self.options.frontmatter:
            self.frontmatter = parse_frontmatter(token.content, token.language or 'yaml', strict=self.options.strict)
        return []