"""Builds ADF documents from the token stream of markdown-it-py.

The stream is walked by index; every `_build_*` method receives the index of an opening token and returns the built
node together with the index following its closing token. Metadata comments are routed exactly as in
`AstBuilder`.
"""

import logging
import re

from markdown_it.token import Token

from adfmark.adf_to_markdown.media import MEDIA_ALT_PLACEHOLDER
from adfmark.config import ConversionOptions
from adfmark.constants import LOGGER_NAME, TABLE_DEFAULT_ATTRIBUTES
from adfmark.exceptions import MarkdownSyntaxError
from adfmark.markdown_to_adf.ast_builder import (
    MEDIA_CONTAINER_TYPES,
    BlockSequence,
    InlineCollector,
    cell_content,
    drop_span_padding,
    empty_document,
    fence_node,
    is_media_only,
    paragraph_node,
    parse_preserved_node,
    text_node,
    wrap_media,
)
from adfmark.markdown_to_adf.frontmatter import parse_frontmatter
from adfmark.markdown_to_adf.inline import HTML_BREAK_PATTERN, HTML_MARK_OPENINGS, comment_attrs
from adfmark.markdown_to_adf.placeholders import image_to_media, link_to_node
from adfmark.markdown_to_adf.tokenizer import CELL_TYPES, COLSPAN_COMMENT_PATTERN

logger = logging.getLogger(LOGGER_NAME)

HTML_CLOSING_TAG_PATTERN = re.compile(r'^</(\w+)\s*>$')

MARK_TOKEN_TYPES = {
    'em_open': 'em',
    'strong_open': 'strong',
    's_open': 'strike',
}


def _line(token: Token) -> int | None:
    return token.map[0] if token.map else None


def _next_line(token: Token) -> int | None:
    return token.map[1] if token.map else None


class MditAdfBuilder:
    def __init__(self, options: ConversionOptions | dict | None = None):
        self.options = ConversionOptions.coerce(options)
        self.frontmatter: dict | None = None

    def build(self, tokens: list[Token]) -> dict:
        document = empty_document()
        document['content'], _ = self._build_blocks(tokens, 0, None, 'doc', {})
        return document

    def _build_blocks(
        self,
        tokens: list[Token],
        index: int,
        close_type: str | None,
        container_type: str,
        container_attrs: dict,
        media: bool = False,
    ) -> tuple[list[dict], int]:
        """Builds block nodes until the token of type `close_type`.

        Returns:
            The nodes and the index following the closing token.
        """
        sequence = BlockSequence(container_type, container_attrs)

        while index < len(tokens):
            token = tokens[index]

            if token.type == close_type:
                return sequence.finish(), index + 1

            if token.type == 'adf_metadata':
                if not token.meta.get('closing'):
                    sequence.add_comment(token.meta['kind'], dict(token.meta['attrs']), _line(token))
                index += 1
                continue

            nodes, next_index = self._build_block(tokens, index, media)
            next_line = _next_line(token)
            sequence.extend(nodes, next_line)
            index = next_index

        return sequence.finish(), index

    def _build_block(self, tokens: list[Token], index: int, media: bool) -> tuple[list[dict], int]:
        token = tokens[index]

        if token.type == 'paragraph_open':
            return self._build_paragraph(tokens[index + 1], media), index + 3

        if token.type == 'heading_open':
            return [self._build_heading(token, tokens[index + 1])], index + 3

        if token.type in ('fence', 'code_block'):
            return [self._build_code_block(token)], index + 1

        if token.type == 'hr':
            return [{'type': 'rule'}], index + 1

        if token.type in ('bullet_list_open', 'ordered_list_open'):
            node, index = self._build_list(tokens, index, media)
            return [node], index

        if token.type == 'blockquote_open':
            content, index = self._build_blocks(tokens, index + 1, 'blockquote_close', 'blockquote', {}, media)
            return [{'type': 'blockquote', 'content': content}], index

        if token.type == 'adf_fence_open':
            node, index = self._build_fence(tokens, index)
            return [node], index

        if token.type == 'table_open':
            node, index = self._build_table(tokens, index)
            return [node], index

        if token.type == 'adf_unknown':
            return [self._build_unknown(token)], index + 1

        if token.type == 'front_matter':
            if self.options.frontmatter:
                self.frontmatter = parse_frontmatter(token.content, 'yaml', strict=self.options.strict)
            return [], index + 1

        if token.type != 'html_block':
            logger.debug(f'Skipping unsupported markdown token {token.type}')
        return [], index + 1

    def _build_paragraph(self, inline: Token, media: bool) -> list[dict]:
        collector = self._build_inline(inline.children or [])
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

    def _build_heading(self, opening: Token, inline: Token) -> dict:
        collector = self._build_inline(inline.children or [])
        attrs = {'level': int(opening.tag[1])}
        attrs.update(collector.block_attrs('heading'))
        return {'type': 'heading', 'attrs': attrs, 'content': collector.nodes}

    def _build_code_block(self, token: Token) -> dict:
        node: dict = {'type': 'codeBlock'}
        language = token.info.strip().split(' ')[0] if token.info else ''
        if language:
            node['attrs'] = {'language': language}
        text = token.content[:-1] if token.content.endswith('\n') else token.content
        node['content'] = [text_node(text)] if text else []
        return node

    def _build_list(self, tokens: list[Token], index: int, media: bool) -> tuple[dict, int]:
        opening = tokens[index]
        close_type = opening.type.replace('_open', '_close')
        items = []
        index += 1

        while index < len(tokens) and tokens[index].type != close_type:
            if tokens[index].type != 'list_item_open':
                index += 1
                continue
            item_attrs: dict = {}
            content, index = self._build_blocks(tokens, index + 1, 'list_item_close', 'listItem', item_attrs, media)
            item: dict = {'type': 'listItem'}
            if item_attrs:
                item['attrs'] = item_attrs
            item['content'] = content or [paragraph_node([])]
            items.append(item)

        if opening.type == 'ordered_list_open':
            start = opening.attrGet('start')
            node = {'type': 'orderedList', 'attrs': {'order': int(start) if start else 1}, 'content': items}
        else:
            node = {'type': 'bulletList', 'content': items}
        return node, index + 1

    def _build_fence(self, tokens: list[Token], index: int) -> tuple[dict, int]:
        opening = tokens[index]
        fence_type = opening.meta['node_type']
        attrs = dict(opening.meta.get('attrs') or {})
        container_attrs: dict = {}
        content, index = self._build_blocks(
            tokens,
            index + 1,
            'adf_fence_close',
            fence_type,
            container_attrs,
            media=fence_type in MEDIA_CONTAINER_TYPES,
        )
        attrs.update(container_attrs)
        return fence_node(fence_type, attrs, content), index

    def _build_table(self, tokens: list[Token], index: int) -> tuple[dict, int]:
        rows = []
        cells: list[dict] = []
        index += 1

        while index < len(tokens) and tokens[index].type != 'table_close':
            token = tokens[index]
            if token.type == 'tr_open':
                cells = []
            elif token.type == 'tr_close':
                rows.append({'type': 'tableRow', 'content': drop_span_padding(cells)})
            elif token.type in ('th_open', 'td_open'):
                cells.append(self._build_cell(token, tokens[index + 1]))
                index += 2
            index += 1

        return {'type': 'table', 'attrs': dict(TABLE_DEFAULT_ATTRIBUTES), 'content': rows}, index + 1

    def _build_cell(self, opening: Token, inline: Token) -> dict:
        cell_type = 'tableHeader' if opening.type == 'th_open' else 'tableCell'
        attrs: dict = {}
        children = []
        for child in inline.children or []:
            if child.type == 'html_inline' and (match := COLSPAN_COMMENT_PATTERN.match(child.content)):
                attrs['colspan'] = int(match.group(1))
                if children and children[-1].type == 'text':
                    children[-1].content = children[-1].content.rstrip(' ')
            else:
                children.append(child)

        collector = self._build_inline(children)
        comments = collector.block_comments
        collector.block_comments = []
        for kind, comment_attrs in comments:
            if kind in CELL_TYPES:
                cell_type = kind
                attrs = {**comment_attrs, **attrs}
            else:
                collector.block_comments.append((kind, comment_attrs))

        node: dict = {'type': cell_type}
        if attrs:
            node['attrs'] = attrs
        node['content'] = cell_content(collector)
        return node

    def _build_unknown(self, token: Token) -> dict:
        node = parse_preserved_node(token.content)
        if node is not None:
            return node
        line = _line(token)
        if self.options.strict:
            raise MarkdownSyntaxError(
                'Invalid JSON in preserved unknown node', line=line + 1 if line is not None else None, column=1
            )
        logger.warning('Keeping a preserved node with invalid JSON as text')
        return paragraph_node([text_node(token.content)])

    def _build_inline(self, tokens: list[Token]) -> InlineCollector:
        collector = InlineCollector(resolve_placeholders=self.options.enable_adf_extensions)
        stack: list[tuple[str, dict]] = []
        index = 0

        while index < len(tokens):
            token = tokens[index]
            # innermost mark first
            marks = [mark for _, mark in reversed(stack)]

            if token.type == 'text':
                collector.add_text(token.content, marks)
            elif token.type == 'text_special':
                collector.add_text(token.content, marks, literal=True)
            elif token.type == 'softbreak':
                collector.add_text('\n', marks, literal=True)
            elif token.type == 'hardbreak':
                collector.add({'type': 'hardBreak'})
            elif token.type == 'code_inline':
                collector.add(text_node(token.content, [{'type': 'code'}, *marks]))
            elif token.type in MARK_TOKEN_TYPES:
                mark_type = MARK_TOKEN_TYPES[token.type]
                if token.type == 'strong_open' and token.markup == '__':
                    mark_type = 'underline'
                stack.append((token.type[: -len('_open')], {'type': mark_type}))
            elif token.type in ('em_close', 'strong_close', 's_close', 'link_close'):
                _pop_mark(stack, token.type[: -len('_close')])
            elif token.type == 'link_open':
                index = self._append_link(tokens, index, stack, collector)
                continue
            elif token.type == 'image':
                src = token.attrGet('src') or ''
                collector.add(image_to_media(str(src), token.content, MEDIA_ALT_PLACEHOLDER))
            elif token.type == 'adf_placeholder':
                collector.add_text(token.content, marks)
            elif token.type == 'adf_unknown_inline':
                self._append_preserved(token, marks, collector)
            elif token.type == 'html_inline':
                self._append_html(token.content, stack, collector)
            index += 1

        return collector

    def _append_link(
        self, tokens: list[Token], index: int, stack: list[tuple[str, dict]], collector: InlineCollector
    ) -> int:
        opening = tokens[index]
        href = str(opening.attrGet('href') or '')

        if self.options.enable_adf_extensions and href.startswith('adf://'):
            close_index = index + 1
            label = []
            while close_index < len(tokens) and tokens[close_index].type != 'link_close':
                if tokens[close_index].type == 'text':
                    label.append(tokens[close_index].content)
                close_index += 1
            if node := link_to_node(href, ''.join(label)):
                collector.add(node)
                return close_index + 1

        attrs = {'href': href}
        title = opening.attrGet('title')
        if title is not None:
            attrs['title'] = str(title)
        stack.append(('link', {'type': 'link', 'attrs': attrs}))
        return index + 1

    def _append_preserved(self, token: Token, marks: list[dict], collector: InlineCollector) -> None:
        node = parse_preserved_node(token.content)
        if node is not None:
            if (token.meta or {}).get('block'):
                collector.add_block(node)
            else:
                collector.add(node)
            return
        if self.options.strict:
            raise MarkdownSyntaxError('Invalid JSON in preserved inline node')
        collector.add_text(token.markup, marks, literal=True)

    def _append_html(self, html: str, stack: list[tuple[str, dict]], collector: InlineCollector) -> None:
        """Handles an inline HTML token: metadata comments, `<br>` and the HTML mark fallbacks."""
        if html.startswith('<!--'):
            if re.match(r'<!--\s*/', html):
                return
            parsed = comment_attrs(html) if self.options.enable_adf_extensions else None
            if parsed is not None:
                collector.apply_comment(*parsed)
            return

        if HTML_BREAK_PATTERN.fullmatch(html):
            collector.add({'type': 'hardBreak'})
            return

        if match := HTML_CLOSING_TAG_PATTERN.match(html):
            _pop_mark(stack, f'<{match.group(1).lower()}>')
            return

        for tag, pattern, to_mark in HTML_MARK_OPENINGS:
            if opening := pattern.fullmatch(html):
                mark_type, attrs = to_mark(opening)
                mark: dict = {'type': mark_type}
                if attrs:
                    mark['attrs'] = attrs
                stack.append((f'<{tag}>', mark))
                return

        logger.debug(f'Ignoring inline HTML {html!r}')


def _pop_mark(stack: list[tuple[str, dict]], key: str) -> None:
    """Removes the innermost mark opened by `key`."""
    for position in range(len(stack) - 1, -1, -1):
        if stack[position][0] == key:
            del stack[position]
            return
