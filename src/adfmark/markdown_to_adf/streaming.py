"""Incremental Markdown to ADF conversion for text that arrives in chunks.

Complete lines are collected into sections. A section ends at a blank line that is outside any code fence, fence
block, preserved unknown node or frontmatter, and only when the next non-blank line can not continue the blocks
before it: it is not indented, not a list item or blockquote line, and no standalone metadata comment sits on either
side of the blank line. Every section is converted with the regular parser of the selected backend as soon as it
ends, so the top-level ADF nodes come out in document order while the input is still arriving.
"""

import logging
import re
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator

from adfmark.config import ConversionOptions
from adfmark.constants import ADF_FENCE_NODE_TYPES, FRONTMATTER_LOOKAHEAD_LINES, LOGGER_NAME
from adfmark.exceptions import InvalidInputError
from adfmark.markdown_to_adf.ast_builder import empty_document
from adfmark.markdown_to_adf.parser import create_parser
from adfmark.markdown_to_adf.tokenizer import (
    ADF_FENCE_PATTERN,
    BLOCKQUOTE_PATTERN,
    BULLET_ITEM_PATTERN,
    CODE_FENCE_PATTERN,
    HTML_COMMENT_LINE_PATTERN,
    ORDERED_ITEM_PATTERN,
    UNKNOWN_CLOSING_PATTERN,
    UNKNOWN_OPENING_PATTERN,
)

logger = logging.getLogger(LOGGER_NAME)

FRONTMATTER_DELIMITERS = ('---', '+++')
CONTINUATION_PATTERNS = (BULLET_ITEM_PATTERN, ORDERED_ITEM_PATTERN, BLOCKQUOTE_PATTERN)
"""Lines that may continue a list or blockquote across a blank line."""


def _is_metadata_line(line: str) -> bool:
    return HTML_COMMENT_LINE_PATTERN.match(line) is not None


class StreamingParser:
    """Converts extended markdown fed in arbitrary chunks.

    `feed` returns the top-level nodes of the sections completed by the chunk, `close` those of the rest of the
    input. The frontmatter of the document, when there is one, is available in `frontmatter` once the first section
    has been converted.

    Usage:
        parser = StreamingParser()
        for chunk in chunks:
            for node in parser.feed(chunk):
                ...
        remaining = parser.close()
    """

    def __init__(self, options: ConversionOptions | dict | None = None):
        self.options = ConversionOptions.coerce(options)
        self.frontmatter: dict[str, Any] | None = None
        self._first_parser = create_parser(self.options)
        self._parser = create_parser(self.options.model_copy(update={'frontmatter': False}))
        self._reset()

    def _reset(self) -> None:
        self._partial = ''
        self._section: list[str] = []
        self._previous_line = ''
        self._cut_pending = False
        self._line_count = 0
        self._section_count = 0
        self._opens_with_delimiter = False
        self._code_fence: re.Pattern | None = None
        self._adf_depth = 0
        self._in_unknown = False
        self._frontmatter_delimiter: str | None = None
        self._frontmatter_lines = 0

    def feed(self, chunk: Any) -> list[dict]:
        """Adds `chunk` to the input and returns the nodes of the sections it completes."""
        if not isinstance(chunk, str):
            if self.options.strict:
                raise InvalidInputError(f'Expected a chunk of markdown text, got {type(chunk).__name__}')
            logger.warning(f'Ignoring markdown chunk of type {type(chunk).__name__}')
            return []

        *lines, self._partial = (self._partial + chunk).split('\n')
        nodes: list[dict] = []
        for line in lines:
            nodes.extend(self._push_line(line.rstrip('\r')))
        return nodes

    def close(self) -> list[dict]:
        """Converts the rest of the input. The parser can be fed a new document afterwards."""
        nodes: list[dict] = []
        if self._partial:
            nodes.extend(self._push_line(self._partial.rstrip('\r')))
        nodes.extend(self._flush())
        self._reset()
        return nodes

    def parse_stream(self, chunks: Iterable[str]) -> Iterator[dict]:
        """Yields the top-level ADF nodes of the markdown in `chunks`."""
        for chunk in chunks:
            yield from self.feed(chunk)
        yield from self.close()

    def parse(self, chunks: Iterable[str] | str) -> dict:
        """Converts the markdown in `chunks` to a complete ADF document."""
        if isinstance(chunks, str):
            chunks = [chunks]
        document = empty_document()
        document['content'] = list(self.parse_stream(chunks))
        return document

    async def parse_stream_async(self, chunks: AsyncIterable[str]) -> AsyncIterator[dict]:
        async for chunk in chunks:
            for node in self.feed(chunk):
                yield node
        for node in self.close():
            yield node

    def _push_line(self, line: str) -> list[dict]:
        self._line_count += 1
        if self._line_count == 1:
            self.frontmatter = None
        self._track(line)

        if not line.strip():
            if self._section:
                self._section.append(line)
                if not self._is_open():
                    self._cut_pending = True
            return []

        nodes: list[dict] = []
        if self._cut_pending:
            self._cut_pending = False
            if self._can_start_section(line):
                nodes = self._flush()
        self._section.append(line)
        self._previous_line = line
        return nodes

    def _is_open(self) -> bool:
        return (
            self._code_fence is not None
            or self._adf_depth > 0
            or self._in_unknown
            or self._frontmatter_delimiter is not None
        )

    def _can_start_section(self, line: str) -> bool:
        # metadata comments belong to the block before or after them
        if _is_metadata_line(self._previous_line) and not UNKNOWN_CLOSING_PATTERN.match(self._previous_line):
            return False
        if _is_metadata_line(line) and not UNKNOWN_OPENING_PATTERN.match(line):
            return False
        if line[0].isspace():
            return False
        return not any(pattern.match(line) for pattern in CONTINUATION_PATTERNS)

    def _track(self, line: str) -> None:
        """Follows the blocks that may hold blank lines."""
        stripped = line.rstrip()

        if self._line_count == 1 and self.options.frontmatter and stripped in FRONTMATTER_DELIMITERS:
            self._opens_with_delimiter = True
            self._frontmatter_delimiter = stripped
            return
        if self._frontmatter_delimiter is not None:
            self._frontmatter_lines += 1
            if self._frontmatter_lines == 1 and not stripped:
                self._frontmatter_delimiter = None
            elif stripped == self._frontmatter_delimiter or self._frontmatter_lines > FRONTMATTER_LOOKAHEAD_LINES:
                self._frontmatter_delimiter = None
            return

        if self._code_fence is not None:
            if self._code_fence.match(line):
                self._code_fence = None
            return
        if self._in_unknown:
            if UNKNOWN_CLOSING_PATTERN.match(line):
                self._in_unknown = False
            return

        if self.options.enable_adf_extensions:
            if UNKNOWN_OPENING_PATTERN.match(line):
                self._in_unknown = True
                return
            match = ADF_FENCE_PATTERN.match(line)
            if match and match.group(1) in ADF_FENCE_NODE_TYPES:
                self._adf_depth += 1
                return
            if self._adf_depth and stripped == '~~~':
                self._adf_depth -= 1
                return

        if match := CODE_FENCE_PATTERN.match(line):
            fence, info = match.group(2), match.group(3)
            if fence[0] == '`' and '`' in info:
                return
            self._code_fence = re.compile(rf'^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}\s*$')

    def _flush(self) -> list[dict]:
        lines = self._section
        self._section = []
        while lines and not lines[-1].strip():
            lines.pop()
        if not lines:
            return []

        markdown = '\n'.join(lines)
        logger.debug(f'Converting streamed section {self._section_count + 1} of {len(lines)} lines')
        if self._section_count == 0 and self._opens_with_delimiter:
            document, self.frontmatter = self._first_parser.parse_with_frontmatter(markdown)
        else:
            document = self._parser.parse(markdown)
        self._section_count += 1
        return list(document.get('content') or [])
