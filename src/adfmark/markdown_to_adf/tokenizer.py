"""Line-based block tokenizer for extended markdown.

`tokenize` walks the input line by line and tries the block matchers in a fixed order, first match wins:

1. `~~~<type> attrs` fence blocks for the ADF container types
2. code fences (backticks or tildes)
3. `<!-- adf:unknown -->` ... `<!-- /adf:unknown -->` preserved nodes
4. standalone metadata comments
5. ATX headings
6. pipe tables
7. bullet and ordered lists
8. blockquotes
9. thematic breaks, or frontmatter on the first line
10. paragraphs

Container bodies (fence blocks, list items, blockquotes) are tokenized again by a recursive call one level deeper.
Once the depth bound is reached the body is kept as a single paragraph instead.
"""

from dataclasses import dataclass
import logging
import re
from typing import Callable

from adfmark.constants import (
    ADF_FENCE_NODE_TYPES,
    DEFAULT_MAX_DEPTH,
    FRONTMATTER_LOOKAHEAD_LINES,
    LOGGER_NAME,
    MAX_INPUT_LENGTH,
    MAX_TOKENIZER_ITERATIONS,
    MAX_TOKENS,
)
from adfmark.exceptions import ResourceLimitError
from adfmark.markdown_to_adf.inline import tokenize_inline
from adfmark.models import Position, Token, TokenMetadata, TokenType
from adfmark.utils.metadata_comments import (
    parse_attribute_string,
    parse_metadata_comment,
    strip_trailing_metadata_comment,
)

logger = logging.getLogger(LOGGER_NAME)

ADF_FENCE_PATTERN = re.compile(r'^~~~(\w+)(\s+.*)?$')
CODE_FENCE_PATTERN = re.compile(r'^( {0,3})(`{3,}|~{3,})\s*(.*)$')
UNKNOWN_OPENING_PATTERN = re.compile(r'^\s*<!--\s*adf:unknown\b((?:(?!-->).)*)-->\s*$')
UNKNOWN_CLOSING_PATTERN = re.compile(r'^\s*<!--\s*/adf:unknown\s*-->\s*$')
HTML_COMMENT_LINE_PATTERN = re.compile(r'^\s*<!--(?:(?!-->).)*-->\s*$')
HEADING_PATTERN = re.compile(r'^ {0,3}(#{1,6})(?:[ \t]+(.*)|[ \t]*)$')
HEADING_CLOSING_SEQUENCE_PATTERN = re.compile(r'(?:^|[ \t]+)#+[ \t]*$')
TABLE_SEPARATOR_PATTERN = re.compile(r'^\s*\|?\s*:?-+:?\s*(?:\|\s*:?-+:?\s*)*\|?\s*$')
BULLET_ITEM_PATTERN = re.compile(r'^( {0,3})([-*+])(?:[ \t]+(.*)|[ \t]*)$')
ORDERED_ITEM_PATTERN = re.compile(r'^( {0,3})(\d{1,9})\.(?:[ \t]+(.*)|[ \t]*)$')
BLOCKQUOTE_PATTERN = re.compile(r'^\s{0,3}>')
BLOCKQUOTE_PREFIX_PATTERN = re.compile(r'^\s*> ?')
RULE_PATTERN = re.compile(r'^ {0,3}(-{3,}|\*{3,}|_{3,})\s*$')
COLSPAN_COMMENT_PATTERN = re.compile(r'\s*<!--\s*colspan=(\d+)\s*-->\s*$')

CELL_TYPES = ('tableCell', 'tableHeader')


@dataclass(frozen=True)
class _Scope:
    max_depth: int
    current_depth: int
    frontmatter: bool
    adf_extensions: bool
    base_line: int
    offsets: tuple[int, ...]

    def can_descend(self) -> bool:
        return self.current_depth + 1 < self.max_depth

    def position(self, index: int) -> Position:
        return Position(line=self.base_line + index, column=1, offset=self.offsets[index])


_MatchResult = tuple[Token | None, int] | None


def tokenize(
    text: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
    current_depth: int = 0,
    *,
    frontmatter: bool = True,
    adf_extensions: bool = True,
    base_line: int = 1,
) -> list[Token]:
    """Splits extended markdown into a tree of block tokens.

    Args:
        text: the markdown.
        max_depth: the nesting bound for container bodies.
        current_depth: the depth of `text` itself; 0 for a whole document.
        frontmatter: whether a leading frontmatter block is recognized.
        adf_extensions: whether fence blocks, metadata comments and preserved unknown nodes are recognized.
        base_line: line number of the first line of `text`, used for token positions.

    Returns:
        The block tokens in document order. Output is truncated, with a warning, when the iteration or token limit
        is hit.

    Raises:
        ResourceLimitError: when `text` is longer than `MAX_INPUT_LENGTH` characters.
    """
    if len(text) > MAX_INPUT_LENGTH:
        raise ResourceLimitError(
            f'Input of {len(text)} characters exceeds the limit of {MAX_INPUT_LENGTH} characters'
        )

    lines = text.replace('\r\n', '\n').split('\n')
    offsets = []
    offset = 0
    for line in lines:
        offsets.append(offset)
        offset += len(line) + 1

    scope = _Scope(
        max_depth=max_depth,
        current_depth=current_depth,
        frontmatter=frontmatter and current_depth == 0,
        adf_extensions=adf_extensions,
        base_line=base_line,
        offsets=tuple(offsets),
    )

    tokens: list[Token] = []
    index = 0
    iterations = 0
    while index < len(lines):
        iterations += 1
        if iterations > MAX_TOKENIZER_ITERATIONS or len(tokens) >= MAX_TOKENS:
            logger.warning(f'Tokenizer limit reached at line {scope.base_line + index}, truncating output')
            break

        if not lines[index].strip():
            index += 1
            continue

        for matcher in BLOCK_MATCHERS:
            result = matcher(lines, index, scope)
            if result is None:
                continue
            token, index = result
            if token is not None:
                tokens.append(token)
            break

    return tokens


def _raw(lines: list[str], start: int, end: int) -> str:
    return '\n'.join(lines[start:end])


def _tokenize_body(body: str, scope: _Scope, first_line: int) -> list[Token]:
    if not scope.can_descend():
        return [_flat_paragraph(body, scope.base_line + first_line, scope)]
    return tokenize(
        body,
        scope.max_depth,
        scope.current_depth + 1,
        frontmatter=False,
        adf_extensions=scope.adf_extensions,
        base_line=scope.base_line + first_line,
    )


def _flat_paragraph(body: str, line: int, scope: _Scope) -> Token:
    content = body.strip()
    return Token(
        type=TokenType.PARAGRAPH,
        content=content,
        position=Position(line=line, column=1, offset=0),
        raw=body,
        children=tokenize_inline(content, adf_extensions=scope.adf_extensions),
    )


def find_fence_end(lines: list[str], start: int) -> int:
    """Returns the index of the `~~~` line closing the fence opened at `start`, or `len(lines)` when unclosed."""
    depth = 1
    code_fence: str | None = None
    for index in range(start + 1, len(lines)):
        line = lines[index]
        if code_fence is not None:
            if line.strip().startswith(code_fence) and not line.strip().strip(code_fence[0]):
                code_fence = None
            continue
        if line.startswith('```'):
            code_fence = re.match(r'`+', line).group(0)
        elif line.rstrip() == '~~~':
            depth -= 1
            if depth == 0:
                return index
        elif match := ADF_FENCE_PATTERN.match(line):
            if match.group(1) in ADF_FENCE_NODE_TYPES:
                depth += 1
            else:
                # a tilde code fence such as ~~~python
                code_fence = '~~~'
    return len(lines)


def _adf_block(fence_type: str, header: str, lines: list[str], index: int, end: int, scope: _Scope) -> Token:
    body = _raw(lines, index + 1, end)
    attributes = parse_attribute_string(header)
    return Token(
        type=TokenType.ADF_BLOCK,
        content=body,
        position=scope.position(index),
        raw=_raw(lines, index, end + 1),
        children=_tokenize_body(body, scope, index + 1),
        metadata=TokenMetadata(node_type=fence_type, attrs=dict(attributes)),
        fence_type=fence_type,
        attributes=attributes,
    )


def _match_adf_fence(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    if not scope.adf_extensions:
        return None
    match = ADF_FENCE_PATTERN.match(lines[index])
    if not match or match.group(1) not in ADF_FENCE_NODE_TYPES:
        return None
    end = find_fence_end(lines, index)
    if end == len(lines):
        logger.debug(f'Unclosed ~~~{match.group(1)} fence at line {scope.base_line + index}')
    return _adf_block(match.group(1), match.group(2) or '', lines, index, end, scope), end + 1


def _match_code_fence(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    match = CODE_FENCE_PATTERN.match(lines[index])
    if not match:
        return None
    indent, fence, info = match.groups()
    if fence[0] == '`' and '`' in info:
        return None

    closing = re.compile(rf'^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}\s*$')
    end = index + 1
    while end < len(lines) and not closing.match(lines[end]):
        end += 1

    info = info.strip()
    language, _, meta = info.partition(' ')
    if scope.adf_extensions and language in ADF_FENCE_NODE_TYPES:
        return _adf_block(language, meta, lines, index, end, scope), end + 1

    body_lines = [
        line[len(indent) :] if line.startswith(indent) else line.lstrip(' ') for line in lines[index + 1 : end]
    ]
    token = Token(
        type=TokenType.CODE_BLOCK,
        content='\n'.join(body_lines),
        position=scope.position(index),
        raw=_raw(lines, index, end + 1),
        language=language or None,
    )
    return token, end + 1


def _match_unknown_block(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    if not scope.adf_extensions:
        return None
    match = UNKNOWN_OPENING_PATTERN.match(lines[index])
    if not match:
        return None
    end = index + 1
    while end < len(lines) and not UNKNOWN_CLOSING_PATTERN.match(lines[end]):
        end += 1
    if end == len(lines):
        return None
    token = Token(
        type=TokenType.UNKNOWN_BLOCK,
        content=_raw(lines, index + 1, end),
        position=scope.position(index),
        raw=_raw(lines, index, end + 1),
        metadata=TokenMetadata(node_type='unknown', attrs=parse_attribute_string(match.group(1))),
    )
    return token, end + 1


def _match_metadata_comment(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    if not scope.adf_extensions:
        return None
    line = lines[index]
    comment = parse_metadata_comment(line)
    if comment is None:
        # other HTML comments have no ADF representation
        if HTML_COMMENT_LINE_PATTERN.match(line):
            return None, index + 1
        return None
    if comment.closing:
        return None, index + 1
    if comment.json_error:
        logger.debug(f'Line {scope.base_line + index}: {comment.json_error}')
    token = Token(
        type=TokenType.METADATA_COMMENT,
        content=comment.raw,
        position=scope.position(index),
        raw=line,
        metadata=TokenMetadata(node_type=comment.kind, attrs=comment.attrs),
    )
    return token, index + 1


def _match_heading(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    match = HEADING_PATTERN.match(lines[index])
    if not match:
        return None
    level = len(match.group(1))
    content = match.group(2) or ''
    attributes: dict = {'level': level}

    if scope.adf_extensions:
        stripped, comment = strip_trailing_metadata_comment(content)
        if comment is not None and comment.kind == 'heading':
            content = stripped
            # malformed JSON keeps the level only
            if not comment.json_error:
                attributes.update(comment.attrs)

    content = HEADING_CLOSING_SEQUENCE_PATTERN.sub('', content.strip()).strip()
    token = Token(
        type=TokenType.HEADING,
        content=content,
        position=scope.position(index),
        raw=lines[index],
        children=tokenize_inline(content, adf_extensions=scope.adf_extensions),
        metadata=TokenMetadata(node_type='heading', attrs=dict(attributes)),
        attributes=attributes,
    )
    return token, index + 1


def _is_table_row(line: str) -> bool:
    stripped = line.strip()
    if not stripped or stripped.startswith('<!--'):
        return False
    return stripped.startswith('|') or bool(re.search(r'(?<!\\)\|', stripped))


def split_table_row(line: str) -> list[str]:
    """Splits a pipe table row into raw cell texts.

    Pipes escaped with a backslash or inside HTML comments do not separate cells.
    """
    row = line.strip()
    if row.startswith('|'):
        row = row[1:]
    if row.endswith('|') and not row.endswith('\\|'):
        row = row[:-1]

    cells = []
    current: list[str] = []
    position = 0
    while position < len(row):
        if row.startswith('<!--', position):
            end = row.find('-->', position)
            end = len(row) if end == -1 else end + 3
            current.append(row[position:end])
            position = end
            continue
        char = row[position]
        if char == '\\' and position + 1 < len(row):
            current.append(row[position : position + 2])
            position += 2
            continue
        if char == '|':
            cells.append(''.join(current))
            current = []
        else:
            current.append(char)
        position += 1
    cells.append(''.join(current))
    return cells


def _column_alignment(cell: str) -> str | None:
    cell = cell.strip()
    if cell.startswith(':') and cell.endswith(':'):
        return 'center'
    if cell.endswith(':'):
        return 'right'
    if cell.startswith(':'):
        return 'left'
    return None


def _cell_token(raw_cell: str, line_index: int, scope: _Scope) -> Token:
    content = raw_cell.strip()
    metadata = None
    attributes: dict = {}

    while True:
        stripped, comment = strip_trailing_metadata_comment(content)
        if comment is not None and comment.kind in CELL_TYPES and metadata is None:
            metadata = TokenMetadata(node_type=comment.kind, attrs=comment.attrs)
            content = stripped.strip()
            continue
        if match := COLSPAN_COMMENT_PATTERN.search(content):
            attributes['colspan'] = int(match.group(1))
            content = content[: match.start()].strip()
            continue
        break

    content = content.replace('\\|', '|')
    return Token(
        type=TokenType.TABLE_CELL,
        content=content,
        position=scope.position(line_index),
        raw=raw_cell,
        children=tokenize_inline(content, adf_extensions=scope.adf_extensions),
        metadata=metadata,
        attributes=attributes or None,
    )


def _row_token(line_index: int, lines: list[str], scope: _Scope, is_header: bool) -> Token:
    line = lines[line_index]
    return Token(
        type=TokenType.TABLE_ROW,
        content=line.strip(),
        position=scope.position(line_index),
        raw=line,
        children=[_cell_token(cell, line_index, scope) for cell in split_table_row(line)],
        is_header=is_header,
    )


def _match_table(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    if index + 1 >= len(lines) or '|' not in lines[index] or not _is_table_row(lines[index]):
        return None
    separator = lines[index + 1]
    if '|' not in separator and not lines[index].strip().startswith('|'):
        return None
    if not TABLE_SEPARATOR_PATTERN.match(separator):
        return None

    rows = [_row_token(index, lines, scope, is_header=True)]
    end = index + 2
    while end < len(lines) and _is_table_row(lines[end]):
        rows.append(_row_token(end, lines, scope, is_header=False))
        end += 1

    token = Token(
        type=TokenType.TABLE,
        content=_raw(lines, index, end),
        position=scope.position(index),
        raw=_raw(lines, index, end),
        children=rows,
        column_alignments=[_column_alignment(cell) for cell in split_table_row(separator)],
    )
    return token, end


def _list_marker(line: str) -> tuple[bool, re.Match] | None:
    if match := BULLET_ITEM_PATTERN.match(line):
        return False, match
    if match := ORDERED_ITEM_PATTERN.match(line):
        return True, match
    return None


def _next_non_blank(lines: list[str], start: int) -> int | None:
    for index in range(start, len(lines)):
        if lines[index].strip():
            return index
    return None


def _match_list(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    marker = _list_marker(lines[index])
    if marker is None or RULE_PATTERN.match(lines[index]):
        return None
    ordered, first_match = marker

    items: list[Token] = []
    end = index
    while end < len(lines):
        marker = _list_marker(lines[end])
        if marker is None or marker[0] != ordered or RULE_PATTERN.match(lines[end]):
            break
        item_start = end
        match = marker[1]
        content_indent = ' ' * (len(match.group(1)) + 2)
        # continuation lines are indented by the marker width, or by two spaces
        marker_indent = ' ' * (len(match.group(1)) + len(match.group(2)) + (2 if ordered else 1))
        item_lines = [match.group(3) or '']
        end += 1

        while end < len(lines):
            line = lines[end]
            if not line.strip():
                following = _next_non_blank(lines, end + 1)
                if following is None or not lines[following].startswith(content_indent):
                    break
                item_lines.append('')
            elif line.startswith(marker_indent):
                item_lines.append(line[len(marker_indent) :])
            elif line.startswith(content_indent):
                item_lines.append(line[len(content_indent) :])
            elif _starts_block(line, scope):
                break
            else:
                # lazy continuation of the item's paragraph
                item_lines.append(line.strip())
            end += 1

        while item_lines and not item_lines[-1].strip():
            item_lines.pop()
        body = '\n'.join(item_lines)
        items.append(
            Token(
                type=TokenType.LIST_ITEM,
                content=body,
                position=scope.position(item_start),
                raw=_raw(lines, item_start, end),
                children=_tokenize_body(body, scope, item_start) if body.strip() else [],
            )
        )

        # a blank line between items ends the list
        if end < len(lines) and not lines[end].strip():
            break

    token = Token(
        type=TokenType.LIST,
        content=_raw(lines, index, end),
        position=scope.position(index),
        raw=_raw(lines, index, end),
        children=items,
        ordered=ordered,
        start=int(first_match.group(2)) if ordered else None,
    )
    return token, end


def _match_blockquote(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    if not BLOCKQUOTE_PATTERN.match(lines[index]):
        return None
    end = index
    while end < len(lines) and BLOCKQUOTE_PATTERN.match(lines[end]):
        end += 1
    body = '\n'.join(BLOCKQUOTE_PREFIX_PATTERN.sub('', line, count=1) for line in lines[index:end])
    token = Token(
        type=TokenType.BLOCKQUOTE,
        content=body,
        position=scope.position(index),
        raw=_raw(lines, index, end),
        children=_tokenize_body(body, scope, index),
    )
    return token, end


def _match_frontmatter(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    delimiter = lines[index].rstrip()
    if not scope.frontmatter or index != 0 or delimiter not in ('---', '+++'):
        return None
    if len(lines) < 2 or not lines[1].strip():
        return None
    for end in range(1, min(len(lines), FRONTMATTER_LOOKAHEAD_LINES + 2)):
        if lines[end].rstrip() == delimiter:
            token = Token(
                type=TokenType.FRONTMATTER,
                content=_raw(lines, 1, end),
                position=scope.position(index),
                raw=_raw(lines, 0, end + 1),
                language='toml' if delimiter == '+++' else 'yaml',
            )
            return token, end + 1
    return None


def _match_rule(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    if not RULE_PATTERN.match(lines[index]):
        return None
    return Token(type=TokenType.RULE, content='', position=scope.position(index), raw=lines[index]), index + 1


def _starts_block(line: str, scope: _Scope) -> bool:
    """Whether `line` opens a block that interrupts a paragraph."""
    if scope.adf_extensions:
        if (match := ADF_FENCE_PATTERN.match(line)) and match.group(1) in ADF_FENCE_NODE_TYPES:
            return True
        if HTML_COMMENT_LINE_PATTERN.match(line) or UNKNOWN_OPENING_PATTERN.match(line):
            return True
    if CODE_FENCE_PATTERN.match(line) or HEADING_PATTERN.match(line):
        return True
    if BLOCKQUOTE_PATTERN.match(line) or RULE_PATTERN.match(line):
        return True
    if _list_marker(line) is not None:
        return True
    return line.lstrip().startswith('|')


def _match_paragraph(lines: list[str], index: int, scope: _Scope) -> _MatchResult:
    end = index + 1
    while end < len(lines) and lines[end].strip() and not _starts_block(lines[end], scope):
        end += 1
    content = '\n'.join(line.lstrip() for line in lines[index:end]).rstrip()
    token = Token(
        type=TokenType.PARAGRAPH,
        content=content,
        position=scope.position(index),
        raw=_raw(lines, index, end),
        children=tokenize_inline(content, adf_extensions=scope.adf_extensions),
    )
    return token, end


BLOCK_MATCHERS: tuple[Callable[[list[str], int, _Scope], _MatchResult], ...] = (
    _match_adf_fence,
    _match_code_fence,
    _match_unknown_block,
    _match_metadata_comment,
    _match_heading,
    _match_table,
    _match_list,
    _match_blockquote,
    _match_frontmatter,
    _match_rule,
    _match_paragraph,
)
"""Block matchers in recognition order. The paragraph matcher always succeeds."""
