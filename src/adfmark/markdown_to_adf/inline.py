"""Inline tokenizer for paragraph, heading, list item and table cell text.

The text is scanned left to right. At every position the candidate constructs that can start with the current
character are tried and the one ending first wins, so the earliest start and then the shortest span take
precedence. Formatting spans are tokenized again for their content; code spans are taken verbatim.

Closer searches go through an `InlineScan`, which remembers the next closer of every kind. Openers are tried in
text order, so each kind of closer is searched for once per stretch of text and the scan stays linear.
"""

from dataclasses import dataclass, field
import json
import re
from typing import Callable, Hashable

from adfmark.constants import MAX_INLINE_DEPTH
from adfmark.models import Position, Token, TokenMetadata, TokenType
from adfmark.utils.metadata_comments import ATTRS_JSON_PATTERN, parse_metadata_comment

LINK_TARGET_PATTERN = re.compile(r'\(\s*((?:[^()\s]|\([^()\s]*\))*)(?:\s+"([^"]*)")?\s*\)')
LABEL_END_PATTERN = re.compile(r'[\]\n]')
AUTOLINK_PATTERN = re.compile(r'<(https?://[^<>\s]+)>')
STAR_CLOSING_PATTERNS = {
    1: re.compile(r'(?<![\s*])(?:\*{3,}|\*(?!\*))'),
    2: re.compile(r'(?<![\s*])\*{2,}'),
    3: re.compile(r'(?<![\s*])\*{3,}'),
}
"""Closing star runs by opening run length: not preceded by whitespace, of a length the opener can close on."""
ESCAPE_PATTERN = re.compile(r'\\([!"#$%&\'()*+,\-./:;<=>?@\[\\\]^_`{|}~])')
BACKSLASH_BREAK_PATTERN = re.compile(r'\\\n[ \t]*')
SPACES_BREAK_PATTERN = re.compile(r' {2,}\n[ \t]*')
HTML_BREAK_PATTERN = re.compile(r'<br\s*/?>', re.IGNORECASE)
PLACEHOLDER_PATTERN = re.compile(r'\{(?:user|status|date|media):[^{}\n]*\}')
INLINE_COMMENT_PATTERN = re.compile(r'<!--\s*/?adf:[a-zA-Z][a-zA-Z0-9]*(?:(?!-->).)*-->')
COMMENT_END_PATTERN = re.compile(r'-->|\n')
INLINE_UNKNOWN_PATTERN = re.compile(
    r'<!--\s*adf:unknown\s+type="([^"]*)"(\s+block)?\s*-->(.*?)<!--\s*/adf:unknown\s*-->', re.DOTALL
)
"""The single-line form of a preserved node. The `block` flag marks a block node kept inside a table cell."""
UNKNOWN_CLOSING_PATTERN = re.compile(r'<!--\s*/adf:unknown\s*-->')
MARK_TYPE_PATTERN = re.compile(r'type="([^"]*)"')

HTML_MARK_OPENINGS: tuple[tuple[str, re.Pattern, Callable[[re.Match], tuple[str, dict]]], ...] = (
    ('u', re.compile(r'<u>', re.IGNORECASE), lambda match: ('underline', {})),
    (
        'span',
        re.compile(r'<span\s+style="\s*color:\s*([^";]+?)\s*;?\s*">', re.IGNORECASE),
        lambda match: ('textColor', {'color': match.group(1)}),
    ),
    (
        'mark',
        re.compile(r'<mark(?:\s+style="\s*background(?:-color)?:\s*([^";]+?)\s*;?\s*")?\s*>', re.IGNORECASE),
        lambda match: ('backgroundColor', {'color': match.group(1) or 'yellow'}),
    ),
    ('sub', re.compile(r'<sub>', re.IGNORECASE), lambda match: ('subsup', {'type': 'sub'})),
    ('sup', re.compile(r'<sup>', re.IGNORECASE), lambda match: ('subsup', {'type': 'sup'})),
)

RUN_CHARACTERS = '*_~` '


@dataclass
class _Span:
    end: int
    tokens: list[Token] = field(default_factory=list)


def _pair_tags(text: str, tag: str) -> dict[int, int]:
    """Maps the end of every `<tag ...>` in `text` to the start of the `</tag>` closing it."""
    pattern = re.compile(rf'<{tag}\b[^<>]*>|</{tag}\s*>', re.IGNORECASE)
    pairs: dict[int, int] = {}
    open_ends: list[int] = []
    for match in pattern.finditer(text):
        if match.group(0).startswith('</'):
            if open_ends:
                pairs[open_ends.pop()] = match.start()
        else:
            open_ends.append(match.end())
    return pairs


class InlineScan:
    """The text of one inline run with memoized closer lookups."""

    def __init__(self, text: str, adf_extensions: bool = True, depth: int = 0):
        self.text = text
        self.adf_extensions = adf_extensions
        self.depth = depth
        self._next: dict[Hashable, tuple[int, re.Match | None]] = {}
        self._link_targets: dict[int, re.Match | None] = {}
        self._tag_pairs: dict[str, dict[int, int]] = {}

    def next_match(self, key: Hashable, pattern: re.Pattern, position: int) -> re.Match | None:
        """Returns the first match of `pattern` at or after `position`.

        The last answer for `key` is reused while `position` has not moved past it. A search that found nothing
        answers every later position too.
        """
        cached = self._next.get(key)
        if cached is not None:
            searched_from, match = cached
            if searched_from <= position and (match is None or match.start() >= position):
                return match
        match = pattern.search(self.text, position)
        self._next[key] = (position, match)
        return match

    def link_target(self, position: int) -> re.Match | None:
        """Matches the `(href "title")` part of a link or image at `position`."""
        if position not in self._link_targets:
            self._link_targets[position] = LINK_TARGET_PATTERN.match(self.text, position)
        return self._link_targets[position]

    def closing_tag_start(self, tag: str, position: int) -> int | None:
        """Finds the `</tag>` matching the opening tag that ends at `position`, counting nested tags."""
        if tag not in self._tag_pairs:
            self._tag_pairs[tag] = _pair_tags(self.text, tag)
        return self._tag_pairs[tag].get(position)

    def match_unknown(self, start: int) -> re.Match | None:
        """Matches a single-line preserved node starting at `start`."""
        closing = self.next_match('unknown', UNKNOWN_CLOSING_PATTERN, start)
        if closing is None:
            return None
        return INLINE_UNKNOWN_PATTERN.match(self.text, start, closing.end())

    def match_comment(self, start: int) -> re.Match | None:
        """Matches a metadata comment starting at `start`; it has to end on the same line."""
        end = self.next_match('comment', COMMENT_END_PATTERN, start + 4)
        if end is None or end.group(0) != '-->':
            return None
        return INLINE_COMMENT_PATTERN.match(self.text, start, end.end())


def _position(start: int) -> Position:
    return Position(line=1, column=start + 1, offset=start)


def _text(content: str, start: int, literal: bool = False) -> Token:
    return Token(
        type=TokenType.TEXT,
        content=content,
        position=_position(start),
        raw=content,
        attributes={'literal': True} if literal else None,
    )


def _hard_break(start: int, raw: str) -> Token:
    return Token(type=TokenType.HARD_BREAK, content='', position=_position(start), raw=raw)


def _run_length(text: str, start: int, char: str) -> int:
    end = start
    while end < len(text) and text[end] == char:
        end += 1
    return end - start


def _nested(token_type: TokenType, scan: InlineScan, start: int, end: int, inner: str) -> Token:
    return Token(
        type=token_type,
        content=inner,
        position=_position(start),
        raw=scan.text[start:end],
        children=tokenize_inline(inner, adf_extensions=scan.adf_extensions, _depth=scan.depth + 1),
    )


def _find_code(scan: InlineScan, start: int) -> _Span | None:
    text = scan.text
    run = _run_length(text, start, '`')
    closing = re.compile(rf'(?<!`)`{{{run}}}(?!`)')
    match = scan.next_match(('code', run), closing, start + run)
    if not match:
        return None
    content = text[start + run : match.start()].replace('\n', ' ')
    if len(content) >= 2 and content[0] == ' ' and content[-1] == ' ' and content.strip():
        content = content[1:-1]
    token = Token(type=TokenType.CODE, content=content, position=_position(start), raw=text[start : match.end()])
    return _Span(match.end(), [token])


def _find_star(scan: InlineScan, start: int) -> _Span | None:
    text = scan.text
    run = _run_length(text, start, '*')
    after = start + run
    if run > 3 or after >= len(text) or text[after].isspace():
        return None

    match = scan.next_match(('star', run), STAR_CLOSING_PATTERNS[run], after)
    if match is None:
        return None
    if run == 3:
        end = match.start() + 3
        inner = text[after : match.start()]
        strong = _nested(TokenType.STRONG, scan, start + 1, end - 1, inner)
        emphasis = Token(
            type=TokenType.EMPHASIS,
            content=inner,
            position=_position(start),
            raw=text[start:end],
            children=[strong],
        )
        return _Span(end, [emphasis])
    end = match.end()
    inner = text[after : end - run]
    token_type = TokenType.STRONG if run == 2 else TokenType.EMPHASIS
    return _Span(end, [_nested(token_type, scan, start, end, inner)])


def _pair_finder(char: str, token_type: TokenType, intraword: bool) -> Callable[[InlineScan, int], _Span | None]:
    escaped = re.escape(char)
    # a closer follows a non-space character and, unless intraword, is not followed by a word character
    closing = re.compile(rf'(?<![\s{escaped}]){escaped}{{2}}(?!{escaped})' + ('' if intraword else r'(?!\w)'))

    def find(scan: InlineScan, start: int) -> _Span | None:
        text = scan.text
        if _run_length(text, start, char) != 2:
            return None
        after = start + 2
        if after >= len(text) or text[after].isspace():
            return None
        if not intraword and start > 0 and text[start - 1].isalnum():
            return None
        match = scan.next_match(('pair', char), closing, after + 1)
        if match is None:
            return None
        inner = text[after : match.start()]
        return _Span(match.end(), [_nested(token_type, scan, start, match.end(), inner)])

    return find


def _link_parts(scan: InlineScan, label_start: int) -> tuple[str, re.Match] | None:
    """Splits `label](href "title")` starting at `label_start` into the label and the target match."""
    label_end = scan.next_match('label', LABEL_END_PATTERN, label_start)
    if label_end is None or label_end.group(0) != ']':
        return None
    target = scan.link_target(label_end.end())
    if target is None:
        return None
    return scan.text[label_start : label_end.start()], target


def _link_attributes(target: re.Match) -> dict:
    attributes = {'href': target.group(1)}
    if target.group(2) is not None:
        attributes['title'] = target.group(2)
    return attributes


def _find_link(scan: InlineScan, start: int) -> _Span | None:
    parts = _link_parts(scan, start + 1)
    if parts is None:
        return None
    label, target = parts
    token = _nested(TokenType.LINK, scan, start, target.end(), label)
    token.attributes = _link_attributes(target)
    return _Span(target.end(), [token])


def _find_image(scan: InlineScan, start: int) -> _Span | None:
    if not scan.text.startswith('![', start):
        return None
    parts = _link_parts(scan, start + 2)
    if parts is None:
        return None
    label, target = parts
    attributes = _link_attributes(target)
    attributes['src'] = attributes.pop('href')
    token = Token(
        type=TokenType.IMAGE,
        content=label,
        position=_position(start),
        raw=scan.text[start : target.end()],
        attributes=attributes,
    )
    return _Span(target.end(), [token])


def _find_autolink(scan: InlineScan, start: int) -> _Span | None:
    match = AUTOLINK_PATTERN.match(scan.text, start)
    if not match:
        return None
    url = match.group(1)
    token = Token(
        type=TokenType.LINK,
        content=url,
        position=_position(start),
        raw=match.group(0),
        children=[_text(url, start + 1, literal=True)],
        attributes={'href': url},
    )
    return _Span(match.end(), [token])


def _find_html_mark(scan: InlineScan, start: int) -> _Span | None:
    text = scan.text
    for tag, pattern, to_mark in HTML_MARK_OPENINGS:
        opening = pattern.match(text, start)
        if not opening:
            continue
        closing_start = scan.closing_tag_start(tag, opening.end())
        if closing_start is None:
            return None
        end = text.index('>', closing_start) + 1
        mark_type, attrs = to_mark(opening)
        token = _nested(TokenType.HTML_MARK, scan, start, end, text[opening.end() : closing_start])
        token.metadata = TokenMetadata(node_type=mark_type, attrs=attrs)
        token.attributes = {'tag': tag}
        return _Span(end, [token])
    return None


def _find_html_break(scan: InlineScan, start: int) -> _Span | None:
    if match := HTML_BREAK_PATTERN.match(scan.text, start):
        return _Span(match.end(), [_hard_break(start, match.group(0))])
    return None


def comment_attrs(raw: str) -> tuple[str, dict] | None:
    comment = parse_metadata_comment(raw)
    if comment is None:
        return None
    if comment.kind != 'mark':
        return comment.kind, comment.attrs

    # the fallback for unknown marks keeps the mark type and its attributes apart
    mark_type = MARK_TYPE_PATTERN.search(raw)
    payload: dict = {}
    if match := ATTRS_JSON_PATTERN.search(raw):
        try:
            loaded = json.loads(match.group(1))
        except ValueError:
            loaded = None
        if isinstance(loaded, dict):
            payload = loaded
    return 'mark', {'type': mark_type.group(1) if mark_type else 'unknown', 'attrs': payload}


def _find_comment(scan: InlineScan, start: int) -> _Span | None:
    if not scan.adf_extensions or not scan.text.startswith('<!--', start):
        return None

    if match := scan.match_unknown(start):
        attrs: dict = {'type': match.group(1)}
        if match.group(2):
            attrs['block'] = True
        token = Token(
            type=TokenType.INLINE_UNKNOWN,
            content=match.group(3),
            position=_position(start),
            raw=match.group(0),
            metadata=TokenMetadata(node_type='unknown', attrs=attrs),
        )
        return _Span(match.end(), [token])

    match = scan.match_comment(start)
    if not match:
        return None
    raw = match.group(0)
    if re.match(r'<!--\s*/', raw):
        return _Span(match.end())
    parsed = comment_attrs(raw)
    if parsed is None:
        return None
    kind, attrs = parsed
    token = Token(
        type=TokenType.INLINE_COMMENT,
        content=raw,
        position=_position(start),
        raw=raw,
        metadata=TokenMetadata(node_type=kind, attrs=attrs),
    )
    return _Span(match.end(), [token])


def _find_escape(scan: InlineScan, start: int) -> _Span | None:
    if match := BACKSLASH_BREAK_PATTERN.match(scan.text, start):
        return _Span(match.end(), [_hard_break(start, match.group(0))])
    if match := ESCAPE_PATTERN.match(scan.text, start):
        return _Span(match.end(), [_text(match.group(1), start, literal=True)])
    return None


def _find_spaces_break(scan: InlineScan, start: int) -> _Span | None:
    if match := SPACES_BREAK_PATTERN.match(scan.text, start):
        return _Span(match.end(), [_hard_break(start, match.group(0))])
    return None


def _find_placeholder(scan: InlineScan, start: int) -> _Span | None:
    if not scan.adf_extensions:
        return None
    if match := PLACEHOLDER_PATTERN.match(scan.text, start):
        return _Span(match.end(), [_text(match.group(0), start)])
    return None


FINDERS: dict[str, tuple[Callable[[InlineScan, int], _Span | None], ...]] = {
    '`': (_find_code,),
    '*': (_find_star,),
    '_': (_pair_finder('_', TokenType.UNDERLINE, intraword=False),),
    '~': (_pair_finder('~', TokenType.STRIKE, intraword=True),),
    '[': (_find_link,),
    '!': (_find_image,),
    '<': (_find_comment, _find_html_break, _find_autolink, _find_html_mark),
    '\\': (_find_escape,),
    ' ': (_find_spaces_break,),
    '{': (_find_placeholder,),
}
"""Candidate finders keyed by the character their construct starts with."""


def tokenize_inline(text: str, *, adf_extensions: bool = True, _depth: int = 0) -> list[Token]:
    """Tokenizes inline markdown.

    Args:
        text: the inline text of one block.
        adf_extensions: whether metadata comments, preserved unknown nodes and `{type:...}` placeholders are
            recognized.

    Returns:
        Inline tokens. Text outside any construct becomes `TEXT` tokens; characters taken literally from a
        backslash escape are flagged with a `literal` attribute so that placeholders are not resolved in them.
    """
    if not text:
        return []
    if _depth >= MAX_INLINE_DEPTH:
        return [_text(text, 0)]

    scan = InlineScan(text, adf_extensions, _depth)
    tokens: list[Token] = []
    buffer: list[str] = []
    buffer_start = 0
    position = 0

    def flush() -> None:
        if buffer:
            tokens.append(_text(''.join(buffer), buffer_start))
            buffer.clear()

    while position < len(text):
        char = text[position]
        best: _Span | None = None
        for finder in FINDERS.get(char, ()):
            candidate = finder(scan, position)
            if candidate is not None and (best is None or candidate.end < best.end):
                best = candidate

        if best is None:
            if not buffer:
                buffer_start = position
            run_end = position + 1
            # no later character of a failed run can start a construct either
            if char in RUN_CHARACTERS:
                run_end = position + _run_length(text, position, char)
            buffer.append(text[position:run_end])
            position = run_end
            continue

        flush()
        tokens.extend(best.tokens)
        position = best.end

    flush()
    return tokens
