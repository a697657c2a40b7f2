"""Markdown-it-py plugin for metadata comments, preserved unknown nodes and inline placeholders.

Block tokens:

* `adf_metadata`: a line holding a single `<!-- adf:<kind> ... -->` comment; `meta` holds `kind`, `attrs` and
  `closing`
* `adf_unknown`: a `<!-- adf:unknown type="T" -->` ... `<!-- /adf:unknown -->` block; `content` is the JSON between
  the delimiters

Inline tokens:

* `adf_unknown_inline`: the single-line form of a preserved node
* `adf_placeholder`: a `{user:..}`, `{status:..}`, `{date:..}` or `{media:..}` placeholder, taken verbatim so that
  its value is not parsed as markdown

Trailing metadata comments inside a line are left to the `html_inline` rule.
"""

from __future__ import annotations

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock
from markdown_it.rules_inline import StateInline

from adfmark.markdown_to_adf.inline import PLACEHOLDER_PATTERN, InlineScan
from adfmark.markdown_to_adf.mdit_adf_fences import BLOCK_RULE_ALTERNATIVES, source_line
from adfmark.markdown_to_adf.tokenizer import UNKNOWN_CLOSING_PATTERN, UNKNOWN_OPENING_PATTERN
from adfmark.utils.metadata_comments import parse_attribute_string, parse_metadata_comment


def adf_metadata_plugin(md: MarkdownIt) -> None:
    """Recognize metadata comments, preserved unknown nodes and inline placeholders."""

    def adf_unknown(state: StateBlock, start_line: int, end_line: int, silent: bool) -> bool:
        if state.sCount[start_line] - state.blkIndent >= 4:
            return False
        match = UNKNOWN_OPENING_PATTERN.match(source_line(state, start_line))
        if not match:
            return False
        closing_line = next(
            (
                line
                for line in range(start_line + 1, end_line)
                if UNKNOWN_CLOSING_PATTERN.match(source_line(state, line))
            ),
            None,
        )
        if closing_line is None:
            return False
        if silent:
            return True

        token = state.push('adf_unknown', '', 0)
        token.block = True
        token.content = state.getLines(start_line + 1, closing_line, state.blkIndent, False)
        token.map = [start_line, closing_line + 1]
        token.meta = {'attrs': parse_attribute_string(match.group(1))}
        state.line = closing_line + 1
        return True

    def adf_metadata(state: StateBlock, start_line: int, end_line: int, silent: bool) -> bool:
        if state.sCount[start_line] - state.blkIndent >= 4:
            return False
        comment = parse_metadata_comment(source_line(state, start_line))
        if comment is None:
            return False
        if silent:
            return True

        token = state.push('adf_metadata', '', 0)
        token.block = True
        token.content = comment.raw
        token.map = [start_line, start_line + 1]
        token.meta = {'kind': comment.kind, 'attrs': comment.attrs, 'closing': comment.closing}
        state.line = start_line + 1
        return True

    def adf_unknown_inline(state: StateInline, silent: bool) -> bool:
        if not state.src.startswith('<!--', state.pos):
            return False
        # one scan per inline source keeps repeated openers from searching the rest of the line again
        scans = state.env.setdefault('adf_inline_scans', {})
        if state.src not in scans:
            scans[state.src] = InlineScan(state.src)
        match = scans[state.src].match_unknown(state.pos)
        if not match or match.end() > state.posMax:
            return False
        if not silent:
            token = state.push('adf_unknown_inline', '', 0)
            token.content = match.group(3)
            token.markup = match.group(0)
            token.meta = {'type': match.group(1), 'block': bool(match.group(2))}
        state.pos = match.end()
        return True

    def adf_placeholder(state: StateInline, silent: bool) -> bool:
        match = PLACEHOLDER_PATTERN.match(state.src, state.pos)
        if not match or match.end() > state.posMax:
            return False
        if not silent:
            token = state.push('adf_placeholder', '', 0)
            token.content = match.group(0)
        state.pos = match.end()
        return True

    md.block.ruler.before('html_block', 'adf_unknown', adf_unknown, {'alt': BLOCK_RULE_ALTERNATIVES})
    md.block.ruler.before('html_block', 'adf_metadata', adf_metadata, {'alt': BLOCK_RULE_ALTERNATIVES})
    md.inline.ruler.before('html_inline', 'adf_unknown_inline', adf_unknown_inline)
    md.inline.ruler.before('html_inline', 'adf_placeholder', adf_placeholder)
