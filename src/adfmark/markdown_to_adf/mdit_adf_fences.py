"""Markdown-it-py plugin for ADF fence blocks.

`~~~panel type=info` ... `~~~` blocks (and the other ADF container types) become `adf_fence_open` /
`adf_fence_close` token pairs around the tokens of their body. Fence blocks may be nested; tilde code fences inside
them do not close them. Backtick code fences whose language is an ADF container type are promoted the same way.

The `meta` of an `adf_fence_open` token holds `node_type` and the parsed header `attrs`.
"""

from __future__ import annotations

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock
from markdown_it.rules_core import StateCore
from markdown_it.token import Token

from adfmark.constants import ADF_FENCE_NODE_TYPES
from adfmark.markdown_to_adf.tokenizer import ADF_FENCE_PATTERN, find_fence_end
from adfmark.utils.metadata_comments import parse_attribute_string

BLOCK_RULE_ALTERNATIVES = ['paragraph', 'reference', 'blockquote', 'list']


def source_line(state: StateBlock, line: int) -> str:
    """Returns the text of `line` without its indentation."""
    return state.src[state.bMarks[line] + state.tShift[line] : state.eMarks[line]]


def _open_token(node_type: str, header: str, level: int, line_map: list[int] | None) -> Token:
    token = Token('adf_fence_open', 'div', 1)
    token.markup = '~~~'
    token.info = node_type
    token.block = True
    token.level = level
    token.map = line_map
    token.meta = {'node_type': node_type, 'attrs': parse_attribute_string(header)}
    return token


def _close_token(level: int) -> Token:
    token = Token('adf_fence_close', 'div', -1)
    token.markup = '~~~'
    token.block = True
    token.level = level
    return token


def adf_fences_plugin(md: MarkdownIt) -> None:
    """Recognize ADF fence blocks."""

    def adf_fence(state: StateBlock, start_line: int, end_line: int, silent: bool) -> bool:
        if state.sCount[start_line] - state.blkIndent >= 4:
            return False
        match = ADF_FENCE_PATTERN.match(source_line(state, start_line))
        if not match or match.group(1) not in ADF_FENCE_NODE_TYPES:
            return False
        if silent:
            return True

        lines = [source_line(state, line) for line in range(start_line, end_line)]
        closing_line = start_line + find_fence_end(lines, 0)
        next_line = min(closing_line + 1, end_line)

        old_parent = state.parentType
        old_line_max = state.lineMax
        state.parentType = 'adf_fence'
        state.lineMax = closing_line

        token = state.push('adf_fence_open', 'div', 1)
        token.markup = '~~~'
        token.info = match.group(1)
        token.block = True
        token.map = [start_line, next_line]
        token.meta = {'node_type': match.group(1), 'attrs': parse_attribute_string(match.group(2) or '')}

        state.md.block.tokenize(state, start_line + 1, closing_line)

        token = state.push('adf_fence_close', 'div', -1)
        token.markup = '~~~'
        token.block = True

        state.parentType = old_parent
        state.lineMax = old_line_max
        state.line = next_line
        return True

    def promote(tokens: list[Token], env: dict) -> list[Token]:
        promoted: list[Token] = []
        for token in tokens:
            language, _, header = token.info.strip().partition(' ') if token.type == 'fence' else ('', '', '')
            if token.type != 'fence' or not token.markup.startswith('`') or language not in ADF_FENCE_NODE_TYPES:
                promoted.append(token)
                continue

            body: list[Token] = []
            md.block.parse(token.content, md, env, body)
            offset = token.map[0] + 1 if token.map else 0
            for child in body:
                child.level += token.level + 1
                if child.map:
                    child.map = [child.map[0] + offset, child.map[1] + offset]

            promoted.append(_open_token(language, header, token.level, token.map))
            promoted.extend(promote(body, env))
            promoted.append(_close_token(token.level))
        return promoted

    def adf_code_fences(state: StateCore) -> None:
        state.tokens = promote(state.tokens, state.env)

    md.block.ruler.before('fence', 'adf_fence', adf_fence, {'alt': BLOCK_RULE_ALTERNATIVES})
    md.core.ruler.after('block', 'adf_code_fences', adf_code_fences)
