from __future__ import annotations

import re

from markdown_it import MarkdownIt
from markdown_it.rules_core import StateCore
from markdown_it.token import Token

ALERT_MARKER_PATTERN = re.compile(r'^\[!(NOTE|TIP|IMPORTANT|WARNING|CAUTION)\][ \t]*')

ALERT_PANEL_TYPES = {
    'NOTE': 'info',
    'TIP': 'success',
    'IMPORTANT': 'note',
    'WARNING': 'warning',
    'CAUTION': 'error',
}
"""Panel type of each GitHub alert kind."""


def alerts_plugin(md: MarkdownIt) -> None:
    """Detect GitHub-style alert blockquotes and turn them into panel fence tokens."""

    def process_alerts(state: StateCore) -> None:
        tokens = state.tokens
        i = 0

        while i < len(tokens):
            token = tokens[i]

            if token.type == 'blockquote_open':
                close_index = find_blockquote_close(tokens, i)
                if close_index is not None and is_alert_blockquote(tokens, i):
                    panel_type = ALERT_PANEL_TYPES[ALERT_MARKER_PATTERN.match(tokens[i + 2].content).group(1)]
                    remove_marker(tokens, i + 2)
                    convert_to_panel(token, tokens[close_index], panel_type)
                    if not tokens[i + 2].children:
                        del tokens[i + 1 : i + 4]

            i += 1

    def find_blockquote_close(tokens: list[Token], open_index: int) -> int | None:
        level = tokens[open_index].level
        for i in range(open_index + 1, len(tokens)):
            if tokens[i].type == 'blockquote_close' and tokens[i].level == level:
                return i
        return None

    def is_alert_blockquote(tokens: list[Token], open_index: int) -> bool:
        if open_index + 2 >= len(tokens):
            return False
        paragraph, inline = tokens[open_index + 1], tokens[open_index + 2]
        return (
            paragraph.type == 'paragraph_open'
            and inline.type == 'inline'
            and bool(ALERT_MARKER_PATTERN.match(inline.content))
        )

    def remove_marker(tokens: list[Token], inline_index: int) -> None:
        inline = tokens[inline_index]
        inline.content = ALERT_MARKER_PATTERN.sub('', inline.content, count=1).lstrip('\n')

        children = list(inline.children or [])
        if children and children[0].type == 'text':
            children[0].content = ALERT_MARKER_PATTERN.sub('', children[0].content, count=1)
            if not children[0].content:
                children.pop(0)
        if children and children[0].type in ('softbreak', 'hardbreak'):
            children.pop(0)
        inline.children = children

    def convert_to_panel(opening: Token, closing: Token, panel_type: str) -> None:
        opening.type = 'adf_fence_open'
        opening.tag = 'div'
        opening.info = 'panel'
        opening.meta = {'node_type': 'panel', 'attrs': {'panelType': panel_type}}
        closing.type = 'adf_fence_close'
        closing.tag = 'div'

    md.core.ruler.after('inline', 'github_alerts', process_alerts)
