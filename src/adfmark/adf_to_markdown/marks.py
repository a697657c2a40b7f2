from __future__ import annotations

import re
from typing import TYPE_CHECKING

from adfmark.adf_to_markdown.registry import MarkConverter
from adfmark.utils.metadata_comments import format_metadata_comment, generate_metadata_comment

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.context import ConversionContext


def _with_comment(markdown: str, mark: dict) -> str:
    comment = generate_metadata_comment(mark.get('type', ''), mark.get('attrs'))
    return f'{markdown} {comment}' if comment else markdown


class StrongConverter(MarkConverter):
    mark_type = 'strong'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        return _with_comment(f'**{text}**', mark)


class EmConverter(MarkConverter):
    mark_type = 'em'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        return _with_comment(f'*{text}*', mark)


class CodeConverter(MarkConverter):
    mark_type = 'code'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        longest = max((len(run) for run in re.findall(r'`+', text)), default=0)
        fence = '`' * (longest + 1)
        if text.startswith('`') or text.endswith('`'):
            text = f' {text} '
        return _with_comment(f'{fence}{text}{fence}', mark)


class StrikeConverter(MarkConverter):
    mark_type = 'strike'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        return _with_comment(f'~~{text}~~', mark)


class UnderlineConverter(MarkConverter):
    mark_type = 'underline'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        return _with_comment(f'<u>{text}</u>', mark)


class TextColorConverter(MarkConverter):
    mark_type = 'textColor'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        color = (mark.get('attrs') or {}).get('color')
        if not color:
            return text
        return _with_comment(f'<span style="color: {color}">{text}</span>', mark)


class BackgroundColorConverter(MarkConverter):
    mark_type = 'backgroundColor'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        color = (mark.get('attrs') or {}).get('color') or 'yellow'
        return _with_comment(f'<mark style="background-color: {color}">{text}</mark>', mark)


class LinkConverter(MarkConverter):
    """Renders `[text](href "title")`.

    A title containing a double quote can not be written in the link syntax and travels in the comment instead.
    """

    mark_type = 'link'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        attrs = mark.get('attrs') or {}
        href = attrs.get('href')
        if not href:
            return text
        title = attrs.get('title')
        if title and '"' not in str(title):
            return _with_comment(f'[{text}]({href} "{title}")', mark)
        markdown = f'[{text}]({href})'
        extra = {k: v for k, v in attrs.items() if k != 'href'}
        if not title:
            extra.pop('title', None)
        return f'{markdown} {format_metadata_comment("link", extra)}' if extra else markdown


class SubsupConverter(MarkConverter):
    mark_type = 'subsup'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        tag = 'sub' if (mark.get('attrs') or {}).get('type') == 'sub' else 'sup'
        return _with_comment(f'<{tag}>{text}</{tag}>', mark)
