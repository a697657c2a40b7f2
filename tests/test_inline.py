import time

import pytest

from adfmark.api import markdown_to_adf
from adfmark.config import ConversionOptions
from adfmark.markdown_to_adf.inline import LABEL_END_PATTERN, InlineScan, tokenize_inline
from adfmark.markdown_to_adf.parser import create_markdown_it
from adfmark.models import TokenType
from adfmark.validators.markdown import MarkdownValidator

TIME_LIMIT = 5.0
"""Seconds allowed for inputs of a few hundred thousand characters; a scan that restarts per opener takes minutes."""


def elapsed(function, *args):
    started = time.perf_counter()
    function(*args)
    return time.perf_counter() - started


class TestUnclosedOpeners:
    @pytest.mark.parametrize(
        'text',
        [
            '<u>' * 50_000,
            '<span style="color: red">' * 10_000,
            '*a ' * 50_000,
            '**a ' * 50_000,
            '__a ' * 50_000,
            '~~a ' * 50_000,
            '`' + 'a ``' * 30_000,
            '[' * 100_000,
            '[a](' * 50_000,
            '![' * 50_000,
            '{user:' * 50_000,
            '<!-- adf:unknown type="x" -->' * 10_000,
            '<!-- adf:x ' * 20_000,
        ],
        ids=[
            'underline_tags',
            'span_tags',
            'emphasis',
            'strong',
            'underline',
            'strike',
            'code',
            'brackets',
            'link_targets',
            'images',
            'placeholders',
            'unknown_openers',
            'comments',
        ],
    )
    def test_tokenizing_is_linear(self, text):
        assert elapsed(tokenize_inline, text) < TIME_LIMIT

    def test_unclosed_openers_stay_text(self):
        text = '<u>' * 1000 + '[' * 1000 + '{user:' * 1000

        tokens = tokenize_inline(text)

        assert ''.join(token.content for token in tokens) == text
        assert {token.type for token in tokens} == {TokenType.TEXT}

    def test_markdown_it_unknown_openers(self):
        md = create_markdown_it(ConversionOptions())
        markdown = 'x ' + '<!-- adf:unknown type="x" -->' * 3_000

        assert elapsed(md.parse, markdown) < TIME_LIMIT

    def test_markdown_it_placeholders(self):
        assert elapsed(markdown_to_adf, 'x ' + '{user:' * 50_000, {'backend': 'markdown-it'}) < TIME_LIMIT

    def test_validator_links_and_placeholders(self):
        validator = MarkdownValidator()
        markdown = '[' * 50_000 + '](' * 50_000 + '{media:' * 50_000

        assert elapsed(validator.validate, markdown) < TIME_LIMIT


class TestInlineConstructs:
    def test_emphasis_around_strong(self):
        token = tokenize_inline('*a **b** c*')[0]

        assert token.type == TokenType.EMPHASIS
        assert [child.type for child in token.children] == [TokenType.TEXT, TokenType.STRONG, TokenType.TEXT]

    def test_consecutive_spans(self):
        tokens = tokenize_inline('*one* and *two*')

        assert [(token.type, token.content) for token in tokens] == [
            (TokenType.EMPHASIS, 'one'),
            (TokenType.TEXT, ' and '),
            (TokenType.EMPHASIS, 'two'),
        ]

    def test_underline_needs_word_boundary(self):
        assert tokenize_inline('__under__')[0].type == TokenType.UNDERLINE
        assert [token.type for token in tokenize_inline('a__b__')] == [TokenType.TEXT]

    def test_strike(self):
        assert tokenize_inline('~~gone~~ ~~also~~')[2].type == TokenType.STRIKE

    def test_link_after_unmatched_label(self):
        tokens = tokenize_inline('[a] [b](https://e.com "B")')

        assert tokens[0].content == '[a] '
        assert tokens[1].type == TokenType.LINK
        assert tokens[1].attributes == {'href': 'https://e.com', 'title': 'B'}

    def test_image(self):
        token = tokenize_inline('![alt](https://e.com/a.png)')[0]

        assert token.type == TokenType.IMAGE
        assert token.attributes == {'src': 'https://e.com/a.png'}

    def test_nested_html_marks(self):
        token = tokenize_inline('<u>a <u>b</u> c</u>')[0]

        assert token.type == TokenType.HTML_MARK
        assert token.content == 'a <u>b</u> c'
        assert token.children[1].type == TokenType.HTML_MARK

    def test_code_spans_of_different_lengths(self):
        tokens = tokenize_inline('``a ` b`` and `c`')

        assert [(token.type, token.content) for token in tokens] == [
            (TokenType.CODE, 'a ` b'),
            (TokenType.TEXT, ' and '),
            (TokenType.CODE, 'c'),
        ]

    def test_block_flag_of_preserved_node(self):
        token = tokenize_inline('<!-- adf:unknown type="x" block -->{"type": "x"}<!-- /adf:unknown -->')[0]

        assert token.type == TokenType.INLINE_UNKNOWN
        assert token.content == '{"type": "x"}'
        assert token.metadata.attrs == {'type': 'x', 'block': True}

    def test_placeholder_after_unclosed_one(self):
        result = markdown_to_adf('{user:a{user:b}')

        assert result['content'][0]['content'] == [
            {'type': 'text', 'text': '{user:a'},
            {'type': 'mention', 'attrs': {'id': 'b'}},
        ]


class TestInlineScan:
    def test_next_match_is_reused_until_passed(self):
        scan = InlineScan('a]b]c')

        first = scan.next_match('label', LABEL_END_PATTERN, 0)

        assert scan.next_match('label', LABEL_END_PATTERN, 1) is first
        assert scan.next_match('label', LABEL_END_PATTERN, 2).start() == 3
        assert scan.next_match('label', LABEL_END_PATTERN, 4) is None

    def test_closing_tags_pair_with_nesting(self):
        scan = InlineScan('<u>a<u>b</u>c</u>')

        assert scan.closing_tag_start('u', 3) == 13
        assert scan.closing_tag_start('u', 7) == 8
