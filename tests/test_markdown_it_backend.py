import pytest

from adfmark.api import adf_to_markdown, markdown_to_adf
from adfmark.exceptions import MarkdownSyntaxError
from adfmark.markdown_to_adf.parser import EnhancedMarkdownParser, create_parser

MARKDOWN_IT = {'backend': 'markdown-it'}


def doc(*content):
    return {'version': 1, 'type': 'doc', 'content': list(content)}


def paragraph(*content):
    return {'type': 'paragraph', 'content': list(content)}


def text(value, *marks):
    node = {'type': 'text', 'text': value}
    if marks:
        node['marks'] = list(marks)
    return node


def convert(markdown, **options):
    return markdown_to_adf(markdown, {**MARKDOWN_IT, **options})


class TestMarkdownItBackend:
    def test_create_parser(self):
        assert isinstance(create_parser(MARKDOWN_IT), EnhancedMarkdownParser)

    def test_convert_document(self, release_notes_markdown, release_notes_adf):
        assert convert(release_notes_markdown) == release_notes_adf

    def test_media_and_preserved_nodes_round_trip(self, media_adf):
        assert convert(adf_to_markdown(media_adf)) == media_adf

    @pytest.mark.parametrize(
        'document',
        [
            doc({'type': 'heading', 'attrs': {'level': 2, 'id': 'intro'}, 'content': [text('Intro')]}),
            doc({'type': 'blockquote', 'content': [paragraph(text('a')), paragraph(text('b'))]}),
            doc({'type': 'expand', 'attrs': {'title': 'More info'}, 'content': [paragraph(text('x'))]}),
            doc({'type': 'codeBlock', 'attrs': {'language': 'js'}, 'content': [text('let a = 1;')]}),
            doc(paragraph(text('a'), {'type': 'hardBreak'}, text('b'))),
            doc(
                {
                    'type': 'orderedList',
                    'attrs': {'order': 3},
                    'content': [{'type': 'listItem', 'content': [paragraph(text('a'))]}],
                }
            ),
            doc(
                paragraph(
                    text('both', {'type': 'strong'}, {'type': 'em'}),
                    text(' '),
                    text('gone', {'type': 'strike'}),
                    text(' '),
                    text('red', {'type': 'textColor', 'attrs': {'color': '#ff0000'}}),
                )
            ),
            doc(
                paragraph(
                    {'type': 'status', 'attrs': {'text': 'Todo', 'color': 'neutral'}},
                    text(' '),
                    {'type': 'date', 'attrs': {'timestamp': '1705300000000'}},
                )
            ),
        ],
        ids=['heading', 'blockquote', 'expand', 'code_block', 'hard_break', 'ordered_list', 'marks', 'social_nodes'],
    )
    def test_round_trip(self, document):
        assert convert(adf_to_markdown(document)) == document

    def test_alert_becomes_panel(self):
        result = convert('> [!WARNING]\n> Be careful')

        assert result['content'] == [
            {'type': 'panel', 'attrs': {'panelType': 'warning'}, 'content': [paragraph(text('Be careful'))]}
        ]

    def test_double_underscore_is_underline(self):
        assert convert('__b__')['content'] == [paragraph(text('b', {'type': 'underline'}))]

    def test_soft_break_is_kept_in_text(self):
        assert convert('a\nb')['content'] == [paragraph(text('a\nb'))]

    def test_yaml_frontmatter(self):
        document, frontmatter = create_parser(MARKDOWN_IT).parse_with_frontmatter('---\ntitle: Doc\n---\n# Hi')

        assert frontmatter == {'title': 'Doc'}
        assert [node['type'] for node in document['content']] == ['heading']

    def test_toml_frontmatter(self):
        document, frontmatter = create_parser(MARKDOWN_IT).parse_with_frontmatter('+++\ntitle = "Doc"\n+++\nBody')

        assert frontmatter == {'title': 'Doc'}
        assert document['content'] == [paragraph(text('Body'))]

    def test_invalid_preserved_node_in_strict_mode(self):
        with pytest.raises(MarkdownSyntaxError):
            convert('<!-- adf:unknown type="x" -->\n{bad\n<!-- /adf:unknown -->', strict=True)
