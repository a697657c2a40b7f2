import pytest

from adfmark.adf_to_markdown.engine import AdfToMarkdownEngine, create_default_registry
from adfmark.adf_to_markdown.registry import (
    ConverterRegistry,
    NodeConverter,
    UnknownMarkConverter,
    UnknownNodeConverter,
)
from adfmark.exceptions import ConversionError, InvalidInputError, ValidationError


def doc(*content):
    return {'version': 1, 'type': 'doc', 'content': list(content)}


def paragraph(*content, attrs=None):
    node = {'type': 'paragraph', 'content': list(content)}
    if attrs:
        node['attrs'] = attrs
    return node


def text(value, *marks):
    node = {'type': 'text', 'text': value}
    if marks:
        node['marks'] = list(marks)
    return node


def convert(document, **options):
    return AdfToMarkdownEngine().convert(document, options)


class BrokenParagraphConverter(NodeConverter):
    node_type = 'paragraph'

    def to_markdown(self, node, context):
        raise RuntimeError('boom')


class TestAdfToMarkdownConversion:
    def test_convert_document(self, release_notes_adf, release_notes_markdown):
        assert convert(release_notes_adf) == release_notes_markdown

    def test_empty_document(self):
        assert convert(doc()) == ''
        assert convert(doc(paragraph())) == ''

    def test_heading_keeps_extra_attributes_in_comment(self):
        heading = {'type': 'heading', 'attrs': {'level': 2, 'id': 'intro'}, 'content': [text('Intro')]}

        assert convert(doc(heading)) == '## Intro <!-- adf:heading attrs=\'{"id": "intro"}\' -->'

    def test_heading_level_is_clamped(self):
        heading = {'type': 'heading', 'attrs': {'level': 9}, 'content': [text('Deep')]}

        assert convert(doc(heading)) == '###### Deep'

    def test_paragraph_attributes(self):
        node = paragraph(text('text'), attrs={'localId': 'p1'})

        assert convert(doc(node)) == 'text <!-- adf:paragraph attrs=\'{"localId": "p1"}\' -->'

    def test_hard_break(self):
        assert convert(doc(paragraph(text('a'), {'type': 'hardBreak'}, text('b')))) == 'a  \nb'

    def test_ordered_list_starts_at_order(self):
        node = {
            'type': 'orderedList',
            'attrs': {'order': 3},
            'content': [
                {'type': 'listItem', 'content': [paragraph(text('a'))]},
                {'type': 'listItem', 'content': [paragraph(text('b'))]},
            ],
        }

        assert convert(doc(node)) == '3. a\n4. b'

    def test_nested_list(self):
        node = {
            'type': 'bulletList',
            'content': [
                {
                    'type': 'listItem',
                    'content': [
                        paragraph(text('parent')),
                        {
                            'type': 'bulletList',
                            'content': [{'type': 'listItem', 'content': [paragraph(text('child'))]}],
                        },
                    ],
                }
            ],
        }

        assert convert(doc(node)) == '- parent\n  - child'

    def test_list_item_attributes(self):
        node = {
            'type': 'bulletList',
            'content': [{'type': 'listItem', 'attrs': {'localId': 'li1'}, 'content': [paragraph(text('a'))]}],
        }

        assert convert(doc(node)) == '- a\n  <!-- adf:listItem attrs=\'{"localId": "li1"}\' -->'

    def test_blockquote(self):
        node = {'type': 'blockquote', 'content': [paragraph(text('a')), paragraph(text('b'))]}

        assert convert(doc(node)) == '> a\n>\n> b'

    def test_code_block_fence_grows_with_content(self):
        node = {'type': 'codeBlock', 'content': [text('x\n```\ny')]}

        assert convert(doc(node)) == '````\nx\n```\ny\n````'

    def test_code_block_extra_attributes(self):
        node = {'type': 'codeBlock', 'attrs': {'language': 'js', 'uniqueId': 'u1'}, 'content': [text('code')]}

        assert convert(doc(node)) == '```js\ncode\n```\n<!-- adf:codeBlock attrs=\'{"uniqueId": "u1"}\' -->'

    def test_panel_header(self):
        attrs = {'panelType': 'note', 'panelColor': '#abc'}
        node = {'type': 'panel', 'attrs': attrs, 'content': [paragraph(text('x'))]}

        assert convert(doc(node)) == '~~~panel type=note panelColor=#abc\nx\n~~~'

    def test_nested_expand(self):
        node = {'type': 'nestedExpand', 'attrs': {'title': 'Details'}, 'content': [paragraph(text('x'))]}

        assert convert(doc(node)) == '~~~expand title=Details nested=true\nx\n~~~'

    def test_expand_title_with_spaces(self):
        node = {'type': 'expand', 'attrs': {'title': 'More info'}, 'content': [paragraph(text('x'))]}

        assert convert(doc(node)) == '~~~expand title="More info"\nx\n~~~'

    def test_media_and_unknown_block(self, media_adf):
        assert convert(media_adf) == '\n'.join(
            [
                '~~~mediaSingle layout=center',
                '![Media](adf:media:abc-123) '
                '<!-- adf:media attrs=\'{"id": "abc-123", "type": "file", "collection": "uploads"}\' -->',
                '~~~',
                '',
                '<!-- adf:unknown type="extension" -->',
                '{',
                '  "type": "extension",',
                '  "attrs": {',
                '    "extensionKey": "toc"',
                '  }',
                '}',
                '<!-- /adf:unknown -->',
            ]
        )


class TestInlineNodes:
    def test_mention_without_extra_attributes(self):
        assert convert(doc(paragraph({'type': 'mention', 'attrs': {'id': 'u1'}}))) == '{user:u1}'

    def test_mention_without_id(self):
        assert convert(doc(paragraph({'type': 'mention', 'attrs': {'text': '@Ann'}}))) == '@Ann'

    def test_status_with_neutral_color(self):
        node = {'type': 'status', 'attrs': {'text': 'Todo', 'color': 'neutral'}}

        assert convert(doc(paragraph(node))) == '{status:Todo}'

    def test_date_not_at_midnight_keeps_timestamp(self):
        node = {'type': 'date', 'attrs': {'timestamp': '1705300000000'}}

        assert convert(doc(paragraph(node))) == (
            '{date:2024-01-15} <!-- adf:date attrs=\'{"timestamp": "1705300000000"}\' -->'
        )

    def test_known_emoji(self):
        node = {'type': 'emoji', 'attrs': {'shortName': ':smile:'}}

        assert convert(doc(paragraph(node))) == ':smile:'

    def test_custom_emoji_keeps_all_attributes(self):
        node = {'type': 'emoji', 'attrs': {'shortName': ':custom:', 'id': 'x'}}

        assert convert(doc(paragraph(node))) == (
            ':custom: <!-- adf:emoji attrs=\'{"shortName": ":custom:", "id": "x"}\' -->'
        )

    def test_inline_card(self):
        node = {'type': 'inlineCard', 'attrs': {'url': 'https://example.com/page'}}

        assert convert(doc(paragraph(node))) == (
            '[Card](adf://card/https%3A%2F%2Fexample.com%2Fpage) '
            '<!-- adf:inlineCard attrs=\'{"url": "https://example.com/page"}\' -->'
        )

    def test_inline_card_title_from_data(self):
        node = {'type': 'inlineCard', 'attrs': {'url': 'u', 'data': {'name': 'Roadmap'}}}

        assert convert(doc(paragraph(node))).startswith('[Roadmap](adf://card/u) ')

    def test_inline_card_without_url(self):
        assert convert(doc(paragraph({'type': 'inlineCard', 'attrs': {}}))) == '[Card]'

    def test_unknown_inline_node_stays_on_one_line(self):
        node = {'type': 'inlineExtension', 'attrs': {'k': 'v'}}

        assert convert(doc(paragraph(text('See '), node))) == (
            'See <!-- adf:unknown type="inlineExtension" -->'
            '{"type": "inlineExtension", "attrs": {"k": "v"}}<!-- /adf:unknown -->'
        )


class TestMarks:
    @pytest.mark.parametrize(
        'mark, expected',
        [
            ({'type': 'strong'}, '**x**'),
            ({'type': 'em'}, '*x*'),
            ({'type': 'strike'}, '~~x~~'),
            ({'type': 'underline'}, '<u>x</u>'),
            ({'type': 'code'}, '`x`'),
            ({'type': 'textColor', 'attrs': {'color': '#ff0000'}}, '<span style="color: #ff0000">x</span>'),
            ({'type': 'backgroundColor'}, '<mark style="background-color: yellow">x</mark>'),
            ({'type': 'subsup', 'attrs': {'type': 'sub'}}, '<sub>x</sub>'),
            ({'type': 'link', 'attrs': {'href': 'https://e.com', 'title': 'Docs'}}, '[x](https://e.com "Docs")'),
        ],
    )
    def test_mark(self, mark, expected):
        assert convert(doc(paragraph(text('x', mark)))) == expected

    def test_first_mark_is_innermost(self):
        node = text('x', {'type': 'strong'}, {'type': 'link', 'attrs': {'href': 'https://e.com'}})

        assert convert(doc(paragraph(node))) == '[**x**](https://e.com)'

    def test_code_containing_backticks(self):
        assert convert(doc(paragraph(text('a`b', {'type': 'code'})))) == '``a`b``'

    def test_unknown_mark(self):
        node = text('hot', {'type': 'highlight', 'attrs': {'tone': 'warm'}})

        assert convert(doc(paragraph(node))) == 'hot <!-- adf:mark type="highlight" attrs=\'{"tone": "warm"}\' -->'


class TestTables:
    def table(self, *rows):
        return {'type': 'table', 'attrs': {'isNumberColumnEnabled': False, 'layout': 'default'}, 'content': list(rows)}

    def test_header_cell_attributes(self):
        cell = {'type': 'tableHeader', 'attrs': {'background': '#eee'}, 'content': [paragraph(text('a'))]}
        node = self.table({'type': 'tableRow', 'content': [cell]})

        assert convert(doc(node)) == '| a <!-- adf:tableHeader attrs=\'{"background": "#eee"}\' --> |\n| -------- |'

    def test_colspan_is_annotated_and_padded(self):
        cell = {'type': 'tableHeader', 'attrs': {'colspan': 2}, 'content': [paragraph(text('a'))]}
        node = self.table({'type': 'tableRow', 'content': [cell]})

        assert convert(doc(node)) == '| a <!-- colspan=2 --> |  |\n| -------- | -------- |'

    def test_cell_type_differing_from_position(self):
        cell = {'type': 'tableCell', 'content': [paragraph(text('a'))]}
        node = self.table({'type': 'tableRow', 'content': [cell]})

        assert convert(doc(node)) == '| a <!-- adf:tableCell --> |\n| -------- |'

    def test_non_default_table_attributes(self):
        cell = {'type': 'tableHeader', 'content': [paragraph(text('a'))]}
        node = {'type': 'table', 'attrs': {'layout': 'wide'}, 'content': [{'type': 'tableRow', 'content': [cell]}]}

        assert convert(doc(node)) == '| a |\n| -------- |\n<!-- adf:table attrs=\'{"layout": "wide"}\' -->'

    def test_pipes_in_cells_are_escaped(self):
        cell = {'type': 'tableHeader', 'content': [paragraph(text('a|b'))]}
        node = self.table({'type': 'tableRow', 'content': [cell]})

        assert convert(doc(node)).startswith('| a\\|b |')


class TestFailurePolicies:
    def test_non_object_input(self):
        assert convert('not a document') == ''

        with pytest.raises(InvalidInputError):
            convert([], strict=True)

    def test_root_must_be_doc_in_strict_mode(self):
        with pytest.raises(InvalidInputError):
            convert(paragraph(text('a')), strict=True)

    def test_invalid_document_in_strict_mode(self):
        with pytest.raises(ValidationError) as exc_info:
            convert(doc(paragraph({'type': 'text'})), strict=True)

        assert exc_info.value.errors[0].code == 'INVALID_TEXT'
        assert exc_info.value.errors[0].path == ['content', 0, 'content', 0, 'text']

    def test_failing_converter_is_replaced_by_placeholder(self):
        registry = create_default_registry()
        registry.register_node(BrokenParagraphConverter())
        engine = AdfToMarkdownEngine(registry=registry)
        document = doc(paragraph(text('a')), {'type': 'heading', 'attrs': {'level': 1}, 'content': [text('B')]})

        assert engine.convert(document) == '<!-- Unknown node: paragraph -->\n\n# B'
        assert engine.convert(document, {'preserve_unknown_nodes': False}) == '# B'

        with pytest.raises(ConversionError) as exc_info:
            engine.convert(document, {'strict': True})
        assert exc_info.value.node_type == 'paragraph'

    def test_convert_with_validation_reports_warnings(self):
        result = AdfToMarkdownEngine().convert_with_validation(doc(paragraph({'type': 'text'}), paragraph(text('ok'))))

        assert result.markdown == 'ok'
        assert result.warnings == ['Text node must have a string text at content/0/content/0/text']


class TestConverterRegistry:
    def test_lookup_misses_resolve_to_fallbacks(self):
        registry = ConverterRegistry()

        assert registry.find_node_converter('paragraph') is None
        assert isinstance(registry.get_node_converter('paragraph'), UnknownNodeConverter)
        assert isinstance(registry.get_mark_converter('strong'), UnknownMarkConverter)

    def test_registering_replaces_existing_converter(self):
        registry = create_default_registry()
        converter = BrokenParagraphConverter()
        registry.register_node(converter)

        assert registry.get_node_converter('paragraph') is converter
        assert registry.node_types.count('paragraph') == 1

    def test_default_registry_covers_standard_types(self):
        registry = create_default_registry()

        assert {'doc', 'paragraph', 'table', 'mediaSingle', 'inlineCard'} <= set(registry.node_types)
        assert {'strong', 'em', 'link', 'subsup'} <= set(registry.mark_types)
