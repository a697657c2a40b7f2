import pytest

from adfmark.api import markdown_to_adf
from adfmark.exceptions import InvalidInputError
from adfmark.markdown_to_adf.streaming import StreamingParser

DOCUMENT = '\n'.join(
    [
        '# Release',
        '',
        'Intro with *emphasis*.',
        '',
        '```python',
        'a = 1',
        '',
        'b = 2',
        '```',
        '',
        '~~~panel type=warning',
        'First',
        '',
        'Second',
        '~~~',
        '',
        '- one',
        '',
        '- two',
        '  continued',
        '',
        '<!-- adf:paragraph attrs=\'{"localId": "p1"}\' -->',
        'Tagged',
        '',
        '| a | b |',
        '| -------- | -------- |',
        '| 1 | 2 |',
        '',
        '<!-- adf:unknown type="extension" -->',
        '{',
        '',
        '  "type": "extension"',
        '}',
        '<!-- /adf:unknown -->',
        '',
        'Tail',
    ]
)


def chunked(text, size):
    return [text[start : start + size] for start in range(0, len(text), size)]


async def agen(chunks):
    for chunk in chunks:
        yield chunk


class TestStreamingParser:
    @pytest.mark.parametrize('size', [1, 7, 64, len(DOCUMENT)])
    def test_matches_whole_document(self, size):
        assert StreamingParser().parse(chunked(DOCUMENT, size)) == markdown_to_adf(DOCUMENT)

    def test_matches_whole_document_with_markdown_it(self):
        options = {'backend': 'markdown-it'}

        assert StreamingParser(options).parse(chunked(DOCUMENT, 5)) == markdown_to_adf(DOCUMENT, options)

    def test_nodes_are_emitted_once_a_section_ends(self):
        parser = StreamingParser()

        assert parser.feed('# Title\n') == []
        assert parser.feed('\n') == []
        assert parser.feed('Bo') == []
        assert parser.feed('dy\n') == [
            {'type': 'heading', 'attrs': {'level': 1}, 'content': [{'type': 'text', 'text': 'Title'}]}
        ]
        assert parser.close() == [{'type': 'paragraph', 'content': [{'type': 'text', 'text': 'Body'}]}]

    def test_open_fence_holds_the_section(self):
        parser = StreamingParser()

        assert parser.feed('```\ncode\n\n') == []
        assert parser.feed('more\n```\n\nAfter\n') == [
            {'type': 'codeBlock', 'content': [{'type': 'text', 'text': 'code\n\nmore'}]}
        ]

    def test_frontmatter(self):
        parser = StreamingParser()

        document = parser.parse(['---\ntitle: Notes\n', '\nowner: me\n---\n\nBody\n'])

        assert parser.frontmatter == {'title': 'Notes', 'owner': 'me'}
        assert document['content'] == [{'type': 'paragraph', 'content': [{'type': 'text', 'text': 'Body'}]}]

    def test_leading_rule_is_not_frontmatter(self):
        parser = StreamingParser()

        document = parser.parse('---\n\nx\n\n---\n')

        assert parser.frontmatter is None
        assert [node['type'] for node in document['content']] == ['rule', 'paragraph', 'rule']

    def test_windows_line_endings(self):
        assert StreamingParser().parse(['a\r', '\n\r\nb\r\n']) == markdown_to_adf('a\n\nb')

    def test_parser_is_reusable_after_close(self):
        parser = StreamingParser()

        first = parser.parse('one')
        second = parser.parse('two')

        assert first['content'][0]['content'][0]['text'] == 'one'
        assert second['content'][0]['content'][0]['text'] == 'two'

    def test_non_text_chunks(self):
        assert StreamingParser().feed(b'bytes') == []

        with pytest.raises(InvalidInputError):
            StreamingParser({'strict': True}).feed(b'bytes')

    @pytest.mark.asyncio
    async def test_async_stream(self):
        parser = StreamingParser()

        nodes = [node async for node in parser.parse_stream_async(agen(chunked(DOCUMENT, 11)))]

        assert nodes == markdown_to_adf(DOCUMENT)['content']
