import pytest

from adfmark.exceptions import FrontmatterError
from adfmark.markdown_to_adf.frontmatter import extract_frontmatter, parse_frontmatter, starts_with_frontmatter


class TestParseFrontmatter:
    def test_yaml(self):
        assert parse_frontmatter('title: x\ntags:\n  - a') == {'title': 'x', 'tags': ['a']}

    def test_toml(self):
        assert parse_frontmatter('a = 1\nname = "doc"', 'toml') == {'a': 1, 'name': 'doc'}

    def test_empty_block(self):
        assert parse_frontmatter('') == {}

    def test_not_a_mapping(self):
        assert parse_frontmatter('- a') is None

        with pytest.raises(FrontmatterError):
            parse_frontmatter('- a', strict=True)

    @pytest.mark.parametrize(
        'content,language',
        [
            ('a: [', 'yaml'),
            ('a = ', 'toml'),
        ],
    )
    def test_invalid_syntax(self, content, language):
        assert parse_frontmatter(content, language) is None

        with pytest.raises(FrontmatterError):
            parse_frontmatter(content, language, strict=True)


class TestExtractFrontmatter:
    def test_toml_block(self):
        assert extract_frontmatter('+++\ntitle = "Doc"\n+++\nBody') == ({'title': 'Doc'}, 'Body')

    def test_yaml_block_at_end_of_input(self):
        assert extract_frontmatter('---\na: 1\n---') == ({'a': 1}, '')

    def test_without_frontmatter(self):
        assert extract_frontmatter('# Title') == (None, '# Title')

    def test_unclosed_block_is_not_frontmatter(self):
        assert extract_frontmatter('---\na: 1\nBody') == (None, '---\na: 1\nBody')


class TestStartsWithFrontmatter:
    @pytest.mark.parametrize(
        'markdown',
        [
            '---\ntitle: x\n---\nBody',
            '+++\na = 1\n+++',
            '---  \ntitle: x\n---',
        ],
    )
    def test_opening_block(self, markdown):
        assert starts_with_frontmatter(markdown)

    @pytest.mark.parametrize(
        'markdown',
        [
            '---\n\nx\n\n---',
            '---\ntitle: x',
            'text\n---\na: 1\n---',
            '----\na: 1\n----',
            '---',
        ],
    )
    def test_not_a_block(self, markdown):
        assert not starts_with_frontmatter(markdown)

    def test_closing_delimiter_must_be_near(self):
        markdown = '---\n' + 'a: 1\n' * 30 + '---'

        assert not starts_with_frontmatter(markdown)
