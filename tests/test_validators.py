import pytest

from adfmark.validators.adf import AdfValidator
from adfmark.validators.markdown import MarkdownValidator


def codes(result):
    return [error.code for error in result.errors]


class TestMarkdownValidator:
    @pytest.fixture
    def validator(self):
        return MarkdownValidator()

    def test_valid_document(self, validator, release_notes_markdown):
        result = validator.validate(release_notes_markdown)

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_non_string_input(self, validator):
        result = validator.validate(42)

        assert result.valid is False
        assert codes(result) == ['INVALID_TYPE']

    def test_panel_without_type(self, validator):
        result = validator.validate('~~~panel\nx\n~~~')

        assert codes(result) == ['MISSING_PANEL_TYPE']
        assert result.errors[0].line == 1

    def test_invalid_panel_type(self, validator):
        result = validator.validate('~~~panel type=purple\nx\n~~~')

        assert codes(result) == ['INVALID_PANEL_TYPE']
        assert result.errors[0].message.startswith('Invalid panel type "purple" at line 1')

    def test_unclosed_fence_block(self, validator):
        result = validator.validate('Intro\n\n~~~expand title=More\nx')

        assert codes(result) == ['UNCLOSED_FENCE_BLOCK']
        assert result.errors[0].line == 3
        assert result.errors[0].message == 'Unclosed expand fence block starting at line 3'

    def test_unclosed_code_fence(self, validator):
        result = validator.validate('```python\nx = 1')

        assert codes(result) == ['UNCLOSED_FENCE_BLOCK']
        assert result.errors[0].message == 'Unclosed code fence block starting at line 1'

    def test_nested_fence_blocks(self, validator):
        assert validator.validate('~~~expand\n~~~panel type=info\nx\n~~~\n~~~').valid is True

    def test_unknown_fence_type_is_a_warning(self, validator):
        result = validator.validate('~~~python\nx = 1\n~~~')

        assert result.valid is True
        assert result.warnings == ['Unknown ADF fence type "python" at line 1, it is treated as a code block']

    def test_code_fence_lines_are_skipped(self, validator):
        result = validator.validate('```\n{user:}\n#######\n```')

        assert result.valid is True

    def test_unclosed_frontmatter(self, validator):
        result = validator.validate('---\ntitle: x\n\nBody')

        assert codes(result) == ['UNCLOSED_FRONTMATTER']

    def test_rule_on_first_line_is_not_frontmatter(self, validator):
        assert validator.validate('---\n\ntext').valid is True

    def test_heading_level(self, validator):
        result = validator.validate('####### Too deep')

        assert codes(result) == ['INVALID_HEADING_LEVEL']

    def test_empty_heading_and_list_items(self, validator):
        result = validator.validate('#\n\n- \n\n1000. big')

        assert result.valid is True
        assert result.warnings == [
            'Empty heading at line 1',
            'Empty list item at line 3',
            'Very large list number (1000) at line 5',
        ]

    def test_metadata_comments(self, validator):
        result = validator.validate(
            "a <!-- adf:paragraph attrs='{bad' -->\n\nb <!-- adf:paragraph attrs='[1]' -->"
        )

        assert codes(result) == ['INVALID_METADATA_JSON', 'INVALID_METADATA_ATTRS']
        assert [error.line for error in result.errors] == [1, 3]

    def test_placeholders_and_links(self, validator):
        result = validator.validate('{media:} and {user: }\n\n[text]() and [](https://e.com)')

        assert codes(result) == ['EMPTY_MEDIA_ID', 'EMPTY_USER_ID', 'EMPTY_LINK_URL']
        assert result.warnings == ['Empty link text at line 3']

    def test_images_and_code_spans_are_ignored(self, validator):
        result = validator.validate('![](adf:media:m1) and `{user:}`')

        assert result.valid is True
        assert result.warnings == []


class TestAdfValidator:
    @pytest.fixture
    def validator(self):
        return AdfValidator()

    def test_valid_documents(self, validator, release_notes_adf, media_adf):
        assert validator.validate(release_notes_adf).valid is True
        assert validator.validate(media_adf).valid is True

    def test_not_an_object(self, validator):
        result = validator.validate(['doc'])

        assert result.valid is False
        assert codes(result) == ['INVALID_TYPE']

    def test_root(self, validator):
        result = validator.validate({'type': 'paragraph'})

        assert codes(result) == ['INVALID_ROOT_TYPE', 'INVALID_CONTENT']
        assert [error.path for error in result.errors] == [['type'], ['content']]

    def test_node_errors_carry_paths(self, validator):
        document = {
            'type': 'doc',
            'content': [
                'text',
                {'content': []},
                {'type': 'paragraph', 'attrs': [], 'content': [{'type': 'text', 'text': 1, 'content': []}]},
                {'type': 'paragraph', 'content': [{'type': 'text', 'text': 'a', 'marks': [{'attrs': {}}]}]},
                {'type': 'paragraph', 'content': {}},
            ],
        }

        result = validator.validate(document)

        assert [(error.code, error.path) for error in result.errors] == [
            ('INVALID_NODE', ['content', 0]),
            ('MISSING_TYPE', ['content', 1, 'type']),
            ('INVALID_ATTRS', ['content', 2, 'attrs']),
            ('INVALID_TEXT', ['content', 2, 'content', 0, 'text']),
            ('UNEXPECTED_CONTENT', ['content', 2, 'content', 0, 'content']),
            ('INVALID_MARK', ['content', 3, 'content', 0, 'marks', 0]),
            ('INVALID_CONTENT', ['content', 4, 'content']),
        ]

    def test_marks_must_be_a_list(self, validator):
        document = {'type': 'doc', 'content': [{'type': 'text', 'text': 'a', 'marks': 'strong'}]}

        assert codes(validator.validate(document)) == ['INVALID_MARKS']
