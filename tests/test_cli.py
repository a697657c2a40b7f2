import json

from click.testing import CliRunner
import pytest

from adfmark.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


class TestToMarkdown:
    def test_from_stdin(self, runner, release_notes_adf):
        result = runner.invoke(cli, ['to-markdown', '-'], input=json.dumps(release_notes_adf))

        assert result.exit_code == 0
        assert '# Release notes' in result.output
        assert '~~~panel type=warning' in result.output

    def test_invalid_json(self, runner):
        result = runner.invoke(cli, ['to-markdown', '-'], input='{bad')

        assert result.exit_code == 1
        assert 'Invalid JSON' in result.output

    def test_strict_conversion_failure(self, runner):
        result = runner.invoke(cli, ['to-markdown', '--strict', '-'], input='{"type": "paragraph"}')

        assert result.exit_code == 1
        assert 'Conversion failed' in result.output


class TestToAdf:
    def test_from_file(self, runner, tmp_path, release_notes_markdown, release_notes_adf):
        path = tmp_path / 'notes.md'
        path.write_text(release_notes_markdown, encoding='utf-8')

        result = runner.invoke(cli, ['to-adf', str(path)])

        assert result.exit_code == 0
        assert json.loads(result.output) == release_notes_adf

    def test_markdown_it_backend(self, runner):
        args = ['to-adf', '--backend', 'markdown-it', '--indent', '0', '-']

        result = runner.invoke(cli, args, input='> [!TIP]\n> Hi')

        assert result.exit_code == 0
        assert json.loads(result.output)['content'][0]['attrs'] == {'panelType': 'success'}

    def test_strict_empty_input(self, runner):
        result = runner.invoke(cli, ['to-adf', '--strict', '-'], input='')

        assert result.exit_code == 1
        assert 'Conversion failed' in result.output


class TestValidate:
    def test_valid_markdown(self, runner, tmp_path, release_notes_markdown):
        path = tmp_path / 'notes.md'
        path.write_text(release_notes_markdown, encoding='utf-8')

        result = runner.invoke(cli, ['validate', str(path)])

        assert result.exit_code == 0
        assert 'Valid' in result.output

    def test_invalid_markdown(self, runner):
        result = runner.invoke(cli, ['validate', '-'], input='~~~panel\nx\n~~~')

        assert result.exit_code == 1
        assert 'MISSING_PANEL_TYPE' in result.output
        assert 'Invalid: 1 error(s)' in result.output

    def test_adf_file_is_detected_by_suffix(self, runner, tmp_path):
        path = tmp_path / 'doc.json'
        path.write_text('{"type": "paragraph"}', encoding='utf-8')

        result = runner.invoke(cli, ['validate', str(path)])

        assert result.exit_code == 1
        assert 'INVALID_ROOT_TYPE' in result.output
        assert 'Invalid: 2 error(s)' in result.output

    def test_explicit_format(self, runner, release_notes_adf):
        result = runner.invoke(cli, ['validate', '--format', 'adf', '-'], input=json.dumps(release_notes_adf))

        assert result.exit_code == 0
        assert 'Valid' in result.output
