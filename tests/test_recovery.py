import pytest

from adfmark.exceptions import RecoveryError, ResourceLimitError, ValidationError
from adfmark.markdown_to_adf.parser import fallback_document
from adfmark.recovery import ErrorRecoveryManager, node_fallback, split_sections


def doc(*content):
    return {'version': 1, 'type': 'doc', 'content': list(content)}


def paragraph(*content):
    return {'type': 'paragraph', 'content': list(content)}


def text(value):
    return {'type': 'text', 'text': value}


class FlakyOperation:
    def __init__(self, failures: int, result='ok'):
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError('temporarily unavailable')
        return self.result


def always_fail():
    raise RuntimeError('down')


INVALID_MARKDOWN = '# Title\n\n<!-- adf:unknown type="x" -->\n{bad\n<!-- /adf:unknown -->\n\nTail'


class TestErrorRecoveryManager:
    def test_conversion_without_errors(self):
        result = ErrorRecoveryManager(retry_delay=0).adf_to_markdown(doc(paragraph(text('a'))))

        assert result.success is True
        assert result.result == 'a'
        assert result.attempts == 1
        assert result.strategy is None
        assert result.fallback is False

    def test_transient_failures_are_retried(self):
        operation = FlakyOperation(failures=2)

        result = ErrorRecoveryManager(retry_delay=0).adf_to_markdown(doc(), operation=operation)

        assert result.success is True
        assert result.result == 'ok'
        assert result.attempts == 3

    def test_validation_errors_are_not_retried(self):
        def invalid():
            raise ValidationError('bad document')

        result = ErrorRecoveryManager(retry_delay=0, fallback_strategy='skip').adf_to_markdown(doc(), operation=invalid)

        assert result.success is False
        assert result.attempts == 1
        assert result.strategy == 'skip'
        assert result.warnings == ['Operation skipped due to errors']

    def test_throw_after_retries(self):
        manager = ErrorRecoveryManager(max_retries=3, retry_delay=0, fallback_strategy='throw')

        with pytest.raises(RecoveryError) as exc_info:
            manager.markdown_to_adf('a', operation=always_fail)

        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.last_error, RuntimeError)

    def test_placeholder(self):
        manager = ErrorRecoveryManager(max_retries=0, retry_delay=0, fallback_strategy='placeholder')

        markdown_result = manager.adf_to_markdown(doc(), operation=always_fail)
        adf_result = manager.markdown_to_adf('a', operation=always_fail)

        assert markdown_result.result == '<!-- Error converting ADF to Markdown -->'
        assert markdown_result.fallback is True
        assert adf_result.result == fallback_document('[Error converting Markdown to ADF]')
        assert adf_result.warnings == ['Used placeholder due to errors']

    def test_best_effort_adf_to_markdown(self):
        document = doc(paragraph(text('a')), paragraph({'type': 'text'}), paragraph(text('b')))

        result = ErrorRecoveryManager(retry_delay=0).adf_to_markdown(document)

        assert result.success is True
        assert result.strategy == 'best-effort'
        assert result.result == 'a\n\nb'
        assert result.attempts == 1
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith('Failed to convert node type paragraph')

    def test_best_effort_markdown_to_adf(self):
        result = ErrorRecoveryManager(retry_delay=0).markdown_to_adf(INVALID_MARKDOWN)

        content = result.result['content']
        assert [node['type'] for node in content] == ['heading', 'paragraph', 'paragraph']
        assert content[1]['content'][0]['text'].startswith('<!-- adf:unknown')
        assert content[2]['content'] == [text('Tail')]
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith('Failed to parse section')

    def test_best_effort_without_content(self):
        result = ErrorRecoveryManager(retry_delay=0).adf_to_markdown('not a document')

        assert result.result == ''
        assert result.warnings == ['The ADF input has no content that could be recovered']

    def test_resource_limits_are_not_recovered(self):
        with pytest.raises(ResourceLimitError):
            ErrorRecoveryManager(retry_delay=0).markdown_to_adf('a' * 1_000_001)

    def test_negative_retries(self):
        with pytest.raises(ValueError):
            ErrorRecoveryManager(max_retries=-1)

    @pytest.mark.asyncio
    async def test_async_conversion(self):
        result = await ErrorRecoveryManager(retry_delay=0).markdown_to_adf_async('# Hi')

        assert result.result['content'][0]['type'] == 'heading'

    @pytest.mark.asyncio
    async def test_async_operation_is_awaited(self):
        calls = []

        async def fetch():
            calls.append(1)
            if len(calls) < 2:
                raise RuntimeError('temporarily unavailable')
            return 'done'

        result = await ErrorRecoveryManager(retry_delay=0).adf_to_markdown_async(doc(), operation=fetch)

        assert result.result == 'done'
        assert result.attempts == 2


class TestRecoveryHelpers:
    def test_node_fallback(self):
        assert node_fallback({'type': 'heading', 'attrs': {'level': 2}, 'content': [text('T')]}) == '## T'
        assert node_fallback({'type': 'codeBlock'}) == '```\n[Code Block]\n```'
        assert node_fallback({'type': 'panel', 'attrs': {'panelType': 'note'}}) == '> [note panel]'
        assert node_fallback({'type': 'rule'}) == '[rule]'
        assert node_fallback('x') == '[Invalid node]'

    def test_split_sections(self):
        assert split_sections('# A\ntext\n## B\n\nmore') == ['# A\ntext\n', '## B', 'more']
        assert split_sections('') == ['']
