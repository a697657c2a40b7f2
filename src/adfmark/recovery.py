"""Retries and fallbacks around conversion calls.

`ErrorRecoveryManager` runs a conversion in strict mode so that failures surface as exceptions, retries it a bounded
number of times with a fixed delay and, once the retries are exhausted, applies one of the fallback strategies:

* `skip`: give up and report the error
* `placeholder`: a comment (markdown) or a single paragraph (ADF) standing in for the result
* `best-effort`: convert top-level ADF nodes one by one, or markdown section by section, replacing only the parts
  that fail
* `throw`: raise `RecoveryError`

Retries are meant for transient failures of caller supplied operations. Errors that would fail the same way again
(validation errors, malformed JSON, syntax errors) are not retried and resource limit errors are never recovered.
"""

import asyncio
from dataclasses import dataclass, field
from functools import partial
import inspect
import logging
import re
import time
from typing import Any, Callable, Literal

from adfmark.adf_to_markdown.engine import AdfToMarkdownEngine
from adfmark.config import ConversionOptions
from adfmark.constants import LOGGER_NAME, RECOVERY_MAX_RETRIES, RECOVERY_RETRY_DELAY
from adfmark.exceptions import RecoveryError, ResourceLimitError, ValidationError
from adfmark.markdown_to_adf.ast_builder import empty_document
from adfmark.markdown_to_adf.parser import create_parser, fallback_document
from adfmark.models import BaseModel

logger = logging.getLogger(LOGGER_NAME)

FallbackStrategy = Literal['skip', 'placeholder', 'best-effort', 'throw']

NON_RETRYABLE_MESSAGES = ('Invalid JSON', 'Syntax error')
SECTION_SPLIT_PATTERN = re.compile(r'(?=^#{1,6}\s)|\n\s*\n', re.MULTILINE)

ADF_TO_MARKDOWN = 'adf_to_markdown'
MARKDOWN_TO_ADF = 'markdown_to_adf'


@dataclass
class RecoveryResult(BaseModel):
    success: bool = True
    result: Any | None = None
    error: str | None = None
    strategy: str | None = None
    """The fallback strategy that produced `result`; `None` when the operation itself succeeded."""
    fallback: bool = False
    attempts: int = 0
    warnings: list[str] = field(default_factory=list)


def extract_text(nodes: list) -> str:
    parts = []
    for node in nodes or []:
        if not isinstance(node, dict):
            continue
        if node.get('type') == 'text':
            parts.append(str(node.get('text') or ''))
        elif isinstance(node.get('content'), list):
            parts.append(extract_text(node['content']))
    return ''.join(parts)


def node_fallback(node: Any) -> str:
    """A plain markdown rendition of a top-level node that could not be converted."""
    if not isinstance(node, dict):
        return '[Invalid node]'
    node_type = node.get('type')
    attrs = node.get('attrs') if isinstance(node.get('attrs'), dict) else {}
    content = node.get('content') if isinstance(node.get('content'), list) else None

    if node_type == 'paragraph':
        return extract_text(content) if content else '[Paragraph]'
    if node_type == 'heading':
        level = attrs.get('level') if isinstance(attrs.get('level'), int) else 1
        return f'{"#" * max(1, min(level, 6))} {extract_text(content) if content else "[Heading]"}'
    if node_type == 'codeBlock':
        return f'```\n{extract_text(content) if content else "[Code Block]"}\n```'
    if node_type == 'panel':
        return f'> [{attrs.get("panelType", "info")} panel]'
    return f'[{node_type}]'


def split_sections(markdown: str) -> list[str]:
    """Splits markdown before every heading and at blank lines."""
    sections = [section for section in SECTION_SPLIT_PATTERN.split(markdown) if section and section.strip()]
    return sections or [markdown]


class ErrorRecoveryManager:
    def __init__(
        self,
        max_retries: int = RECOVERY_MAX_RETRIES,
        retry_delay: float = RECOVERY_RETRY_DELAY,
        fallback_strategy: FallbackStrategy = 'best-effort',
        options: ConversionOptions | dict | None = None,
        engine: AdfToMarkdownEngine | None = None,
    ):
        """Initializes the manager.

        Args:
            max_retries: how many times a failed operation is retried; it runs at most `max_retries + 1` times.
            retry_delay: seconds to wait between attempts.
            fallback_strategy: what to do once the retries are exhausted.
            options: conversion options for the built-in conversions; they always run in strict mode.
            engine: the ADF to markdown engine; a default one is created when omitted.
        """
        if max_retries < 0:
            raise ValueError('max_retries must not be negative')
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.fallback_strategy = fallback_strategy
        self.options = ConversionOptions.coerce(options).model_copy(update={'strict': True})
        self.engine = engine or AdfToMarkdownEngine()

    @staticmethod
    def is_non_retryable(error: Exception) -> bool:
        if isinstance(error, (ValidationError, ResourceLimitError)):
            return True
        return any(message in str(error) for message in NON_RETRYABLE_MESSAGES)

    def _record_failure(self, name: str, attempt: int, error: Exception) -> bool:
        """Logs a failed attempt and tells whether another one should be made."""
        if isinstance(error, ResourceLimitError):
            raise error
        if self.is_non_retryable(error):
            logger.info(f'{name} failed with a non-retryable error: {error}')
            return False
        if attempt >= self.max_retries:
            return False
        logger.info(f'{name} failed on attempt {attempt + 1} of {self.max_retries + 1}, retrying: {error}')
        return True

    def _retry(self, operation: Callable[[], Any], name: str) -> tuple[RecoveryResult, Exception | None]:
        attempt = 0
        while True:
            try:
                return RecoveryResult(result=operation(), attempts=attempt + 1), None
            except Exception as e:
                if not self._record_failure(name, attempt, e):
                    return RecoveryResult(success=False, error=str(e), attempts=attempt + 1), e
            attempt += 1
            time.sleep(self.retry_delay)

    async def _retry_async(self, operation: Callable[[], Any], name: str) -> tuple[RecoveryResult, Exception | None]:
        attempt = 0
        while True:
            try:
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                return RecoveryResult(result=result, attempts=attempt + 1), None
            except Exception as e:
                if not self._record_failure(name, attempt, e):
                    return RecoveryResult(success=False, error=str(e), attempts=attempt + 1), e
            attempt += 1
            await asyncio.sleep(self.retry_delay)

    def adf_to_markdown(self, adf: Any, operation: Callable[[], Any] | None = None) -> RecoveryResult:
        """Converts an ADF document to markdown with retries and the configured fallback.

        Args:
            adf: the ADF document.
            operation: the conversion to run; defaults to a strict conversion of `adf` by the engine.

        Returns:
            A `RecoveryResult` whose `result` is the markdown.

        Raises:
            RecoveryError: when every attempt failed and the strategy is `throw`.
            ResourceLimitError: when the input exceeds a resource limit.
        """
        outcome, error = self._retry(operation or partial(self.engine.convert, adf, self.options), ADF_TO_MARKDOWN)
        if error is None:
            return outcome
        return self._fallback(ADF_TO_MARKDOWN, adf, error, outcome.attempts)

    def markdown_to_adf(self, markdown: Any, operation: Callable[[], Any] | None = None) -> RecoveryResult:
        """Converts markdown to an ADF document with retries and the configured fallback.

        Args:
            markdown: the extended markdown text.
            operation: the conversion to run; defaults to a strict parse of `markdown` with the configured backend.

        Returns:
            A `RecoveryResult` whose `result` is the ADF document.

        Raises:
            RecoveryError: when every attempt failed and the strategy is `throw`.
            ResourceLimitError: when the input exceeds a resource limit.
        """
        outcome, error = self._retry(operation or partial(create_parser(self.options).parse, markdown), MARKDOWN_TO_ADF)
        if error is None:
            return outcome
        return self._fallback(MARKDOWN_TO_ADF, markdown, error, outcome.attempts)

    async def adf_to_markdown_async(self, adf: Any, operation: Callable[[], Any] | None = None) -> RecoveryResult:
        outcome, error = await self._retry_async(
            operation or partial(self.engine.convert, adf, self.options), ADF_TO_MARKDOWN
        )
        if error is None:
            return outcome
        return self._fallback(ADF_TO_MARKDOWN, adf, error, outcome.attempts)

    async def markdown_to_adf_async(
        self, markdown: Any, operation: Callable[[], Any] | None = None
    ) -> RecoveryResult:
        outcome, error = await self._retry_async(
            operation or partial(create_parser(self.options).parse, markdown), MARKDOWN_TO_ADF
        )
        if error is None:
            return outcome
        return self._fallback(MARKDOWN_TO_ADF, markdown, error, outcome.attempts)

    def _fallback(self, name: str, value: Any, error: Exception, attempts: int) -> RecoveryResult:
        if self.fallback_strategy == 'throw':
            raise RecoveryError(
                f'{name} failed after {attempts} attempt(s): {error}', attempts=attempts, last_error=error
            ) from error

        logger.warning(f'{name} failed after {attempts} attempt(s), applying the {self.fallback_strategy} fallback')

        if self.fallback_strategy == 'skip':
            return RecoveryResult(
                success=False,
                error=str(error),
                strategy='skip',
                attempts=attempts,
                warnings=['Operation skipped due to errors'],
            )

        if self.fallback_strategy == 'placeholder':
            if name == ADF_TO_MARKDOWN:
                result: Any = '<!-- Error converting ADF to Markdown -->'
            else:
                result = fallback_document('[Error converting Markdown to ADF]')
            return RecoveryResult(
                result=result,
                error=str(error),
                strategy='placeholder',
                fallback=True,
                attempts=attempts,
                warnings=['Used placeholder due to errors'],
            )

        if name == ADF_TO_MARKDOWN:
            result, warnings = self._recover_adf_to_markdown(value)
        else:
            result, warnings = self._recover_markdown_to_adf(value)
        return RecoveryResult(
            result=result,
            error=str(error),
            strategy='best-effort',
            fallback=True,
            attempts=attempts,
            warnings=warnings,
        )

    def _recover_adf_to_markdown(self, adf: Any) -> tuple[str, list[str]]:
        if not isinstance(adf, dict) or not isinstance(adf.get('content'), list):
            return '', ['The ADF input has no content that could be recovered']

        warnings = []
        blocks = []
        for node in adf['content']:
            try:
                blocks.append(self.engine.convert({'type': 'doc', 'content': [node]}, self.options))
            except ResourceLimitError:
                raise
            except Exception as e:
                node_type = node.get('type') if isinstance(node, dict) else type(node).__name__
                warnings.append(f'Failed to convert node type {node_type}: {e}')
                blocks.append(node_fallback(node))
        return '\n\n'.join(block for block in blocks if block), warnings

    def _recover_markdown_to_adf(self, markdown: Any) -> tuple[dict, list[str]]:
        if not isinstance(markdown, str) or not markdown.strip():
            return empty_document(), ['The markdown input has no content that could be recovered']

        parser = create_parser(self.options)
        warnings = []
        document = empty_document()
        for section in split_sections(markdown):
            try:
                document['content'].extend(parser.parse(section)['content'])
            except ResourceLimitError:
                raise
            except Exception as e:
                warnings.append(f'Failed to parse section "{section.strip()[:50]}": {e}')
                document['content'].extend(fallback_document(section.strip())['content'])
        return document, warnings
