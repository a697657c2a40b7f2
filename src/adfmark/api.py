"""Public entry points.

`Parser` bundles the two conversion directions and the validators behind one set of options. The module level
functions create a `Parser` per call; the `*_async` variants run the same work in a worker thread so that large
documents do not block an event loop.
"""

import asyncio
from typing import Any

from adfmark.adf_to_markdown.engine import AdfToMarkdownEngine
from adfmark.config import ConversionOptions, default_options
from adfmark.exceptions import MarkdownSyntaxError, ParserError
from adfmark.markdown_to_adf.parser import create_parser
from adfmark.models import ConversionResult, ParseStats, ValidationIssue, ValidationResult
from adfmark.validators.adf import AdfValidator
from adfmark.validators.markdown import MarkdownValidator


class Parser:
    """Converts between ADF documents and extended markdown.

    Options given to the constructor apply to every call and may be overridden per call. A parser created without
    options takes them from the active `ApplicationConfiguration`, or uses the defaults when none is set.
    """

    def __init__(self, options: ConversionOptions | dict | None = None):
        self.options = ConversionOptions.coerce(options) if options is not None else default_options()
        self.engine = AdfToMarkdownEngine()
        self.adf_validator = AdfValidator()
        self.markdown_validator = MarkdownValidator()

    def _options(self, options: ConversionOptions | dict | None) -> ConversionOptions:
        return self.options if options is None else ConversionOptions.coerce(options)

    def adf_to_markdown(self, adf: Any, options: ConversionOptions | dict | None = None) -> str:
        return self.engine.convert(adf, self._options(options))

    def markdown_to_adf(self, markdown: Any, options: ConversionOptions | dict | None = None) -> dict:
        return create_parser(self._options(options)).parse(markdown)

    def markdown_to_adf_with_frontmatter(
        self, markdown: Any, options: ConversionOptions | dict | None = None
    ) -> tuple[dict, dict[str, Any] | None]:
        """Converts markdown to ADF and returns the parsed frontmatter alongside the document."""
        return create_parser(self._options(options)).parse_with_frontmatter(markdown)

    def validate_adf(self, value: Any) -> ValidationResult:
        return self.adf_validator.validate(value)

    def validate_markdown(self, markdown: Any) -> ValidationResult:
        """Lints the markdown and checks that it converts in strict mode.

        Conversion failures are reported as errors; the line and column of syntax errors are kept.
        """
        result = self.markdown_validator.validate(markdown)
        if not isinstance(markdown, str) or not markdown.strip():
            return result

        try:
            create_parser(self.options.model_copy(update={'strict': True})).parse(markdown)
        except MarkdownSyntaxError as e:
            result.errors.append(ValidationIssue(str(e), code=e.code, line=e.line))
        except ParserError as e:
            result.errors.append(ValidationIssue(str(e), code=e.code))
        result.valid = not result.errors
        return result

    def convert_with_validation(self, adf: Any, options: ConversionOptions | dict | None = None) -> ConversionResult:
        return self.engine.convert_with_validation(adf, self._options(options))

    def get_stats(self, markdown: Any) -> ParseStats:
        return create_parser(self.options).get_stats(markdown)

    async def adf_to_markdown_async(self, adf: Any, options: ConversionOptions | dict | None = None) -> str:
        return await asyncio.to_thread(self.adf_to_markdown, adf, options)

    async def markdown_to_adf_async(self, markdown: Any, options: ConversionOptions | dict | None = None) -> dict:
        return await asyncio.to_thread(self.markdown_to_adf, markdown, options)

    async def validate_markdown_async(self, markdown: Any) -> ValidationResult:
        return await asyncio.to_thread(self.validate_markdown, markdown)

    async def get_stats_async(self, markdown: Any) -> ParseStats:
        return await asyncio.to_thread(self.get_stats, markdown)


def adf_to_markdown(adf: Any, options: ConversionOptions | dict | None = None) -> str:
    """Converts an ADF document to extended markdown.

    Raises:
        InvalidInputError: in strict mode, when the input is not an ADF document.
        ValidationError: in strict mode, when the document is structurally invalid.
        ConversionError: in strict mode, when a node can not be converted.
    """
    return Parser(options).adf_to_markdown(adf)


def markdown_to_adf(markdown: Any, options: ConversionOptions | dict | None = None) -> dict:
    """Converts extended markdown to an ADF document.

    In non-strict mode this never raises, except for `ResourceLimitError` on oversized input.
    """
    return Parser(options).markdown_to_adf(markdown)


def validate_adf(value: Any) -> ValidationResult:
    return AdfValidator().validate(value)


def validate_markdown(markdown: Any, options: ConversionOptions | dict | None = None) -> ValidationResult:
    return Parser(options).validate_markdown(markdown)


def convert_with_validation(adf: Any, options: ConversionOptions | dict | None = None) -> ConversionResult:
    return Parser(options).convert_with_validation(adf)


def get_stats(markdown: Any, options: ConversionOptions | dict | None = None) -> ParseStats:
    return Parser(options).get_stats(markdown)


async def adf_to_markdown_async(adf: Any, options: ConversionOptions | dict | None = None) -> str:
    return await Parser(options).adf_to_markdown_async(adf)


async def markdown_to_adf_async(markdown: Any, options: ConversionOptions | dict | None = None) -> dict:
    return await Parser(options).markdown_to_adf_async(markdown)


async def validate_markdown_async(markdown: Any, options: ConversionOptions | dict | None = None) -> ValidationResult:
    return await Parser(options).validate_markdown_async(markdown)


async def get_stats_async(markdown: Any, options: ConversionOptions | dict | None = None) -> ParseStats:
    return await Parser(options).get_stats_async(markdown)
