"""The ADF to markdown pipeline.

`AdfToMarkdownEngine.convert` checks the input shape, optionally validates the document, builds a fresh
`ConversionContext` and hands the root to the `doc` converter. The registry is populated once when the engine is
built and only read afterwards, so one engine can serve concurrent calls.
"""

import logging
from typing import Any

from adfmark.adf_to_markdown.context import ConversionContext, convert_node
from adfmark.adf_to_markdown.inline import (
    DateConverter,
    EmojiConverter,
    InlineCardConverter,
    MentionConverter,
    StatusConverter,
)
from adfmark.adf_to_markdown.marks import (
    BackgroundColorConverter,
    CodeConverter,
    EmConverter,
    LinkConverter,
    StrikeConverter,
    StrongConverter,
    SubsupConverter,
    TextColorConverter,
    UnderlineConverter,
)
from adfmark.adf_to_markdown.media import MediaConverter, MediaGroupConverter, MediaSingleConverter
from adfmark.adf_to_markdown.nodes import (
    BlockquoteConverter,
    BulletListConverter,
    CodeBlockConverter,
    DocConverter,
    ExpandConverter,
    HardBreakConverter,
    HeadingConverter,
    ListItemConverter,
    NestedExpandConverter,
    OrderedListConverter,
    PanelConverter,
    ParagraphConverter,
    RuleConverter,
    TextConverter,
)
from adfmark.adf_to_markdown.registry import ConverterRegistry
from adfmark.adf_to_markdown.tables import (
    TableCellConverter,
    TableConverter,
    TableHeaderConverter,
    TableRowConverter,
)
from adfmark.config import ConversionOptions
from adfmark.constants import LOGGER_NAME
from adfmark.exceptions import InvalidInputError, ValidationError
from adfmark.models import ConversionResult
from adfmark.validators.adf import AdfValidator

logger = logging.getLogger(LOGGER_NAME)


def create_default_registry() -> ConverterRegistry:
    """Builds a registry holding a converter for every supported node and mark type."""
    registry = ConverterRegistry()
    registry.register_nodes(
        [
            DocConverter(),
            ParagraphConverter(),
            TextConverter(),
            HeadingConverter(),
            BulletListConverter(),
            OrderedListConverter(),
            ListItemConverter(),
            CodeBlockConverter(),
            BlockquoteConverter(),
            RuleConverter(),
            HardBreakConverter(),
            PanelConverter(),
            ExpandConverter(),
            NestedExpandConverter(),
            TableConverter(),
            TableRowConverter(),
            TableHeaderConverter(),
            TableCellConverter(),
            MediaConverter(),
            MediaSingleConverter(),
            MediaGroupConverter(),
            MentionConverter(),
            DateConverter(),
            EmojiConverter(),
            StatusConverter(),
            InlineCardConverter(),
        ]
    )
    registry.register_marks(
        [
            StrongConverter(),
            EmConverter(),
            CodeConverter(),
            StrikeConverter(),
            UnderlineConverter(),
            TextColorConverter(),
            BackgroundColorConverter(),
            LinkConverter(),
            SubsupConverter(),
        ]
    )
    return registry


class AdfToMarkdownEngine:
    def __init__(self, registry: ConverterRegistry | None = None, validator: AdfValidator | None = None):
        self.registry = registry or create_default_registry()
        self.validator = validator or AdfValidator()

    def convert(self, adf: Any, options: ConversionOptions | dict | None = None) -> str:
        """Converts an ADF document to extended markdown.

        Args:
            adf: the ADF document.
            options: conversion options; `strict` selects between raising and degrading.

        Returns:
            The markdown, without leading or trailing blank lines. An empty document yields an empty string.

        Raises:
            InvalidInputError: in strict mode, when `adf` is not an object or its root is not a `doc`.
            ValidationError: in strict mode with `validate_input`, when the document is structurally invalid.
            ConversionError: in strict mode, when a converter fails.
        """
        options = ConversionOptions.coerce(options)

        if not isinstance(adf, dict):
            if options.strict:
                raise InvalidInputError(f'ADF input must be an object, got {type(adf).__name__}')
            logger.warning(f'Ignoring ADF input of type {type(adf).__name__}')
            return ''

        if adf.get('type') != 'doc':
            if options.strict:
                raise InvalidInputError(f'ADF root must be of type "doc", got "{adf.get("type")}"')
            logger.warning(f'ADF root has type "{adf.get("type")}", converting its content best-effort')
            adf = {'type': 'doc', 'content': adf.get('content') if isinstance(adf.get('content'), list) else []}

        if options.strict and options.validate_input:
            result = self.validator.validate(adf)
            if not result.valid:
                raise ValidationError('Invalid ADF document', errors=result.errors)

        context = ConversionContext(registry=self.registry, options=options)
        return convert_node(adf, context).strip('\n')

    def convert_with_validation(self, adf: Any, options: ConversionOptions | dict | None = None) -> ConversionResult:
        """Converts a document and reports validation problems as warnings instead of raising."""
        options = ConversionOptions.coerce(options)
        result = self.validator.validate(adf)
        warnings = [
            f'{error.message} at {"/".join(str(part) for part in error.path)}' if error.path else error.message
            for error in result.errors
        ]
        warnings.extend(result.warnings)
        markdown = self.convert(adf, options.model_copy(update={'strict': False}))
        return ConversionResult(markdown=markdown, warnings=warnings)
