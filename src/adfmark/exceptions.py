from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from adfmark.models import ValidationIssue


class ParserError(Exception):
    """General parser exception, whenever a specific reason can't be determined."""

    code: str = 'PARSER_ERROR'
    extra: dict[str, Any] = {}

    def __init__(self, *args, **kwargs):
        self.extra = kwargs.pop('extra', self.extra)
        super().__init__(*args)


class InvalidInputError(ParserError):
    code = 'INVALID_INPUT'


class ValidationError(ParserError):
    """Raised when a document fails structural validation in strict mode."""

    code = 'VALIDATION_ERROR'

    def __init__(self, message: str, errors: list[ValidationIssue] | None = None, **kwargs):
        self.errors: list[ValidationIssue] = list(errors or [])
        super().__init__(message, **kwargs)

    def __str__(self) -> str:
        message = super().__str__()
        if not self.errors:
            return message
        details = '; '.join(error.message for error in self.errors)
        return f'{message}: {details}'


class ConversionError(ParserError):
    code = 'CONVERSION_ERROR'

    def __init__(self, message: str, node_type: str | None = None, **kwargs):
        self.node_type = node_type
        super().__init__(message, **kwargs)


class MarkdownSyntaxError(ParserError):
    """Raised when extended markdown can not be parsed in strict mode."""

    code = 'SYNTAX_ERROR'

    def __init__(self, message: str, line: int | None = None, column: int | None = None, **kwargs):
        self.line = line
        self.column = column
        super().__init__(message, **kwargs)


class FrontmatterError(ParserError):
    code = 'FRONTMATTER_ERROR'


class ResourceLimitError(ParserError):
    """Raised when an input exceeds a hard resource limit. Never suppressed by non-strict mode."""

    code = 'RESOURCE_LIMIT'


class RecoveryError(ParserError):
    code = 'RECOVERY_FAILED'

    def __init__(self, message: str, attempts: int = 0, last_error: Exception | None = None, **kwargs):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, **kwargs)
