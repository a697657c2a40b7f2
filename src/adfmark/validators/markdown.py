import re
from typing import Any

from adfmark.constants import ADF_FENCE_NODE_TYPES, PANEL_TYPES, VALIDATOR_FRONTMATTER_SCAN_LINES
from adfmark.models import ValidationIssue, ValidationResult
from adfmark.utils.metadata_comments import find_metadata_comments, parse_attribute_string

ADF_FENCE_OPENING_PATTERN = re.compile(r'^~~~(\w+)(?:\s+(.*))?$')
CODE_FENCE_OPENING_PATTERN = re.compile(r'^(`{3,}|~{3,})')
HEADING_LINE_PATTERN = re.compile(r'^(#+)(?:\s+(.*))?$')
ORDERED_ITEM_LINE_PATTERN = re.compile(r'^(\d+)\.(?:\s+(.*))?$')
BULLET_ITEM_LINE_PATTERN = re.compile(r'^[-*+](?:\s+(.*))?$')
MEDIA_PLACEHOLDER_PATTERN = re.compile(r'\{media:([^{}]*)\}')
USER_PLACEHOLDER_PATTERN = re.compile(r'\{user:([^{}]*)\}')
LINK_PATTERN = re.compile(r'(?<!!)\[([^\[\]]*)\]\(([^()]*)\)')
CODE_SPAN_PATTERN = re.compile(r'`[^`]*`')

MAX_LIST_NUMBER = 999


class MarkdownValidator:
    """Line based lint checks for extended markdown.

    Lines inside code fences are skipped by every check except the fence balance check. Problems that make the
    markdown ambiguous to parse are errors; cosmetic ones (empty headings, empty list items, unknown fence types) are
    warnings.
    """

    def validate(self, markdown: Any) -> ValidationResult:
        if not isinstance(markdown, str):
            return ValidationResult(
                valid=False, errors=[ValidationIssue('Markdown input must be a string', code='INVALID_TYPE')]
            )

        errors: list[ValidationIssue] = []
        warnings: list[str] = []
        lines = markdown.replace('\r\n', '\n').split('\n')

        code_lines = self._validate_fence_blocks(lines, errors, warnings)
        self._validate_frontmatter(lines, errors)

        for index, line in enumerate(lines):
            if index in code_lines:
                continue
            number = index + 1
            stripped = line.strip()
            self._validate_heading(stripped, number, errors, warnings)
            self._validate_list_item(stripped, number, warnings)
            self._validate_metadata(line, number, errors)
            self._validate_links_and_placeholders(CODE_SPAN_PATTERN.sub('', line), number, errors, warnings)

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _validate_fence_blocks(
        self, lines: list[str], errors: list[ValidationIssue], warnings: list[str]
    ) -> set[int]:
        """Checks that fence blocks are balanced and well formed.

        Returns:
            The indices of the lines that are the body of a code fence.
        """
        code_lines: set[int] = set()
        stack: list[tuple[str, int]] = []
        code_fence: tuple[str, int] | None = None

        for index, line in enumerate(lines):
            number = index + 1
            stripped = line.strip()

            if code_fence is not None:
                marker, _ = code_fence
                if stripped.startswith(marker) and not stripped.strip(marker[0]):
                    code_fence = None
                else:
                    code_lines.add(index)
                continue

            match = ADF_FENCE_OPENING_PATTERN.match(stripped)
            if match and match.group(1) in ADF_FENCE_NODE_TYPES:
                fence_type, header = match.groups()
                if fence_type == 'panel':
                    self._validate_panel_header(header or '', number, errors)
                stack.append((fence_type, number))
                continue
            if match:
                warnings.append(
                    f'Unknown ADF fence type "{match.group(1)}" at line {number}, it is treated as a code block'
                )

            if stripped == '~~~' and stack:
                stack.pop()
                continue

            if fence_match := CODE_FENCE_OPENING_PATTERN.match(stripped):
                code_fence = (fence_match.group(1), number)

        if code_fence is not None:
            stack.append(('code', code_fence[1]))

        for fence_type, number in stack:
            errors.append(
                ValidationIssue(
                    f'Unclosed {fence_type} fence block starting at line {number}',
                    code='UNCLOSED_FENCE_BLOCK',
                    line=number,
                )
            )
        return code_lines

    @staticmethod
    def _validate_panel_header(header: str, number: int, errors: list[ValidationIssue]) -> None:
        attrs = parse_attribute_string(header)
        panel_type = attrs.get('type', attrs.get('panelType'))
        if panel_type is None:
            errors.append(
                ValidationIssue(
                    f'Panel fence block missing required "type" attribute at line {number}',
                    code='MISSING_PANEL_TYPE',
                    line=number,
                )
            )
        elif panel_type not in PANEL_TYPES:
            errors.append(
                ValidationIssue(
                    f'Invalid panel type "{panel_type}" at line {number}. Valid types: {", ".join(PANEL_TYPES)}',
                    code='INVALID_PANEL_TYPE',
                    line=number,
                )
            )

    @staticmethod
    def _validate_frontmatter(lines: list[str], errors: list[ValidationIssue]) -> None:
        delimiter = lines[0].strip()
        if delimiter not in ('---', '+++'):
            return
        scanned = lines[1 : VALIDATOR_FRONTMATTER_SCAN_LINES + 1]
        # a lone rule followed by a blank line is a thematic break
        if not scanned or not scanned[0].strip():
            return
        if not any(line.strip() == delimiter for line in scanned):
            errors.append(ValidationIssue('Unclosed frontmatter block', code='UNCLOSED_FRONTMATTER', line=1))

    @staticmethod
    def _validate_heading(stripped: str, number: int, errors: list[ValidationIssue], warnings: list[str]) -> None:
        match = HEADING_LINE_PATTERN.match(stripped)
        if not match:
            return
        level = len(match.group(1))
        if level > 6:
            errors.append(
                ValidationIssue(
                    f'Invalid heading level {level} at line {number}. Maximum level is 6.',
                    code='INVALID_HEADING_LEVEL',
                    line=number,
                )
            )
        if not (match.group(2) or '').strip('# \t'):
            warnings.append(f'Empty heading at line {number}')

    @staticmethod
    def _validate_list_item(stripped: str, number: int, warnings: list[str]) -> None:
        if match := ORDERED_ITEM_LINE_PATTERN.match(stripped):
            if not (match.group(2) or '').strip():
                warnings.append(f'Empty list item at line {number}')
            if int(match.group(1)) > MAX_LIST_NUMBER:
                warnings.append(f'Very large list number ({match.group(1)}) at line {number}')
        elif match := BULLET_ITEM_LINE_PATTERN.match(stripped):
            if not (match.group(1) or '').strip():
                warnings.append(f'Empty list item at line {number}')

    @staticmethod
    def _validate_metadata(line: str, number: int, errors: list[ValidationIssue]) -> None:
        for _, _, comment in find_metadata_comments(line):
            if comment.json_error is None:
                continue
            if comment.json_error.startswith('Invalid JSON'):
                errors.append(
                    ValidationIssue(
                        f'Invalid JSON in ADF metadata at line {number}', code='INVALID_METADATA_JSON', line=number
                    )
                )
            else:
                errors.append(
                    ValidationIssue(
                        f'ADF metadata attributes must be an object at line {number}',
                        code='INVALID_METADATA_ATTRS',
                        line=number,
                    )
                )

    @staticmethod
    def _validate_links_and_placeholders(
        line: str, number: int, errors: list[ValidationIssue], warnings: list[str]
    ) -> None:
        for match in MEDIA_PLACEHOLDER_PATTERN.finditer(line):
            if not match.group(1).strip():
                errors.append(
                    ValidationIssue(
                        f'Empty media ID in placeholder at line {number}', code='EMPTY_MEDIA_ID', line=number
                    )
                )
        for match in USER_PLACEHOLDER_PATTERN.finditer(line):
            if not match.group(1).strip():
                errors.append(
                    ValidationIssue(f'Empty user ID in mention at line {number}', code='EMPTY_USER_ID', line=number)
                )
        for match in LINK_PATTERN.finditer(line):
            text, url = match.groups()
            if not url.strip():
                errors.append(
                    ValidationIssue(f'Empty URL in link at line {number}', code='EMPTY_LINK_URL', line=number)
                )
            if not text.strip():
                warnings.append(f'Empty link text at line {number}')
