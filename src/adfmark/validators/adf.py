from typing import Any

from adfmark.models import ValidationIssue, ValidationResult


class AdfValidator:
    """Structural checks for ADF documents.

    The root must be an object of type `doc` with a `content` list. Every node below it must be an object with a
    string `type`; text nodes must carry a string `text` and no `content`; `content` and `marks` must be lists.
    """

    def validate(self, value: Any) -> ValidationResult:
        errors: list[ValidationIssue] = []

        if not isinstance(value, dict):
            errors.append(ValidationIssue('ADF document must be an object', code='INVALID_TYPE'))
            return ValidationResult(valid=False, errors=errors)

        if value.get('type') != 'doc':
            errors.append(
                ValidationIssue('Root node must be of type "doc"', path=['type'], code='INVALID_ROOT_TYPE')
            )

        content = value.get('content')
        if not isinstance(content, list):
            errors.append(
                ValidationIssue('Document content must be an array', path=['content'], code='INVALID_CONTENT')
            )
        else:
            for index, node in enumerate(content):
                self._validate_node(node, ['content', index], errors)

        return ValidationResult(valid=not errors, errors=errors)

    def _validate_node(self, node: Any, path: list[str | int], errors: list[ValidationIssue]) -> None:
        if not isinstance(node, dict):
            errors.append(ValidationIssue('Node must be an object', path=path, code='INVALID_NODE'))
            return

        node_type = node.get('type')
        if not isinstance(node_type, str) or not node_type:
            errors.append(
                ValidationIssue('Node must have a string type', path=[*path, 'type'], code='MISSING_TYPE')
            )
            return

        if node_type == 'text':
            if not isinstance(node.get('text'), str):
                errors.append(
                    ValidationIssue('Text node must have a string text', path=[*path, 'text'], code='INVALID_TEXT')
                )
            if 'content' in node:
                errors.append(
                    ValidationIssue(
                        'Text node must not have content', path=[*path, 'content'], code='UNEXPECTED_CONTENT'
                    )
                )

        if 'attrs' in node and not isinstance(node['attrs'], dict):
            errors.append(ValidationIssue('Attributes must be an object', path=[*path, 'attrs'], code='INVALID_ATTRS'))

        marks = node.get('marks')
        if marks is not None:
            if not isinstance(marks, list):
                errors.append(ValidationIssue('Marks must be an array', path=[*path, 'marks'], code='INVALID_MARKS'))
            else:
                for index, mark in enumerate(marks):
                    if not isinstance(mark, dict) or not isinstance(mark.get('type'), str):
                        errors.append(
                            ValidationIssue(
                                'Mark must be an object with a string type',
                                path=[*path, 'marks', index],
                                code='INVALID_MARK',
                            )
                        )

        children = node.get('content')
        if children is None or node_type == 'text':
            return
        if not isinstance(children, list):
            errors.append(
                ValidationIssue('Node content must be an array', path=[*path, 'content'], code='INVALID_CONTENT')
            )
            return
        for index, child in enumerate(children):
            self._validate_node(child, [*path, 'content', index], errors)
