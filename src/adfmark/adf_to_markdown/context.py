from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import TYPE_CHECKING, Iterable

from adfmark.constants import LOGGER_NAME
from adfmark.exceptions import ConversionError, ParserError

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.registry import ConverterRegistry
    from adfmark.config import ConversionOptions

logger = logging.getLogger(LOGGER_NAME)

BULLET_LIST_MARKER = '- '


@dataclass(frozen=True)
class ConversionContext:
    """The traversal environment of one ADF to markdown conversion.

    A fresh context is built for every top-level conversion. It is never mutated: descending into a container
    produces a new context with `depth` incremented and `parent` set.
    """

    registry: ConverterRegistry
    options: ConversionOptions
    depth: int = 0
    parent: dict | None = None
    ancestors: tuple[dict, ...] = ()
    """Every container above the node being converted, outermost first. `parent` is the last one."""
    list_marker: str = BULLET_LIST_MARKER
    """The marker a list item directly below `parent` starts with."""

    def descend(self, parent: dict) -> ConversionContext:
        """Returns the context for the children of the nested container `parent`."""
        return replace(
            self,
            depth=self.depth + 1,
            parent=parent,
            ancestors=(*self.ancestors, parent),
            list_marker=BULLET_LIST_MARKER,
        )

    def with_list_marker(self, marker: str) -> ConversionContext:
        return replace(self, list_marker=marker)

    def within(self, parent: dict) -> ConversionContext:
        """Returns the context for the children of `parent` without increasing the depth."""
        return replace(self, parent=parent, ancestors=(*self.ancestors, parent))

    def convert_children(self, nodes: Iterable[dict] | None) -> str:
        return convert_children(nodes, self)


def _failure_placeholder(node_type: str | None, context: ConversionContext) -> str:
    if context.options.preserve_unknown_nodes:
        return f'<!-- Unknown node: {node_type or "unknown"} -->'
    return ''


def convert_node(node: dict, context: ConversionContext) -> str:
    """Converts a single node with the converter registered for its type.

    In strict mode converter failures propagate as `ConversionError`. Otherwise the failing node is replaced by a
    placeholder and its siblings are still converted.
    """
    if not isinstance(node, dict):
        if context.options.strict:
            raise ConversionError(f'Expected an ADF node object, got {type(node).__name__}')
        logger.warning(f'Skipping invalid ADF node of type {type(node).__name__}')
        return _failure_placeholder(None, context)

    node_type = node.get('type')
    converter = context.registry.get_node_converter(node_type)

    try:
        return converter.to_markdown(node, context)
    except ParserError:
        if context.options.strict:
            raise
        logger.warning(f'Failed to convert node: {node_type}', exc_info=True)
        return _failure_placeholder(node_type, context)
    except Exception as e:
        if context.options.strict:
            raise ConversionError(f'Failed to convert node "{node_type}": {e}', node_type=node_type) from e
        logger.warning(f'Failed to convert node: {node_type}', extra={'error': str(e)})
        return _failure_placeholder(node_type, context)


def convert_children(nodes: Iterable[dict] | None, context: ConversionContext) -> str:
    """Converts inline children and concatenates their markdown."""
    if not nodes:
        return ''
    return ''.join(convert_node(node, context) for node in nodes)


def convert_blocks(nodes: Iterable[dict] | None, context: ConversionContext) -> list[str]:
    """Converts block children, dropping the ones that render to an empty string."""
    if not nodes:
        return []
    rendered = (convert_node(node, context) for node in nodes)
    return [markdown for markdown in rendered if markdown]


def apply_marks(text: str, marks: list[dict] | None, context: ConversionContext) -> str:
    """Applies marks in array order, so the first mark ends up innermost."""
    for mark in marks or []:
        if not isinstance(mark, dict):
            continue
        converter = context.registry.get_mark_converter(mark.get('type'))
        text = converter.to_markdown(text, mark, context)
    return text
