from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable

from adfmark.constants import INLINE_CONTAINER_TYPES, TABLE_CELL_TYPES
from adfmark.utils.json_utils import safe_json_dumps
from adfmark.utils.metadata_comments import format_closing_comment

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.context import ConversionContext


class NodeConverter(ABC):
    """Renders one ADF node type as extended markdown."""

    node_type: str = ''

    @abstractmethod
    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        pass


class MarkConverter(ABC):
    """Wraps the markdown of a text run with the syntax of one ADF mark type."""

    mark_type: str = ''

    @abstractmethod
    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        pass


def _escape_comment_json(value: str) -> str:
    return value.replace('-->', '--\\u003e')


class UnknownNodeConverter(NodeConverter):
    """Preserves a node of an unregistered type as JSON between `adf:unknown` comments.

    Inside paragraphs and headings the JSON is written on the same line so the surrounding text stays one block.
    Inside table cells it is written on one line as well, with a `block` flag so that it is restored as a block of
    the cell; pipes in the JSON are escaped so they do not split the row.
    """

    node_type = 'unknown'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        node_type = node.get('type', 'unknown') if isinstance(node, dict) else 'unknown'
        closing = format_closing_comment('unknown')
        parent = context.parent or {}
        if parent.get('type') in INLINE_CONTAINER_TYPES:
            opening = f'<!-- adf:unknown type="{node_type}" -->'
            return f'{opening}{_escape_comment_json(safe_json_dumps(node))}{closing}'
        if any(ancestor.get('type') in TABLE_CELL_TYPES for ancestor in context.ancestors):
            opening = f'<!-- adf:unknown type="{node_type}" block -->'
            payload = _escape_comment_json(safe_json_dumps(node)).replace('|', '\\u007c')
            return f'{opening}{payload}{closing}'
        opening = f'<!-- adf:unknown type="{node_type}" -->'
        return f'{opening}\n{_escape_comment_json(safe_json_dumps(node, indent=2))}\n{closing}'


class UnknownMarkConverter(MarkConverter):
    """Keeps the text untouched and records the unregistered mark in a trailing comment."""

    mark_type = 'mark'

    def to_markdown(self, text: str, mark: dict, context: ConversionContext) -> str:
        mark_type = mark.get('type', 'unknown')
        attrs = mark.get('attrs') or {}
        payload = _escape_comment_json(safe_json_dumps(attrs)).replace("'", '\\u0027').replace('|', '\\u007c')
        return f'{text} <!-- adf:mark type="{mark_type}" attrs=\'{payload}\' -->'


class ConverterRegistry:
    """Maps ADF node and mark type names to their converters.

    Registering a converter for a type that already has one replaces it. There is no removal. Lookups return `None`
    for unregistered types; `get_node_converter` and `get_mark_converter` resolve such misses to the lossless fallback
    converters.
    """

    fallback_node_converter: NodeConverter = UnknownNodeConverter()
    fallback_mark_converter: MarkConverter = UnknownMarkConverter()

    def __init__(self) -> None:
        self._node_converters: dict[str, NodeConverter] = {}
        self._mark_converters: dict[str, MarkConverter] = {}

    def register_node(self, converter: NodeConverter) -> None:
        self._node_converters[converter.node_type] = converter

    def register_mark(self, converter: MarkConverter) -> None:
        self._mark_converters[converter.mark_type] = converter

    def register_nodes(self, converters: Iterable[NodeConverter]) -> None:
        for converter in converters:
            self.register_node(converter)

    def register_marks(self, converters: Iterable[MarkConverter]) -> None:
        for converter in converters:
            self.register_mark(converter)

    def find_node_converter(self, node_type: str | None) -> NodeConverter | None:
        if node_type is None:
            return None
        return self._node_converters.get(node_type)

    def find_mark_converter(self, mark_type: str | None) -> MarkConverter | None:
        if mark_type is None:
            return None
        return self._mark_converters.get(mark_type)

    def get_node_converter(self, node_type: str | None) -> NodeConverter:
        return self.find_node_converter(node_type) or self.fallback_node_converter

    def get_mark_converter(self, mark_type: str | None) -> MarkConverter:
        return self.find_mark_converter(mark_type) or self.fallback_mark_converter

    @property
    def node_types(self) -> list[str]:
        return list(self._node_converters)

    @property
    def mark_types(self) -> list[str]:
        return list(self._mark_converters)
