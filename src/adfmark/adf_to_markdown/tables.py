"""Table converters.

Tables are written as GFM pipe tables. The first row is always the header row of the markdown table; a cell whose
ADF type does not match its position carries a metadata comment naming its type. A cell with a `colspan` greater
than one carries a `<!-- colspan=N -->` comment and is followed by `N - 1` empty cells, so every row has as many
pipe cells as columns it covers. Parsing drops those empty cells again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from adfmark.adf_to_markdown.context import convert_blocks, convert_node
from adfmark.adf_to_markdown.registry import NodeConverter
from adfmark.constants import MAX_TABLE_COLUMNS, TABLE_DEFAULT_ATTRIBUTES
from adfmark.utils.metadata_comments import format_metadata_comment

if TYPE_CHECKING:
    from adfmark.adf_to_markdown.context import ConversionContext


def _expected_cell_type(context: ConversionContext) -> str:
    if len(context.ancestors) >= 2:
        row, table = context.ancestors[-1], context.ancestors[-2]
        rows = table.get('content') or []
        if rows and rows[0] is row:
            return 'tableHeader'
    return 'tableCell'


def cell_span(cell: dict) -> int:
    """The number of columns `cell` covers."""
    colspan = (cell.get('attrs') or {}).get('colspan') if isinstance(cell, dict) else None
    if isinstance(colspan, int) and not isinstance(colspan, bool) and colspan > 1:
        return min(colspan, MAX_TABLE_COLUMNS)
    return 1


class TableConverter(NodeConverter):
    node_type = 'table'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        table_context = context.descend(node)
        rows = [row for row in node.get('content') or [] if isinstance(row, dict)]
        if not rows:
            return ''

        lines = []
        for index, row in enumerate(rows):
            lines.append(convert_node(row, table_context))
            if index == 0:
                column_count = max(sum(cell_span(cell) for cell in row.get('content') or []), 1)
                lines.append('|' + ' -------- |' * column_count)

        markdown = '\n'.join(lines)

        attrs = node.get('attrs') or {}
        remainder = {k: v for k, v in attrs.items() if TABLE_DEFAULT_ATTRIBUTES.get(k, object()) != v}
        if remainder:
            markdown = f'{markdown}\n{format_metadata_comment(self.node_type, remainder)}'
        return markdown


class TableRowConverter(NodeConverter):
    node_type = 'tableRow'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        row_context = context.descend(node)
        cells = []
        for cell in node.get('content') or []:
            cells.append(convert_node(cell, row_context))
            cells.extend([''] * (cell_span(cell) - 1))
        if not cells:
            return '|  |'
        return '| ' + ' | '.join(cells) + ' |'


class TableCellConverter(NodeConverter):
    node_type = 'tableCell'

    def to_markdown(self, node: dict, context: ConversionContext) -> str:
        blocks = convert_blocks(node.get('content'), context.descend(node))
        text = '\n'.join(blocks).replace('  \n', '\n').replace('\n', '<br>').replace('|', '\\|')

        parts = [text] if text else []
        attrs = dict(node.get('attrs') or {})
        colspan = attrs.get('colspan')
        if isinstance(colspan, int) and colspan > 1:
            parts.append(f'<!-- colspan={colspan} -->')
            del attrs['colspan']

        if attrs:
            parts.append(format_metadata_comment(self.node_type, attrs))
        elif self.node_type != _expected_cell_type(context):
            parts.append(format_metadata_comment(self.node_type))

        return ' '.join(parts)


class TableHeaderConverter(TableCellConverter):
    node_type = 'tableHeader'
