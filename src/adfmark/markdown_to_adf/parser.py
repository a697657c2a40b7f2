import logging
import re
from typing import Any

from markdown_it import MarkdownIt
from mdit_py_plugins.front_matter import front_matter_plugin

from adfmark.config import ConversionOptions
from adfmark.constants import ADF_FENCE_NODE_TYPES, LOGGER_NAME, MAX_INPUT_LENGTH
from adfmark.exceptions import InvalidInputError, MarkdownSyntaxError, ParserError, ResourceLimitError
from adfmark.markdown_to_adf.ast_builder import AstBuilder, empty_document, paragraph_node, text_node
from adfmark.markdown_to_adf.frontmatter import extract_frontmatter, starts_with_frontmatter
from adfmark.markdown_to_adf.mdit_adf_alerts import alerts_plugin
from adfmark.markdown_to_adf.mdit_adf_fences import adf_fences_plugin
from adfmark.markdown_to_adf.mdit_adf_metadata import adf_metadata_plugin
from adfmark.markdown_to_adf.mdit_builder import MditAdfBuilder
from adfmark.markdown_to_adf.tokenizer import tokenize
from adfmark.models import Complexity, ParseStats

logger = logging.getLogger(LOGGER_NAME)

ADJACENT_COMMENTS_PATTERN = re.compile(r'-->[ \t]*<!--')
GLUED_TEXT_PATTERN = re.compile(r'-->(?=[^\s])')
STANDALONE_COMMENT_LINE_PATTERN = re.compile(r'^\s*<!--\s*/?adf:(?!unknown\b)')

SOCIAL_NODE_TYPES = frozenset({'mention', 'status', 'date', 'emoji', 'inlineCard'})
GFM_NODE_TYPES = frozenset({'table', 'tableRow', 'tableHeader', 'tableCell'})


def preprocess_markdown(markdown: str) -> str:
    """Normalizes line endings and puts adjacent standalone metadata comments on lines of their own."""
    lines = []
    for line in markdown.replace('\r\n', '\n').replace('\r', '\n').split('\n'):
        if STANDALONE_COMMENT_LINE_PATTERN.match(line):
            line = ADJACENT_COMMENTS_PATTERN.sub('-->\n<!--', line)
            line = GLUED_TEXT_PATTERN.sub('-->\n', line)
        lines.append(line)
    return '\n'.join(lines)


def fallback_document(markdown: str) -> dict:
    """The document returned when markdown can not be converted: one paragraph holding the input text."""
    document = empty_document()
    document['content'] = [paragraph_node([text_node(markdown)])]
    return document


def _walk(nodes: list, depth: int = 0):
    for node in nodes or []:
        if isinstance(node, dict):
            yield node
            yield from _walk(node.get('content') or [], depth + 1)


def document_stats(document: dict, has_frontmatter: bool = False) -> ParseStats:
    node_count = 0
    adf_block_count = 0
    has_gfm_features = False
    has_adf_extensions = False

    for node in _walk(document.get('content') or []):
        node_count += 1
        node_type = node.get('type')
        if node_type in ADF_FENCE_NODE_TYPES:
            adf_block_count += 1
            has_adf_extensions = True
        elif node_type in SOCIAL_NODE_TYPES:
            has_adf_extensions = True
        if node_type in GFM_NODE_TYPES:
            has_gfm_features = True
        if any(mark.get('type') == 'strike' for mark in node.get('marks') or []):
            has_gfm_features = True

    return ParseStats(
        node_count=node_count,
        complexity=Complexity.from_node_count(node_count),
        adf_block_count=adf_block_count,
        has_gfm_features=has_gfm_features,
        has_frontmatter=has_frontmatter,
        has_adf_extensions=has_adf_extensions,
    )


class MarkdownParser:
    """Converts extended markdown to ADF with the line tokenizer.

    In non-strict mode `parse` never raises, except for `ResourceLimitError`: inputs that can not be converted
    produce a document with a single paragraph holding the input text.
    """

    def __init__(self, options: ConversionOptions | dict | None = None):
        self.options = ConversionOptions.coerce(options)

    def parse(self, markdown: Any) -> dict:
        document, _ = self.parse_with_frontmatter(markdown)
        return document

    def parse_with_frontmatter(self, markdown: Any) -> tuple[dict, dict[str, Any] | None]:
        """Converts markdown to ADF.

        Args:
            markdown: the extended markdown text.

        Returns:
            A tuple with the ADF document and the parsed frontmatter, `None` when there is none.

        Raises:
            InvalidInputError: in strict mode, when `markdown` is not a string or is blank.
            ResourceLimitError: when the input exceeds the resource limits, in every mode.
            ParserError: in strict mode, when the markdown can not be converted.
        """
        if not isinstance(markdown, str):
            if self.options.strict:
                raise InvalidInputError(f'Expected markdown text, got {type(markdown).__name__}')
            logger.warning(f'Ignoring markdown input of type {type(markdown).__name__}')
            return empty_document(), None

        if not markdown.strip():
            if self.options.strict:
                raise InvalidInputError('The markdown input is empty')
            return empty_document(), None

        if len(markdown) > MAX_INPUT_LENGTH:
            raise ResourceLimitError(
                f'Input of {len(markdown)} characters exceeds the limit of {MAX_INPUT_LENGTH} characters'
            )

        try:
            return self._convert(preprocess_markdown(markdown))
        except ResourceLimitError:
            raise
        except ParserError as e:
            if self.options.strict:
                raise
            logger.warning(f'Unable to convert markdown: {e}')
        except Exception as e:
            if self.options.strict:
                raise MarkdownSyntaxError(f'Failed to parse markdown: {e}') from e
            logger.warning(f'Unable to convert markdown: {e}')
        return fallback_document(markdown), None

    def _convert(self, markdown: str) -> tuple[dict, dict[str, Any] | None]:
        tokens = tokenize(
            markdown,
            self.options.max_depth,
            frontmatter=self.options.frontmatter,
            adf_extensions=self.options.enable_adf_extensions,
        )
        builder = AstBuilder(self.options)
        return builder.build(tokens), builder.frontmatter

    def get_stats(self, markdown: str) -> ParseStats:
        document, frontmatter = self.parse_with_frontmatter(markdown)
        return document_stats(document, has_frontmatter=frontmatter is not None)

    async def parse_async(self, markdown: Any) -> dict:
        return self.parse(markdown)

    async def get_stats_async(self, markdown: str) -> ParseStats:
        return self.get_stats(markdown)


def create_markdown_it(options: ConversionOptions, frontmatter: bool = True) -> MarkdownIt:
    """Creates the markdown-it-py parser for `options`; `frontmatter=False` leaves out the frontmatter rule."""
    md = MarkdownIt('commonmark')
    if options.gfm:
        md.enable(['table', 'strikethrough'])
    if options.frontmatter and frontmatter:
        md.use(front_matter_plugin)
    if options.enable_adf_extensions:
        md.use(adf_fences_plugin).use(adf_metadata_plugin)
    md.use(alerts_plugin)
    return md


class EnhancedMarkdownParser(MarkdownParser):
    """Converts extended markdown to ADF with markdown-it-py and the ADF plugins.

    On top of the tokenizer grammar it understands the whole of CommonMark and GitHub alerts (`> [!NOTE]`), which
    become panels.
    """

    def __init__(self, options: ConversionOptions | dict | None = None):
        super().__init__(options)
        self.md = create_markdown_it(self.options)
        self.md_without_frontmatter = create_markdown_it(self.options, frontmatter=False)

    def _convert(self, markdown: str) -> tuple[dict, dict[str, Any] | None]:
        frontmatter = None
        if self.options.frontmatter and markdown.startswith('+++') and starts_with_frontmatter(markdown):
            frontmatter, markdown = extract_frontmatter(markdown, strict=self.options.strict)

        # the frontmatter rule would also take a document that opens with a thematic break
        md = self.md if starts_with_frontmatter(markdown) else self.md_without_frontmatter
        builder = MditAdfBuilder(self.options)
        document = builder.build(md.parse(markdown))
        return document, frontmatter if frontmatter is not None else builder.frontmatter


def create_parser(options: ConversionOptions | dict | None = None) -> MarkdownParser:
    """Returns the parser of the backend selected by `options.backend`."""
    options = ConversionOptions.coerce(options)
    if options.backend == 'markdown-it':
        return EnhancedMarkdownParser(options)
    return MarkdownParser(options)
