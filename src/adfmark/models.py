import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from adfmark.constants import MODERATE_COMPLEXITY_THRESHOLD, SIMPLE_COMPLEXITY_THRESHOLD


def custom_as_dict_factory(data) -> dict:
    def convert_value(obj):
        if isinstance(obj, Enum):
            return obj.value
        return obj

    return {k: convert_value(v) for k, v in data if v is not None}


class BaseModel:
    def as_dict(self) -> dict:
        """Dumps dataclass into dictionary.

        Enum members are dumped as their values and unset (`None`) fields are omitted.
        """

        return dataclasses.asdict(self, dict_factory=custom_as_dict_factory)


class TokenType(Enum):
    """The block and inline token kinds produced by the markdown tokenizer."""

    PARAGRAPH = 'paragraph'
    HEADING = 'heading'
    CODE_BLOCK = 'code_block'
    ADF_BLOCK = 'adf_block'
    UNKNOWN_BLOCK = 'unknown_block'
    METADATA_COMMENT = 'metadata_comment'
    TABLE = 'table'
    TABLE_ROW = 'table_row'
    TABLE_CELL = 'table_cell'
    LIST = 'list'
    LIST_ITEM = 'list_item'
    BLOCKQUOTE = 'blockquote'
    RULE = 'rule'
    FRONTMATTER = 'frontmatter'
    TEXT = 'text'
    STRONG = 'strong'
    EMPHASIS = 'emphasis'
    UNDERLINE = 'underline'
    STRIKE = 'strike'
    CODE = 'code'
    LINK = 'link'
    IMAGE = 'image'
    HTML_MARK = 'html_mark'
    HARD_BREAK = 'hard_break'
    INLINE_COMMENT = 'inline_comment'
    INLINE_UNKNOWN = 'inline_unknown'


@dataclass(frozen=True)
class Position:
    line: int
    """1-based line number of the first source line consumed."""
    column: int
    """1-based column."""
    offset: int
    """0-based character offset into the tokenized text."""


@dataclass
class TokenMetadata:
    node_type: str
    attrs: dict[str, Any] = field(default_factory=dict)


@dataclass
class Token(BaseModel):
    type: TokenType
    content: str
    position: Position
    raw: str
    children: list['Token'] = field(default_factory=list)
    metadata: TokenMetadata | None = None
    ordered: bool | None = None
    """Lists only."""
    start: int | None = None
    """Ordered lists only: the number of the first item."""
    column_alignments: list[str | None] | None = None
    """Tables only: `left`, `center`, `right` or `None` per column."""
    fence_type: str | None = None
    """ADF fence blocks only: the node type named after `~~~`."""
    attributes: dict[str, Any] | None = None
    """ADF fence blocks, headings and links: parsed attributes."""
    language: str | None = None
    """Code blocks only."""
    is_header: bool | None = None
    """Table rows only."""


@dataclass
class ValidationIssue(BaseModel):
    message: str
    path: list[str | int] | None = None
    code: str | None = None
    line: int | None = None


@dataclass
class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ConversionResult(BaseModel):
    markdown: str
    warnings: list[str] = field(default_factory=list)


class Complexity(Enum):
    SIMPLE = 'simple'
    MODERATE = 'moderate'
    COMPLEX = 'complex'

    @classmethod
    def from_node_count(cls, node_count: int) -> 'Complexity':
        if node_count < SIMPLE_COMPLEXITY_THRESHOLD:
            return cls.SIMPLE
        if node_count < MODERATE_COMPLEXITY_THRESHOLD:
            return cls.MODERATE
        return cls.COMPLEX


@dataclass
class ParseStats(BaseModel):
    node_count: int
    complexity: Complexity
    adf_block_count: int = 0
    has_gfm_features: bool = False
    has_frontmatter: bool = False
    has_adf_extensions: bool = False
