LOGGER_NAME = 'adfmark'
"""Library logger name identifier."""

LOG_FILE_FILE_NAME = 'adfmark.log'
"""Default log file name used by the CLI."""

ADF_VERSION = 1
"""The ADF document version produced by the Markdown to ADF direction."""

MAX_INPUT_LENGTH = 1_000_000
"""The maximum number of characters accepted by the markdown tokenizer. Larger inputs are always rejected."""

MAX_TOKENIZER_ITERATIONS = 10_000
"""Hard cap on the number of iterations of the block tokenizer loop."""

MAX_TOKENS = 10_000
"""Hard cap on the number of tokens emitted by a single tokenizer call."""

DEFAULT_MAX_DEPTH = 5
"""Default bound for nested list and blockquote re-tokenization."""

FRONTMATTER_LOOKAHEAD_LINES = 20
"""A leading `---` is treated as frontmatter only when it is closed within this many lines."""

VALIDATOR_FRONTMATTER_SCAN_LINES = 50
"""Number of lines the markdown validator scans looking for a closing frontmatter delimiter."""

ADF_FENCE_NODE_TYPES = frozenset({'panel', 'expand', 'nestedExpand', 'mediaSingle', 'mediaGroup'})
"""Node types that are represented as `~~~type` fence blocks."""

PANEL_TYPES = ('info', 'warning', 'error', 'success', 'note')
"""Valid values of the `panelType` attribute of a panel."""

DEFAULT_PANEL_TYPE = 'info'
"""Panel type used when a panel fence does not declare one."""

STATUS_COLORS = ('neutral', 'purple', 'blue', 'red', 'yellow', 'green')
"""Valid values of the `color` attribute of a status node."""

DEFAULT_STATUS_COLOR = 'neutral'
"""Status color used when the color is missing or not one of `STATUS_COLORS`."""

DEFAULT_MEDIA_TYPE = 'file'
"""Media type used when an `adf:media:<id>` reference does not declare one."""

INLINE_CONTAINER_TYPES = frozenset({'paragraph', 'heading'})
"""Node types whose children are rendered on a single logical line."""

SIMPLE_COMPLEXITY_THRESHOLD = 10
"""Documents with fewer nodes than this are reported as `simple`."""

MODERATE_COMPLEXITY_THRESHOLD = 50
"""Documents with fewer nodes than this (and not simple) are reported as `moderate`."""

RECOVERY_MAX_RETRIES = 3
"""Default number of attempts made by the error recovery manager."""

RECOVERY_RETRY_DELAY = 0.1
"""Default delay between recovery attempts, in seconds."""

DEFAULT_MEDIA_SINGLE_LAYOUT = 'center'
"""Layout given to a `mediaSingle` built from markdown that does not declare one."""

TABLE_DEFAULT_ATTRIBUTES = {'isNumberColumnEnabled': False, 'layout': 'default'}
"""Table attributes that are implied by a plain pipe table and therefore never written to markdown."""

MAX_INLINE_DEPTH = 32
"""Nesting bound for inline formatting; deeper spans are kept as plain text."""

TABLE_CELL_TYPES = frozenset({'tableCell', 'tableHeader'})
"""Node types whose content is written on a single pipe table line."""

MAX_TABLE_COLUMNS = 1000
"""Upper bound on the columns a single `colspan` expands to in a pipe table."""
