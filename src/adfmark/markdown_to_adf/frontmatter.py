import logging
import re
import tomllib
from typing import Any

import yaml

from adfmark.constants import FRONTMATTER_LOOKAHEAD_LINES, LOGGER_NAME
from adfmark.exceptions import FrontmatterError

logger = logging.getLogger(LOGGER_NAME)

FRONTMATTER_PATTERN = re.compile(r'\A(---|\+\+\+)[ \t]*\n(.*?)\n\1[ \t]*(?:\n|\Z)', re.DOTALL)


def parse_frontmatter(content: str, language: str = 'yaml', strict: bool = False) -> dict[str, Any] | None:
    """Parses the body of a frontmatter block.

    Args:
        content: the text between the delimiters.
        language: `yaml` for `---` delimiters, `toml` for `+++`.
        strict: if True, parse failures raise `FrontmatterError`; otherwise they are logged and `None` is returned.

    Returns:
        The frontmatter mapping, or `None` when it could not be parsed or is not a mapping.
    """
    try:
        if language == 'toml':
            data = tomllib.loads(content)
        else:
            data = yaml.safe_load(content)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        if strict:
            raise FrontmatterError(f'Unable to parse {language} frontmatter: {e}') from e
        logger.warning(f'Ignoring invalid {language} frontmatter', extra={'error': str(e)})
        return None

    if data is None:
        return {}
    if not isinstance(data, dict):
        if strict:
            raise FrontmatterError(f'The {language} frontmatter must be a mapping')
        logger.warning(f'Ignoring {language} frontmatter that is not a mapping')
        return None
    return data


def extract_frontmatter(markdown: str, strict: bool = False) -> tuple[dict[str, Any] | None, str]:
    """Splits a leading frontmatter block off `markdown`.

    Returns:
        A tuple with the parsed frontmatter (`None` when there is none or it is invalid) and the remaining markdown.
    """
    match = FRONTMATTER_PATTERN.match(markdown)
    if not match or match.group(2).count('\n') > FRONTMATTER_LOOKAHEAD_LINES:
        return None, markdown
    language = 'toml' if match.group(1) == '+++' else 'yaml'
    return parse_frontmatter(match.group(2), language, strict=strict), markdown[match.end() :]


def starts_with_frontmatter(markdown: str) -> bool:
    """Whether `markdown` opens with a frontmatter block.

    The opening delimiter has to be followed by a non-blank line and closed within `FRONTMATTER_LOOKAHEAD_LINES`
    lines. A leading `---` followed by a blank line is a thematic break.
    """
    lines = markdown.split('\n', FRONTMATTER_LOOKAHEAD_LINES + 2)
    delimiter = lines[0].rstrip()
    if delimiter not in ('---', '+++') or len(lines) < 2 or not lines[1].strip():
        return False
    return any(line.rstrip() == delimiter for line in lines[1 : FRONTMATTER_LOOKAHEAD_LINES + 2])
