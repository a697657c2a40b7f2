import json
import logging
from pathlib import Path
import sys
from typing import Any, Callable, NoReturn, TextIO

import click
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from rich.console import Console
from rich.markup import escape

from adfmark.api import Parser
from adfmark.config import CONFIGURATION, ApplicationConfiguration, ConversionOptions
from adfmark.constants import LOGGER_NAME
from adfmark.exceptions import ParserError
from adfmark.models import ValidationResult
from adfmark.utils.json_utils import safe_json_dumps

console = Console()
logger = logging.getLogger(LOGGER_NAME)

ADF_FILE_SUFFIXES = ('.json', '.adf')


def setup_logging(settings: ApplicationConfiguration) -> None:
    logger.setLevel(settings.log_level or logging.WARNING)
    if not settings.log_file:
        return

    try:
        fh = logging.FileHandler(Path(settings.log_file).resolve())
    except Exception as e:
        console.print(f'[yellow]Failed to create log file handler:[/yellow] {escape(str(e))}')
    else:
        fh.setLevel(settings.log_level or logging.WARNING)
        fh.setFormatter(JsonFormatter('%(asctime)s %(levelname)s %(message)s %(lineno)s %(module)s %(pathname)s '))
        logger.addHandler(fh)


def load_settings(log_file: str | None) -> ApplicationConfiguration:
    try:
        settings = ApplicationConfiguration()
    except ValidationError as e:
        console.print('Configuration validation error. Make sure your config file is correct.')
        for _e in e.errors():
            if location := _e.get('loc'):
                console.print(f'Configuration error at {location[0]}: {_e.get("msg")}')
            else:
                console.print(f'Configuration error: {_e.get("msg")}')
        sys.exit(1)

    if log_file:
        settings.log_file = log_file
    CONFIGURATION.set(settings)
    setup_logging(settings)
    return settings


def build_options(
    settings: ApplicationConfiguration, strict: bool | None, backend: str | None, max_depth: int | None
) -> ConversionOptions:
    overrides: dict[str, Any] = {}
    if strict is not None:
        overrides['strict'] = strict
    if backend is not None:
        overrides['backend'] = backend
    if max_depth is not None:
        overrides['max_depth'] = max_depth
    return settings.conversion.model_copy(update=overrides)


def print_output(text: str) -> None:
    console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)


def fail(message: str, error: Exception | None = None) -> NoReturn:
    if error is None:
        console.print(f'[bold red]{message}[/bold red]')
    else:
        console.print(f'[bold red]{message}:[/bold red] {escape(str(error))}')
    sys.exit(1)


def conversion_options(command: Callable) -> Callable:
    """Adds the options shared by every command."""
    command = click.option(
        '--log-file',
        default=None,
        type=click.Path(dir_okay=False),
        help='Write log records as JSON lines to this file.',
    )(command)
    command = click.option(
        '--max-depth',
        default=None,
        type=click.IntRange(1, 50),
        help='Maximum nesting depth for lists, blockquotes and fence blocks.',
    )(command)
    command = click.option(
        '--backend',
        default=None,
        type=click.Choice(['tokenizer', 'markdown-it']),
        help='The markdown parser used to build ADF.',
    )(command)
    command = click.option(
        '--strict/--no-strict',
        default=None,
        help='Fail on invalid input instead of degrading gracefully.',
    )(command)
    return command


@click.group()
def cli():
    """Converts between Atlassian Document Format and extended markdown."""


@cli.command('to-markdown')
@click.argument('file', type=click.File('r', encoding='utf-8'))
@conversion_options
def to_markdown(
    file: TextIO,
    strict: bool | None = None,
    backend: str | None = None,
    max_depth: int | None = None,
    log_file: str | None = None,
):
    """Converts the ADF document in FILE (or - for standard input) to extended markdown."""
    settings = load_settings(log_file)
    options = build_options(settings, strict, backend, max_depth)

    try:
        adf = json.loads(file.read())
    except ValueError as e:
        fail('Invalid JSON', e)

    try:
        markdown = Parser(options).adf_to_markdown(adf)
    except ParserError as e:
        fail('Conversion failed', e)
    print_output(markdown)


@cli.command('to-adf')
@click.argument('file', type=click.File('r', encoding='utf-8'))
@click.option('--indent', default=2, type=click.IntRange(0, 8), help='Indentation of the JSON output.')
@conversion_options
def to_adf(
    file: TextIO,
    indent: int = 2,
    strict: bool | None = None,
    backend: str | None = None,
    max_depth: int | None = None,
    log_file: str | None = None,
):
    """Converts the extended markdown in FILE (or - for standard input) to an ADF document."""
    settings = load_settings(log_file)
    options = build_options(settings, strict, backend, max_depth)

    try:
        document = Parser(options).markdown_to_adf(file.read())
    except ParserError as e:
        fail('Conversion failed', e)
    print_output(safe_json_dumps(document, indent=indent or None))


@cli.command('validate')
@click.argument('file', type=click.File('r', encoding='utf-8'))
@click.option(
    '--format',
    'input_format',
    default='auto',
    type=click.Choice(['auto', 'adf', 'markdown']),
    help='The format of FILE. By default files ending in .json or .adf are ADF and anything else is markdown.',
)
@conversion_options
def validate(
    file: TextIO,
    input_format: str = 'auto',
    strict: bool | None = None,
    backend: str | None = None,
    max_depth: int | None = None,
    log_file: str | None = None,
):
    """Validates the ADF document or extended markdown in FILE (or - for standard input)."""
    settings = load_settings(log_file)
    parser = Parser(build_options(settings, strict, backend, max_depth))
    text = file.read()

    if input_format == 'auto':
        input_format = 'adf' if str(file.name).lower().endswith(ADF_FILE_SUFFIXES) else 'markdown'

    if input_format == 'adf':
        try:
            result = parser.validate_adf(json.loads(text))
        except ValueError as e:
            fail('Invalid JSON', e)
    else:
        result = parser.validate_markdown(text)

    print_validation_result(result)
    if not result.valid:
        sys.exit(1)


def print_validation_result(result: ValidationResult) -> None:
    for error in result.errors:
        if error.line is not None:
            location = f'line {error.line}: '
        elif error.path:
            location = f'{"/".join(str(part) for part in error.path)}: '
        else:
            location = ''
        code = f' [dim]({error.code})[/dim]' if error.code else ''
        console.print(f'[red]error[/red] {escape(location + error.message)}{code}')
    for warning in result.warnings:
        console.print(f'[yellow]warning[/yellow] {escape(warning)}')
    if result.valid:
        console.print('[bold green]Valid[/bold green]')
    else:
        console.print(f'[bold red]Invalid:[/bold red] {len(result.errors)} error(s)')


def adfmark_cli():
    cli()


if __name__ == '__main__':
    adfmark_cli()
