from contextvars import ContextVar
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from adfmark.constants import DEFAULT_MAX_DEPTH


class ConversionOptions(BaseModel):
    """Options that control a single conversion call, in either direction."""

    model_config = ConfigDict(validate_assignment=True, extra='forbid')

    strict: bool = False
    """If True, invalid input, validation failures and converter failures raise typed errors. If False (default) the
    conversion degrades gracefully and always returns a result."""
    preserve_unknown_nodes: bool = True
    """In non-strict mode, a node whose converter fails renders as `<!-- Unknown node: <type> -->` when True
    (default) and as an empty string when False."""
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1, le=50)
    """Maximum nesting depth for recursive re-tokenization of lists and blockquotes."""
    enable_adf_extensions: bool = True
    """If True (default), fence blocks, metadata comments and inline placeholders are recognized when parsing
    markdown."""
    gfm: bool = True
    """If True (default), GitHub Flavored Markdown tables and strikethrough are enabled in the markdown-it backend."""
    frontmatter: bool = True
    """If True (default), a leading YAML or TOML frontmatter block is recognized and parsed."""
    backend: Literal['tokenizer', 'markdown-it'] = 'tokenizer'
    """The Markdown to ADF front end: the built-in line tokenizer (default) or markdown-it-py."""
    validate_input: bool = True
    """If True (default), ADF input is run through the ADF validator before it is converted."""

    @classmethod
    def coerce(cls, value: 'ConversionOptions | dict[str, Any] | None') -> 'ConversionOptions':
        """Build options from an instance, a plain dictionary or `None`."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)


class ApplicationConfiguration(BaseSettings):
    """Process-wide defaults, used by the CLI and by `Parser` instances created without explicit options."""

    conversion: ConversionOptions = Field(default_factory=ConversionOptions)
    """Default conversion options."""
    log_file: str | None = None
    """Path to a file where log records are written as JSON lines. Unset by default."""
    log_level: str | None = 'WARNING'
    """The log level. Default is WARNING."""

    model_config = SettingsConfigDict(
        extra='allow',
        validate_assignment=True,
        env_prefix='ADFMARK_',
        env_nested_delimiter='__',
    )

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        if config_file := os.getenv('ADFMARK_CONFIG_FILE'):
            conf_file = Path(config_file).resolve()
            if conf_file.exists():
                return (
                    init_settings,
                    env_settings,
                    dotenv_settings,
                    YamlConfigSettingsSource(settings_cls, yaml_file=conf_file),
                )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
        )


CONFIGURATION: ContextVar[ApplicationConfiguration] = ContextVar('configuration')


def default_options() -> ConversionOptions:
    """Returns the conversion options of the active configuration, or the built-in defaults when none is set."""
    try:
        return CONFIGURATION.get().conversion
    except LookupError:
        return ConversionOptions()
