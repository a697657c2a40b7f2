import json
from pathlib import Path

import pytest

from adfmark.config import CONFIGURATION, ApplicationConfiguration, ConversionOptions


@pytest.fixture(autouse=True)
def mock_configuration():
    config = ApplicationConfiguration(
        conversion=ConversionOptions(),
        log_file=None,
        log_level='WARNING',
    )

    token = CONFIGURATION.set(config)

    yield config

    CONFIGURATION.reset(token)


def load_fixture(filename: str):
    fixture_path = Path(__file__).parent / 'fixtures' / filename
    with fixture_path.open(encoding='utf-8') as f:
        return json.load(f)


@pytest.fixture
def release_notes_adf():
    return load_fixture('release_notes.json')


@pytest.fixture
def release_notes_markdown():
    """The extended markdown of `release_notes.json`."""
    return '\n'.join(
        [
            '# Release notes',
            '',
            "Shipped by {user:557058:abc} <!-- adf:mention attrs='{\"text\": \"@Ann\"}' --> on {date:2024-01-15} "
            '{status:Done|color:green}',
            '',
            '**bold** and [docs](https://example.com)',
            '',
            '~~~panel type=warning',
            'Mind the gap',
            '~~~',
            '',
            '- first',
            '- second',
            '',
            '```python',
            "print('hi')",
            '```',
            '',
            '| Name | Value |',
            '| -------- | -------- |',
            '| a | 1 |',
            '',
            '---',
        ]
    )


@pytest.fixture
def media_adf():
    return load_fixture('media_and_extension.json')


@pytest.fixture
def strict_options():
    return ConversionOptions(strict=True)
