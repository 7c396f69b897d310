from __future__ import annotations

import pytest
from click.testing import CliRunner

from tests.helpers.doubles import RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    """Provide a sink that records each write separately."""

    return RecordingSink()


@pytest.fixture
def runner() -> CliRunner:
    """Provide a Click runner configured for CLI smoke tests."""

    return CliRunner()
