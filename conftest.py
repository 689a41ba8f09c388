"""Pytest configuration — ensures the project root is importable."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from proposal_validator.models import TemplateContext  # noqa: E402


@pytest.fixture
def context() -> TemplateContext:
    """Fixed "now" (2024-09-18 UTC) so date-driven results never depend on the wall clock."""
    return TemplateContext(current_date=datetime(2024, 9, 18, 15, 30, tzinfo=timezone.utc))


@pytest.fixture(autouse=True)
def _no_dataset_config_from_env(monkeypatch):
    """Keep a developer's .env from leaking a dataset config into the suite."""
    monkeypatch.delenv("PROPOSAL_VALIDATOR_DATASET_CONFIG", raising=False)
