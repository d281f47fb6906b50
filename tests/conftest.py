"""Pytest configuration helpers for bundler tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the source directory is importable without requiring an editable install.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "bundler"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def build_log(tmp_path: Path) -> Path:
    """Send each test's build log to its own temporary file."""

    from utils import close_logging, init_logging

    log_path = tmp_path / "build.log"
    close_logging()
    init_logging(log_path)
    yield log_path
    close_logging()


@pytest.fixture
def schemas():
    """Schema lookup over the type trees embedded in the in-memory asset files."""

    from parsers import ClassSchemaRegistry

    return ClassSchemaRegistry()
