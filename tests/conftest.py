"""
Shared pytest fixtures.

Every fixture works in a temporary directory, nothing touches the real database.
"""

import sys
from pathlib import Path

# Add project root to sys.path so `src.*` imports work without installing
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import shutil
import tempfile
from typing import Generator

import pytest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary directory, removed after the test."""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)
