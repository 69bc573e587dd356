"""
Pytest fixtures: a fresh SQLite database per test and a frozen ingestion clock.
"""

from __future__ import annotations

import pytest

from coin_indexer.db import db, ensure_schema
from tests.builders import FROZEN_NOW


@pytest.fixture
def conn(tmp_path):
    """Schema-initialised SQLite connection in a temp dir."""
    c = db(str(tmp_path / "coin_index.sqlite"))
    ensure_schema(c)
    yield c
    c.close()


@pytest.fixture
def clock():
    return lambda: FROZEN_NOW
