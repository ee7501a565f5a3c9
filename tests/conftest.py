"""Pytest configuration shared across the test suite."""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import pytest

from tests.helpers import FakePool


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()
