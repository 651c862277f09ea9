import os
import sys

import pytest

# Add repo root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from tests.fakes import FakeClock, FakeContentSource, FakeTransport


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def content():
    return FakeContentSource()
