# tests/conftest.py
"""
Pytest configuration and fixtures.
Adds the project root to sys.path so `import broker` / `import common` work
without an editable install.
"""

import sys
from pathlib import Path

import aio_pika
import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from tests.fakes import FakeBroker, FakePublisher  # noqa: E402


@pytest.fixture
def fake_broker(monkeypatch):
    """Route aio_pika.connect / connect_robust to an in-memory broker."""
    broker = FakeBroker()
    monkeypatch.setattr(aio_pika, "connect", broker.connect)
    monkeypatch.setattr(aio_pika, "connect_robust", broker.connect_robust)
    return broker


@pytest.fixture
def fake_publisher():
    return FakePublisher()
