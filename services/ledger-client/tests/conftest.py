"""Pytest configuration for ledger-client tests.

Ensures the client's own src directory takes precedence in sys.path
to avoid module name collisions with other services, and that the
services root is importable for `shared`.
"""

import sys
from pathlib import Path

import pytest

SERVICES_ROOT = Path(__file__).resolve().parents[2]
SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
for path in (SERVICES_ROOT, SERVICE_SRC):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


@pytest.fixture
def anyio_backend():
    return "asyncio"
