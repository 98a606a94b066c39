"""
Root pytest configuration and fixtures for chatlog.

Provides engines, bridge clients and streaming-response helpers shared by
the unit and integration suites.
"""

import json
from pathlib import Path
import sys
from unittest.mock import MagicMock

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chatlog import ChatLog, TranscriptEngine  # noqa: E402
from chatlog._http import HTTPClient  # noqa: E402
from chatlog.timers import ElapsedTimer  # noqa: E402


@pytest.fixture
def base_url():
    """Test bridge URL."""
    return "http://bridge.test"


@pytest.fixture
def token():
    return "test-token-12345"


@pytest.fixture
def http(base_url, token):
    return HTTPClient(base_url=base_url, token=token, timeout=5)


@pytest.fixture
def client(base_url, token):
    return ChatLog(base_url=base_url, token=token, timeout=5)


@pytest.fixture
def timer():
    """Elapsed timer double so engine tests never start threads."""
    mock = MagicMock(spec=ElapsedTimer)
    mock.display.return_value = "0s"
    return mock


@pytest.fixture
def engine(timer):
    return TranscriptEngine(timer=timer)


@pytest.fixture
def sse_lines():
    """Build the decoded lines of an SSE body from payloads (dicts or raw strings)."""

    def _build(*payloads):
        lines = []
        for payload in payloads:
            data = payload if isinstance(payload, str) else json.dumps(payload)
            lines.extend([f"data: {data}", ""])
        return lines

    return _build


@pytest.fixture
def stream_response():
    """Mock streaming response whose iter_lines yields the given lines."""

    def _make(lines):
        resp = MagicMock()
        resp.iter_lines.return_value = iter(lines)
        resp.close = MagicMock()
        return resp

    return _make
