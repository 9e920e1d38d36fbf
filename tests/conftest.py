"""Shared fixtures: fake aiohttp responses and recorded API pages."""
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _response(status=200, body=None, headers=None):
    """Fake aiohttp response usable as ``async with session.request(...)``."""
    if body is None:
        text = ""
    elif isinstance(body, str):
        text = body
    else:
        text = json.dumps(body)

    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


@pytest.fixture
def make_response():
    return _response


@pytest.fixture
def load_fixture():
    def load(name):
        return json.loads((FIXTURES_DIR / name).read_text())
    return load


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's real credentials out of every test."""
    for name in (
        "DRMM_API_KEY",
        "DRMM_API_SECRET",
        "DRMM_API_URL",
        "DRMM_MAX_RETRIES",
        "DRMM_RETRY_DELAY",
        "DRMM_LOG_FILE",
        "DRMM_EVENT_LOG",
        "DRMM_VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)
