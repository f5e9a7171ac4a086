"""Shared fakes for the modem and the homeserver.

Both sides are reached through `aiohttp.ClientSession.request(...)` used as an async context manager, so a
MagicMock whose `request` hands out pre-baked responses is enough to stand in for either.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from notify.store import ConfigDir, JsonSessionStore
from util.config import Opts, RemediationRequest, Thresholds

FIXTURES = Path(__file__).parent / "fixtures"


def _response(status=200, text="", json_body=None):
    resp = MagicMock()
    resp.status = status
    resp.text = AsyncMock(return_value=text)
    resp.json = AsyncMock(return_value=json_body)
    return resp


def _client_session(*responses):
    """A ClientSession whose request() returns `responses` in order. Exceptions are raised instead."""
    cs = MagicMock()
    side_effects = []
    for r in responses:
        if isinstance(r, BaseException):
            side_effects.append(r)
            continue
        ctx = MagicMock()
        ctx.__aenter__.return_value = r
        side_effects.append(ctx)
    cs.request.side_effect = side_effects
    cs.close = AsyncMock()
    return cs


@pytest.fixture
def response():
    return _response


@pytest.fixture
def fake_http():
    return _client_session


@pytest.fixture
def status_page() -> str:
    return (FIXTURES / "status_page.html").read_text()


@pytest.fixture
def config_dir(tmp_path) -> ConfigDir:
    return ConfigDir(tmp_path / "config")


@pytest.fixture
def store(tmp_path) -> JsonSessionStore:
    return JsonSessionStore.in_cache_dir(tmp_path / "cache")


@pytest.fixture
def make_opts(tmp_path):
    def _make(**overrides) -> Opts:
        params = {
            "modem_url": "http://192.168.100.1/",
            "homeserver": "https://matrix.example.org/",
            "thresholds": Thresholds(correctable_threshold=100_000, uncorrectable_threshold=1000),
            "remediation": RemediationRequest(),
            "notify": True,
            "config_dir": tmp_path / "config",
            "cache_dir": tmp_path / "cache",
            "grace_seconds": 0,
        }
        params.update(overrides)
        return Opts(**params)

    return _make
