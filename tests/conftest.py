"""Pytest configuration and fixtures."""

import os
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest

# Keep logs and config out of the real home directory
_XDG_ROOT = Path(tempfile.mkdtemp(prefix='lizzy-tests-'))
os.environ['XDG_CONFIG_HOME'] = str(_XDG_ROOT / 'config')
os.environ['XDG_DATA_HOME'] = str(_XDG_ROOT / 'data')
os.environ['XDG_RUNTIME_DIR'] = str(_XDG_ROOT / 'run')

# Mock GLib before imports; the main loop is never run in tests
sys.modules['gi'] = MagicMock()
sys.modules['gi.repository'] = MagicMock()
sys.modules['gi.repository.GLib'] = MagicMock()

from lizzy.registry import PlayerRegistry  # noqa: E402


SPOTIFY = 'org.mpris.MediaPlayer2.spotify'
FIREFOX = 'org.mpris.MediaPlayer2.firefox.instance3'
MPV = 'org.mpris.MediaPlayer2.mpv'


class FakeClock:
    """Monotonic clock that advances one tick per call."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        self.now += 1.0
        return self.now


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return PlayerRegistry(clock=clock)


@pytest.fixture
def mock_connection():
    """Stand-in for BusConnection recording outbound calls."""
    connection = Mock()
    connection.list_names.return_value = []
    connection.get_name_owner.return_value = None
    return connection


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Config rooted in a temporary XDG tree."""
    from lizzy.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    monkeypatch.setattr(Config, '_instance', None)
    return Config.get_instance()


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_XDG_ROOT, ignore_errors=True)
