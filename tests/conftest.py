"""Test configuration and fixtures"""

import pytest
import tempfile
from concurrent.futures import Executor, Future
from pathlib import Path
from unittest.mock import Mock

from nowplaying.config.settings import Settings
from nowplaying.config.store import JsonStore
from nowplaying.spotify.models import PlaybackSnapshot


CLIENT_ID = "0123456789abcdef0123456789abcdef"

ENV_VARS = ('SPOTIFY_CLIENT_ID', 'NOWPLAYING_REDIRECT_PORT', 'NOWPLAYING_STORE_PATH', 'NOWPLAYING_LOG_LEVEL')


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def settings(temp_dir, monkeypatch):
    """Settings isolated from the user's home directory and environment"""
    monkeypatch.setenv('HOME', str(temp_dir))
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    settings = Settings(config_path=str(temp_dir / "missing.yaml"), create_directories=False)
    settings.security.config_directory = str(temp_dir)
    settings.security.store_path = str(temp_dir / "store.json")
    return settings


@pytest.fixture
def store(temp_dir):
    return JsonStore(temp_dir / "store.json")


def track_payload(name="Song", artist="Artist", duration_ms=215000, is_playing=True, progress_ms=42000):
    """Currently-playing payload as returned by the Web API"""
    return {
        'is_playing': is_playing,
        'progress_ms': progress_ms,
        'item': {
            'id': 'track_123',
            'name': name,
            'duration_ms': duration_ms,
            'artists': [{'id': 'artist_123', 'name': artist}],
            'album': {
                'name': 'Album',
                'images': [
                    {'url': 'https://i.scdn.co/640', 'width': 640, 'height': 640},
                    {'url': 'https://i.scdn.co/300', 'width': 300, 'height': 300},
                    {'url': 'https://i.scdn.co/64', 'width': 64, 'height': 64},
                ],
            },
        },
    }


def make_snapshot(**kwargs) -> PlaybackSnapshot:
    return PlaybackSnapshot.from_spotify_data(track_payload(**kwargs))


@pytest.fixture
def sample_now_playing():
    """Sample currently-playing payload for testing"""
    return track_payload()


class ScheduledCall:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler that only runs callbacks when the test says so"""

    def __init__(self):
        self.calls = []

    def call_later(self, delay, callback):
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    def pending(self):
        return [call for call in self.calls if not call.cancelled and not call.fired]

    def run_next(self):
        call = self.pending()[0]
        call.fired = True
        call.callback()
        return call

    @property
    def last_delay(self):
        return self.calls[-1].delay if self.calls else None


@pytest.fixture
def scheduler():
    return ManualScheduler()


class SyncExecutor(Executor):
    """Runs submitted work inline"""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeSource:
    """Lyrics source returning canned results and recording lookups"""

    def __init__(self, results=None, name="fake"):
        self.results = results or {}
        self.name = name
        self.calls = []

    def search_lyrics(self, track, artist, duration_ms=None):
        self.calls.append((track, artist, duration_ms))
        return self.results.get((track, artist))


@pytest.fixture
def mock_response():
    """Factory for requests.Response stand-ins"""
    def factory(status_code=200, json_data=None, text=""):
        response = Mock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        response.text = text
        if isinstance(json_data, Exception):
            response.json.side_effect = json_data
        else:
            response.json.return_value = json_data
        return response
    return factory
