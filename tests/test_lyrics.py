"""Test lyrics sources and the resolver"""

import threading
import pytest
import requests
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

from nowplaying.lyrics.lrclib import LrclibProvider
from nowplaying.lyrics.lyricsovh import LyricsOvhProvider
from nowplaying.lyrics.resolver import LyricsCache, LyricsResolver, LyricsState, make_key

from conftest import FakeSource, SyncExecutor, make_snapshot


class TestLyricsCache:
    """Test the bounded cache"""

    def test_make_key(self):
        assert make_key(" Song ", "Artist  ") == "Song__Artist"
        assert make_key("song", "artist") != make_key("Song", "Artist")

    def test_evicts_oldest_inserted(self):
        cache = LyricsCache(capacity=3)
        for key in ("a", "b", "c"):
            cache.put(key, key.upper())

        # Reads do not refresh position
        assert cache.lookup("a") == (True, "A")
        cache.put("d", "D")

        assert cache.keys() == ["b", "c", "d"]
        assert "a" not in cache
        assert len(cache) == 3

    def test_negative_results_are_hits(self):
        cache = LyricsCache()
        cache.put("missing", None)
        assert cache.lookup("missing") == (True, None)
        assert cache.lookup("unknown") == (False, None)


def provider_with(cls, response=None, error=None, **kwargs):
    session = Mock()
    session.headers = {}
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return cls(session=session, **kwargs), session


class TestLrclibProvider:
    """Test the primary source"""

    def test_prefers_synced_lyrics(self, mock_response):
        provider, session = provider_with(LrclibProvider, mock_response(200, {
            'syncedLyrics': "[00:01.00] la", 'plainLyrics': "la",
        }))

        assert provider.search_lyrics("Song", "Artist", 215499) == "[00:01.00] la"

        _, kwargs = session.get.call_args
        assert kwargs['params'] == {'track_name': 'Song', 'artist_name': 'Artist', 'duration': 215}
        assert session.headers['User-Agent'] == "NowPlaying-Companion/1.0"

    def test_plain_lyrics_fallback(self, mock_response):
        provider, _ = provider_with(LrclibProvider, mock_response(200, {'syncedLyrics': None, 'plainLyrics': "words"}))
        assert provider.search_lyrics("Song", "Artist") == "words"

    def test_duration_rounding_and_omission(self, mock_response):
        provider, session = provider_with(LrclibProvider, mock_response(404, {}))

        provider.search_lyrics("Song", "Artist", 215500)
        assert session.get.call_args[1]['params']['duration'] == 216

        provider.search_lyrics("Song", "Artist", 0)
        assert 'duration' not in session.get.call_args[1]['params']

    @pytest.mark.parametrize("response_args", [
        (404, {'message': 'not found'}),
        (200, ValueError("bad json")),
        (200, {'syncedLyrics': '', 'plainLyrics': '   '}),
        (200, ["unexpected"]),
    ])
    def test_misses_are_none(self, mock_response, response_args):
        provider, _ = provider_with(LrclibProvider, mock_response(*response_args))
        assert provider.search_lyrics("Song", "Artist") is None

    def test_network_failure_is_none(self):
        provider, _ = provider_with(LrclibProvider, error=requests.ConnectionError("offline"))
        assert provider.search_lyrics("Song", "Artist") is None


class TestLyricsOvhProvider:
    """Test the fallback source"""

    def test_build_url_encodes_segments(self):
        provider = LyricsOvhProvider(base_url="https://api.lyrics.ovh/v1/")
        assert provider.build_url("Back in Black", "AC/DC") == "https://api.lyrics.ovh/v1/AC%2FDC/Back%20in%20Black"

    def test_search(self, mock_response):
        provider, session = provider_with(LyricsOvhProvider, mock_response(200, {'lyrics': "text"}))
        assert provider.search_lyrics("Song", "Artist", 1000) == "text"
        assert session.get.call_args[0][0].endswith("/Artist/Song")

    def test_failures_are_none(self, mock_response):
        provider, _ = provider_with(LyricsOvhProvider, mock_response(200, {'error': 'No lyrics found'}))
        assert provider.search_lyrics("Song", "Artist") is None

        provider, _ = provider_with(LyricsOvhProvider, error=requests.Timeout("slow"))
        assert provider.search_lyrics("Song", "Artist") is None


class TestResolve:
    """Test synchronous resolution"""

    def test_sources_consulted_in_order(self):
        primary = FakeSource()
        fallback = FakeSource({("Song", "Artist"): "fallback words"})
        resolver = LyricsResolver([primary, fallback], executor=SyncExecutor())

        assert resolver.resolve(" Song ", "Artist", 215000) == "fallback words"
        assert primary.calls == [("Song", "Artist", 215000)]
        assert fallback.calls == [("Song", "Artist", 215000)]

    def test_fallback_skipped_when_primary_finds(self):
        primary = FakeSource({("Song", "Artist"): "primary words"})
        fallback = FakeSource()
        resolver = LyricsResolver([primary, fallback], executor=SyncExecutor())

        assert resolver.resolve("Song", "Artist") == "primary words"
        assert fallback.calls == []

    def test_results_cached_including_misses(self):
        source = FakeSource()
        resolver = LyricsResolver([source], executor=SyncExecutor())

        assert resolver.resolve("Song", "Artist") is None
        assert resolver.resolve("Song", "Artist") is None
        assert len(source.calls) == 1
        assert resolver.get_stats()['cache_hits'] == 1

    def test_blank_inputs(self):
        source = FakeSource()
        resolver = LyricsResolver([source], executor=SyncExecutor())
        assert resolver.resolve("  ", "Artist") is None
        assert source.calls == []


class TestUpdateForSnapshot:
    """Test published lyrics state"""

    def test_fetch_and_publish(self):
        source = FakeSource({("Song", "Artist"): "words"})
        published = []
        resolver = LyricsResolver([source], on_change=published.append, executor=SyncExecutor())

        resolver.update_for_snapshot(make_snapshot())

        assert published == [LyricsState(None, True), LyricsState("words", False)]
        assert resolver.state == LyricsState("words", False)
        assert source.calls == [("Song", "Artist", 215000)]

    def test_same_track_fetched_once(self):
        source = FakeSource()
        resolver = LyricsResolver([source], executor=SyncExecutor())

        assert resolver.update_for_snapshot(make_snapshot(progress_ms=1000)) is not None
        for progress in range(2000, 6000, 1000):
            assert resolver.update_for_snapshot(make_snapshot(progress_ms=progress)) is None

        assert len(source.calls) == 1
        assert resolver.state == LyricsState(None, False)

    def test_cached_track_published_without_loading(self):
        source = FakeSource({("Song", "Artist"): "words", ("Other", "Artist"): "other words"})
        published = []
        resolver = LyricsResolver([source], on_change=published.append, executor=SyncExecutor())

        resolver.update_for_snapshot(make_snapshot())
        resolver.update_for_snapshot(make_snapshot(name="Other"))
        published.clear()

        assert resolver.update_for_snapshot(make_snapshot()) is None
        assert published == [LyricsState("words", False)]
        assert len(source.calls) == 2

    def test_no_track_clears_state(self):
        resolver = LyricsResolver([FakeSource()], executor=SyncExecutor())
        generation = resolver.generation

        resolver.update_for_snapshot(None)

        assert resolver.state == LyricsState(None, False)
        assert resolver.generation == generation + 1

    def test_lyrics_return_when_same_track_resumes(self):
        """Nothing playing in between must not leave the overlay empty"""
        source = FakeSource({("Song", "Artist"): "words"})
        published = []
        resolver = LyricsResolver([source], on_change=published.append, executor=SyncExecutor())

        resolver.update_for_snapshot(make_snapshot())
        resolver.update_for_snapshot(None)
        published.clear()

        assert resolver.update_for_snapshot(make_snapshot()) is None
        assert resolver.state == LyricsState("words", False)
        assert published == [LyricsState("words", False)]
        assert len(source.calls) == 1

    def test_reset_allows_refetch(self):
        source = FakeSource()
        resolver = LyricsResolver([source], cache_size=1, executor=SyncExecutor())
        resolver.update_for_snapshot(make_snapshot())
        resolver.cache.clear()
        resolver.reset()

        resolver.update_for_snapshot(make_snapshot())
        assert len(source.calls) == 2


class BlockingSource:
    """Holds every lookup until released"""

    name = "blocking"

    def __init__(self, results):
        self.results = results
        self.started = threading.Event()
        self.release = threading.Event()

    def search_lyrics(self, track, artist, duration_ms=None):
        self.started.set()
        assert self.release.wait(5)
        return self.results.get((track, artist))


class TestStaleResults:
    """Test that late results never overwrite a newer track"""

    def test_late_result_is_cached_but_not_published(self):
        source = BlockingSource({("Slow", "Artist"): "slow words"})
        executor = ThreadPoolExecutor(max_workers=1)
        resolver = LyricsResolver([source], executor=executor)
        resolver.cache.put(make_key("Fast", "Artist"), "fast words")

        future = resolver.update_for_snapshot(make_snapshot(name="Slow"))
        assert source.started.wait(5)
        assert resolver.state == LyricsState(None, True)

        resolver.update_for_snapshot(make_snapshot(name="Fast"))
        assert resolver.state == LyricsState("fast words", False)

        source.release.set()
        assert future.result(timeout=5) == "slow words"

        assert resolver.state == LyricsState("fast words", False)
        assert resolver.cache.lookup(make_key("Slow", "Artist")) == (True, "slow words")
        assert resolver.get_stats()['discarded'] == 1
        executor.shutdown(wait=True)

    def test_result_after_playback_stopped_is_discarded(self):
        source = BlockingSource({("Slow", "Artist"): "slow words"})
        executor = ThreadPoolExecutor(max_workers=1)
        resolver = LyricsResolver([source], executor=executor)

        future = resolver.update_for_snapshot(make_snapshot(name="Slow"))
        assert source.started.wait(5)
        resolver.update_for_snapshot(None)

        source.release.set()
        future.result(timeout=5)

        assert resolver.state == LyricsState(None, False)
        executor.shutdown(wait=True)

    def test_same_track_after_discarded_fetch_is_served_from_cache(self):
        source = BlockingSource({("Slow", "Artist"): "slow words"})
        executor = ThreadPoolExecutor(max_workers=1)
        resolver = LyricsResolver([source], executor=executor)

        future = resolver.update_for_snapshot(make_snapshot(name="Slow"))
        assert source.started.wait(5)
        resolver.update_for_snapshot(None)
        source.release.set()
        future.result(timeout=5)

        assert resolver.update_for_snapshot(make_snapshot(name="Slow")) is None
        assert resolver.state == LyricsState("slow words", False)
        executor.shutdown(wait=True)
