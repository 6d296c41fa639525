"""
Lyrics resolution with a bounded cache and stale-result protection

The resolver maps (track, artist, duration) to lyric text by consulting its
sources in order (LRCLIB first, lyrics.ovh second) and memoizes the outcome,
including "nothing found", under the key ``"<track>__<artist>"``.

Two entry points:

- ``resolve()``: synchronous cache-through lookup, used for one-off requests.
- ``update_for_snapshot()``: drives the published lyrics state from the poll
  loop. Fetches run on a single background worker so the poll cycle never
  waits for them.

Stale-result protection:

Every change of the published track advances a generation counter. A fetch
captures the counter when it starts and, once finished, publishes only if
the counter has not moved. A slow fetch for a track the user already skipped
still fills the cache under its own key but never reaches the lyrics surface.

Repeated polls of the same track are absorbed by a same-key fast path: as
long as the key is unchanged no lookup happens, even when the previous
outcome was "nothing found".
"""

import threading
from collections import OrderedDict
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..spotify.models import PlaybackSnapshot
from ..utils.logger import get_logger


DEFAULT_CACHE_SIZE = 80


def make_key(track: str, artist: str) -> str:
    """Composite cache key; case-sensitive, surrounding whitespace ignored"""
    return f"{track.strip()}__{artist.strip()}"


class LyricsCache:
    """
    Insertion-ordered bounded map from track key to lyrics (or None)

    Beyond ``capacity`` entries the oldest inserted entry is evicted. Reads
    do not refresh an entry's position.
    """

    def __init__(self, capacity: int = DEFAULT_CACHE_SIZE):
        self.capacity = max(1, capacity)
        self._entries: 'OrderedDict[str, Optional[str]]' = OrderedDict()

    def lookup(self, key: str) -> Tuple[bool, Optional[str]]:
        """
        Returns:
            (hit, lyrics); a hit may carry None for "nothing found"
        """
        if key in self._entries:
            return True, self._entries[key]
        return False, None

    def put(self, key: str, lyrics: Optional[str]) -> None:
        self._entries[key] = lyrics
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def clear(self) -> None:
        self._entries.clear()


@dataclass(frozen=True)
class LyricsState:
    """Published lyrics state: text (None = none/unknown) and loading flag"""
    lyrics: Optional[str] = None
    loading: bool = False


class LyricsResolver:
    """
    Multi-source lyrics lookup with caching and generation-guarded publishing

    Attributes:
        sources: Objects with ``search_lyrics(track, artist, duration_ms)``,
                 consulted in order until one returns text
        cache: Bounded result cache
        on_change: Called with the new LyricsState whenever it is published
    """

    def __init__(
        self,
        sources: List[Any],
        cache_size: int = DEFAULT_CACHE_SIZE,
        on_change: Optional[Callable[[LyricsState], None]] = None,
        executor: Optional[Executor] = None
    ):
        self.sources = list(sources)
        self.cache = LyricsCache(cache_size)
        self.on_change = on_change
        self.logger = get_logger(__name__)

        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="lyrics")
        self._owns_executor = executor is None

        # Guards cache, generation and published state; re-entrant so that
        # on_change may read back the state while a publish is in progress
        self._lock = threading.RLock()
        self._generation = 0
        self._last_key = ""
        self._state = LyricsState()

        self._stats = {'lookups': 0, 'cache_hits': 0, 'found': 0, 'not_found': 0, 'discarded': 0}

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> LyricsState:
        with self._lock:
            return self._state

    def _fetch(self, track: str, artist: str, duration_ms: Optional[int]) -> Optional[str]:
        for source in self.sources:
            lyrics = source.search_lyrics(track, artist, duration_ms)
            if lyrics:
                self.logger.debug(f"Lyrics for '{artist} - {track}' found via {getattr(source, 'name', source)}")
                return lyrics
            self.logger.debug(f"No lyrics for '{artist} - {track}' from {getattr(source, 'name', source)}")
        return None

    def _store(self, key: str, lyrics: Optional[str]) -> None:
        with self._lock:
            self.cache.put(key, lyrics)
            self._stats['found' if lyrics else 'not_found'] += 1

    def resolve(self, track: str, artist: str, duration_ms: Optional[int] = None) -> Optional[str]:
        """
        Return lyrics for a track, from cache when possible

        Args:
            track: Track title
            artist: Primary artist name
            duration_ms: Track length hint for the primary source

        Returns:
            Lyrics text, or None when no source has lyrics
        """
        track, artist = track.strip(), artist.strip()
        if not track or not artist:
            return None

        key = make_key(track, artist)
        with self._lock:
            self._stats['lookups'] += 1
            hit, cached = self.cache.lookup(key)
            if hit:
                self._stats['cache_hits'] += 1
                return cached

        lyrics = self._fetch(track, artist, duration_ms)
        self._store(key, lyrics)
        return lyrics

    def _publish(self, state: LyricsState) -> None:
        self._state = state
        if self.on_change:
            self.on_change(state)

    def update_for_snapshot(self, snapshot: Optional[PlaybackSnapshot]) -> Optional[Future]:
        """
        Bring the published lyrics in line with the given snapshot

        Returns immediately. When a remote lookup is needed it is queued on
        the background worker and its Future is returned; otherwise None.

        Args:
            snapshot: Latest playback snapshot (None when nothing is playing)
        """
        item = snapshot.item if snapshot else None
        track = (item.name if item else "").strip()
        artist = (item.primary_artist if item else "").strip()

        with self._lock:
            if not track or not artist:
                # The same track resuming is served again from the cache
                self._last_key = ""
                self._generation += 1
                self._publish(LyricsState(lyrics=None, loading=False))
                return None

            key = make_key(track, artist)
            if key == self._last_key:
                return None

            self._last_key = key
            self._generation += 1
            generation = self._generation
            self._stats['lookups'] += 1

            hit, cached = self.cache.lookup(key)
            if hit:
                self._stats['cache_hits'] += 1
                self._publish(LyricsState(lyrics=cached, loading=False))
                return None

            self._publish(LyricsState(lyrics=None, loading=True))

        duration_ms = item.duration_ms if item else None
        return self._executor.submit(self._fetch_and_publish, generation, key, track, artist, duration_ms)

    def _fetch_and_publish(
        self,
        generation: int,
        key: str,
        track: str,
        artist: str,
        duration_ms: Optional[int]
    ) -> Optional[str]:
        lyrics = self._fetch(track, artist, duration_ms)
        self._store(key, lyrics)

        with self._lock:
            if generation != self._generation:
                self._stats['discarded'] += 1
                self.logger.debug(f"Discarding stale lyrics for '{key}'")
                return lyrics
            self._publish(LyricsState(lyrics=lyrics, loading=False))
        return lyrics

    def reset(self) -> None:
        """Forget the published track so the next snapshot is looked up again"""
        with self._lock:
            self._generation += 1
            self._last_key = ""
            self._state = LyricsState()

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            stats = dict(self._stats)
            stats['cached'] = len(self.cache)
            return stats

    def shutdown(self, wait: bool = False) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
