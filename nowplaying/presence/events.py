"""
Typed outbound events and the sinks that deliver them

The engine never talks to a UI directly. It hands typed events to an
``EventSink``; how they travel further (an in-process queue, a log, an IPC
channel) is the sink's business.

Events:
    NowPlayingChanged    latest snapshot, None when nothing is known/playing
    PreferencesChanged   current widget preferences
    LyricsUpdated        lyrics payload ``{lyrics, loading, nowPlaying}``
    Connected            an OAuth connect attempt completed
"""

import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..spotify.models import PlaybackSnapshot
from ..utils.logger import get_logger


@dataclass(frozen=True)
class NowPlayingChanged:
    snapshot: Optional[PlaybackSnapshot]

    def to_payload(self) -> Optional[Dict[str, Any]]:
        return self.snapshot.to_dict() if self.snapshot else None


@dataclass(frozen=True)
class PreferencesChanged:
    preferences: Dict[str, Any]

    def to_payload(self) -> Dict[str, Any]:
        return dict(self.preferences)


@dataclass(frozen=True)
class LyricsUpdated:
    lyrics: Optional[str]
    loading: bool
    now_playing: Optional[PlaybackSnapshot]

    def to_payload(self) -> Dict[str, Any]:
        return {
            'lyrics': self.lyrics,
            'loading': self.loading,
            'nowPlaying': self.now_playing.to_dict() if self.now_playing else None,
        }


@dataclass(frozen=True)
class Connected:
    def to_payload(self) -> bool:
        return True


class EventSink:
    """Observer the engine publishes to; subclasses override ``emit``"""

    def emit(self, event: Any) -> None:
        raise NotImplementedError


class QueueSink(EventSink):
    """Buffers events in a thread-safe queue for another thread to consume"""

    def __init__(self, maxsize: int = 0):
        self.queue: 'queue.Queue[Any]' = queue.Queue(maxsize=maxsize)

    def emit(self, event: Any) -> None:
        self.queue.put(event)

    def drain(self) -> List[Any]:
        """Return and remove every buffered event"""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events


class CallbackSink(EventSink):
    """Forwards every event to a callable"""

    def __init__(self, callback: Callable[[Any], None]):
        self.callback = callback

    def emit(self, event: Any) -> None:
        self.callback(event)


class LoggingSink(EventSink):
    """
    Reports events on the console

    Used by the ``run`` command. Track changes are announced once instead of
    on every poll, and lyrics are summarized rather than printed.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self._lock = threading.Lock()
        self._last_track: Optional[str] = None
        self._last_lyrics: Optional[Tuple[str, int]] = None

    def emit(self, event: Any) -> None:
        if isinstance(event, NowPlayingChanged):
            self._on_now_playing(event.snapshot)
        elif isinstance(event, LyricsUpdated):
            self._on_lyrics(event)
        elif isinstance(event, PreferencesChanged):
            self.logger.debug(f"Widget preferences: {event.preferences}")
        elif isinstance(event, Connected):
            self.logger.console_info("Connected to Spotify")

    def _on_now_playing(self, snapshot: Optional[PlaybackSnapshot]) -> None:
        if snapshot is None or not snapshot.is_active:
            label = None
        else:
            label = f"{snapshot.item.all_artists} - {snapshot.item.name}"

        with self._lock:
            if label == self._last_track:
                return
            self._last_track = label

        if label:
            self.logger.console_info(f"Now playing: {label}")
        else:
            self.logger.console_info("Nothing playing")

    def _on_lyrics(self, event: LyricsUpdated) -> None:
        # The lyrics payload is re-sent on every poll; report changes only
        if event.loading or event.now_playing is None or event.now_playing.item is None:
            return
        lines = len(event.lyrics.splitlines()) if event.lyrics else 0
        key = (event.now_playing.item.name, lines)
        with self._lock:
            if key == self._last_lyrics:
                return
            self._last_lyrics = key
        self.logger.console_info(f"   Lyrics: {f'{lines} lines' if lines else 'not found'}")
