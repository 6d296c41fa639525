"""
Presence package: from playback state to what is on screen

- poller.py: adaptive polling state machine with error backoff
- coordinator.py: widget and lyrics overlay visibility, size and placement
- fullscreen.py: foreground-window probe and the fullscreen gate
- windows.py: window layer interface and the headless implementation
- events.py: typed outbound events and sinks
- engine.py: PresenceEngine, owner of all runtime state and inbound commands
"""

from .engine import PresenceEngine
from .events import (
    CallbackSink,
    Connected,
    EventSink,
    LoggingSink,
    LyricsUpdated,
    NowPlayingChanged,
    PreferencesChanged,
    QueueSink,
)
from .poller import PollerState, PollingPolicy, PresencePoller, ThreadingScheduler
from .windows import Display, HeadlessWindowLayer, Rect, WindowLayer

__all__ = [
    'PresenceEngine',
    'CallbackSink',
    'Connected',
    'EventSink',
    'LoggingSink',
    'LyricsUpdated',
    'NowPlayingChanged',
    'PreferencesChanged',
    'QueueSink',
    'PollerState',
    'PollingPolicy',
    'PresencePoller',
    'ThreadingScheduler',
    'Display',
    'HeadlessWindowLayer',
    'Rect',
    'WindowLayer',
]
