"""
The presence engine: one object owning all runtime state

The engine wires the token manager, the playback client, the poller, the
lyrics resolver, the presentation coordinator and the fullscreen watcher
together, and exposes the commands a presentation layer sends:

    set_client_id, connect, disconnect, start_polling, stop_polling,
    player_action, get_stats, set_preferences, toggle_lyrics,
    set_widget_pinned, widget_moved, lyrics_moved, display_metrics_changed,
    get_settings_snapshot, get_home_summary,
    export_settings, import_settings, reset_settings

Everything the presentation layer needs to render is pushed to the event
sink as typed events; nothing in here returns raw transport errors to a
caller except through the classified exceptions of ``nowplaying.exceptions``.
"""

import threading
from typing import Any, Dict, List, Optional

from ..config.auth import OAuthFlow, TokenManager
from ..config.settings import Settings
from ..config.store import JsonStore
from ..exceptions import (
    ConfigError,
    NotConnectedError,
    NowPlayingError,
    PermissionDeniedError,
    RemoteError,
)
from ..lyrics.lrclib import LrclibProvider
from ..lyrics.lyricsovh import LyricsOvhProvider
from ..lyrics.resolver import LyricsResolver, LyricsState
from ..spotify.client import PlaybackClient
from ..spotify.models import PlaybackSnapshot, PlaybackStats
from ..utils.helpers import now_ms
from ..utils.logger import get_logger
from ..utils.validation import validate_client_id
from .coordinator import KEY_PINNED, PresentationCoordinator, should_show_widget
from .events import Connected, EventSink, LoggingSink, LyricsUpdated, NowPlayingChanged, PreferencesChanged
from .fullscreen import ForegroundWindowProber, FullscreenWatcher, default_prober
from .poller import PollingPolicy, PresenceListener, PresencePoller, Scheduler
from .windows import LYRICS, WIDGET, HeadlessWindowLayer, Rect, WindowLayer


PLAYER_ACTIONS = ('previous', 'next', 'toggle')

STATS_PERMISSION_MESSAGE = "Statistics permission missing. Disconnect and connect to Spotify again."
STATS_UNAVAILABLE_MESSAGE = "Statistics could not be loaded. Please try again later."


class PresenceEngine(PresenceListener):
    """
    Owner of the token set, the latest snapshot, the polling policy and the
    lyrics cache

    Collaborators not passed in are built from ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[JsonStore] = None,
        windows: Optional[WindowLayer] = None,
        sink: Optional[EventSink] = None,
        client: Optional[PlaybackClient] = None,
        token_manager: Optional[TokenManager] = None,
        resolver: Optional[LyricsResolver] = None,
        prober: Optional[ForegroundWindowProber] = None,
        scheduler: Optional[Scheduler] = None,
        oauth: Optional[OAuthFlow] = None
    ):
        self.settings = settings
        self.logger = get_logger(__name__)

        self.store = store or JsonStore(settings.get_store_path())
        self.windows = windows or HeadlessWindowLayer()
        self.sink = sink or LoggingSink()
        self.client = client or PlaybackClient(
            timeout=settings.spotify.request_timeout,
            retries=settings.spotify.retries,
        )
        self.token_manager = token_manager or TokenManager(
            self.store,
            default_client_id=settings.spotify.client_id,
            timeout=settings.spotify.request_timeout,
        )
        self.oauth = oauth or OAuthFlow(self.store, settings, self.token_manager)
        self.oauth.on_connected = self._on_connected

        if resolver is None:
            lyrics = settings.lyrics
            user_agent = settings.network.user_agent
            resolver = LyricsResolver(
                sources=[
                    LrclibProvider(lyrics.lrclib_url, lyrics.timeout, user_agent),
                    LyricsOvhProvider(lyrics.lyricsovh_url, lyrics.timeout, user_agent),
                ],
                cache_size=lyrics.cache_size,
            )
        self.resolver = resolver
        self.resolver.on_change = self._on_lyrics_change

        self.coordinator = PresentationCoordinator(self.store, self.windows, settings.widget)
        self.watcher = FullscreenWatcher(
            self.windows,
            prober or default_prober(settings.fullscreen.probe_timeout),
            is_enabled=lambda: bool(self.coordinator.get_preferences()['hideOnFullscreen']),
            interval=settings.fullscreen.check_interval,
            area_ratio=settings.fullscreen.area_ratio,
        )

        polling = settings.polling
        self.poller = PresencePoller(
            get_token=self.token_manager.get_valid_access_token,
            fetch_now_playing=self.client.get_now_playing,
            listener=self,
            policy=PollingPolicy(
                playing_interval=polling.playing_interval,
                idle_interval=polling.idle_interval,
                error_base=polling.error_base,
                error_ceiling=polling.error_ceiling,
            ),
            scheduler=scheduler,
        )

        self._snapshot_lock = threading.Lock()
        self._last_snapshot: Optional[PlaybackSnapshot] = None

    @property
    def last_snapshot(self) -> Optional[PlaybackSnapshot]:
        with self._snapshot_lock:
            return self._last_snapshot

    # Lifecycle

    def startup(self) -> None:
        """Resume polling when a token from an earlier session exists"""
        if self.token_manager.has_token():
            self.start_polling()

    def shutdown(self) -> None:
        self.poller.stop()
        self.watcher.stop()
        self.oauth.shutdown()
        self.resolver.shutdown()

    # Poll cycle outcomes

    def on_not_connected(self) -> None:
        self.coordinator.hide_widget()
        self.watcher.stop()
        self.sink.emit(NowPlayingChanged(None))

    def on_snapshot(self, snapshot: Optional[PlaybackSnapshot]) -> bool:
        with self._snapshot_lock:
            self._last_snapshot = snapshot

        if self._lyrics_wanted():
            # Queued on the lyrics worker; visibility does not wait for it
            self.resolver.update_for_snapshot(snapshot)
            self._emit_lyrics()
        self.sink.emit(NowPlayingChanged(snapshot))

        visible = should_show_widget(snapshot)
        if visible:
            self.coordinator.show_widget()
            self.sink.emit(PreferencesChanged(self.coordinator.get_preferences()))
            self.watcher.start()
            if self.coordinator.show_lyrics():
                self._emit_lyrics()
        else:
            self.coordinator.hide_all()
            self.watcher.stop()
        return visible

    def on_poll_failure(self, error: Exception) -> None:
        self.coordinator.hide_widget()
        self.sink.emit(NowPlayingChanged(None))
        self.watcher.stop()

    # Lyrics

    def _lyrics_wanted(self) -> bool:
        return self.settings.lyrics.enabled and self.coordinator.lyrics_active()

    def _emit_lyrics(self, state: Optional[LyricsState] = None) -> None:
        state = state or self.resolver.state
        self.sink.emit(LyricsUpdated(state.lyrics, state.loading, self.last_snapshot))

    def _on_lyrics_change(self, state: LyricsState) -> None:
        self._emit_lyrics(state)

    def toggle_lyrics(self, force: Optional[bool] = None) -> bool:
        """
        Flip (or force) the lyrics overlay toggle

        Returns:
            The new toggle value
        """
        enabled = (not self.coordinator.lyrics_enabled()) if force is None else bool(force)
        self.coordinator.set_lyrics_enabled(enabled)
        if not enabled:
            self.coordinator.hide_lyrics()
            return False

        self.coordinator.show_lyrics()
        self._emit_lyrics()
        if self.settings.lyrics.enabled:
            self.resolver.update_for_snapshot(self.last_snapshot)
        return True

    # Connection

    def set_client_id(self, client_id: str) -> None:
        """
        Raises:
            ConfigError: The client id is empty or malformed
        """
        client_id = (client_id or "").strip()
        is_valid, error = validate_client_id(client_id)
        if not is_valid:
            raise ConfigError(error or "Invalid client ID", details={'key': 'spotifyClientId'})
        self.token_manager.set_client_id(client_id)

    def connect(self, launch_browser: bool = True) -> str:
        """
        Start the browser-based connect handshake

        Returns:
            Authorization URL

        Raises:
            ConfigError: No usable client id
        """
        return self.oauth.start_connect(launch_browser=launch_browser)

    def _on_connected(self) -> None:
        self.sink.emit(Connected())
        self.start_polling()

    def disconnect(self) -> None:
        """Forget the token and clear every surface immediately"""
        self.token_manager.clear()
        self.poller.stop()
        # A cycle already past its token check still applies its snapshot
        self.poller.wait_idle()
        self.watcher.stop()
        self.coordinator.hide_all()
        self.sink.emit(NowPlayingChanged(None))
        self.logger.console_info("Disconnected from Spotify")

    def start_polling(self) -> bool:
        return self.poller.start()

    def stop_polling(self) -> bool:
        return self.poller.stop()

    def _require_token(self) -> str:
        token = self.token_manager.get_valid_access_token()
        if not token:
            raise NotConnectedError()
        return token

    # Remote commands

    def refresh_now_playing(self) -> Optional[PlaybackSnapshot]:
        """
        Fetch and remember the current playback without touching any surface

        Raises:
            NotConnectedError: No usable token
            RemoteError: The fetch failed
        """
        snapshot = self.client.get_now_playing(self._require_token())
        with self._snapshot_lock:
            self._last_snapshot = snapshot
        return snapshot

    def player_action(self, action: str) -> None:
        """
        Send a transport command

        Args:
            action: ``previous``, ``next`` or ``toggle``

        Raises:
            ValueError: Unknown action
            NotConnectedError: No usable token
            RemoteError: The player rejected the command
        """
        if action not in PLAYER_ACTIONS:
            raise ValueError(f"Unknown player action: {action}")
        token = self._require_token()

        if action == 'previous':
            self.client.play_previous(token)
        elif action == 'next':
            self.client.play_next(token)
        else:
            snapshot = self.last_snapshot
            self.client.toggle_play_pause(token, bool(snapshot and snapshot.is_playing))

    def get_stats(self) -> PlaybackStats:
        """
        Fetch listening statistics

        Raises:
            NotConnectedError: No usable token
            PermissionDeniedError: Scopes missing; the user must reconnect
            RemoteError: Any other failure, with a user-facing message
        """
        token = self._require_token()
        try:
            return self.client.get_stats(token)
        except PermissionDeniedError as e:
            self.logger.warning(f"Statistics permission denied: {e}")
            raise PermissionDeniedError(STATS_PERMISSION_MESSAGE, status=e.status) from e
        except RemoteError as e:
            self.logger.warning(f"Statistics request failed: {e}")
            raise RemoteError(STATS_UNAVAILABLE_MESSAGE, status=e.status) from e

    # Preferences and placement

    def set_preferences(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        merged = self.coordinator.set_preferences(changes)
        self.sink.emit(PreferencesChanged(merged))
        return merged

    def set_widget_pinned(self, pinned: bool) -> None:
        self.coordinator.set_pinned(pinned)

    def widget_moved(self, bounds: Rect) -> None:
        self.coordinator.persist_position(WIDGET, bounds)

    def lyrics_moved(self, bounds: Rect) -> None:
        self.coordinator.persist_position(LYRICS, bounds)

    def display_metrics_changed(self) -> None:
        self.coordinator.reanchor_widget()

    # Views

    def get_settings_snapshot(self) -> Dict[str, Any]:
        return {
            'hasToken': self.token_manager.has_token(),
            'clientId': self.token_manager.get_client_id(),
            'widgetPreferences': self.coordinator.get_preferences(),
            'widgetPinned': self.coordinator.is_pinned(),
            'lyricsVisible': self.coordinator.lyrics_enabled(),
            'polling': self.poller.active,
            'diagnostics': self.token_manager.diagnostics.to_dict(),
        }

    def get_home_summary(self, now: Optional[int] = None) -> Dict[str, Any]:
        """
        Summary for a home screen: connection, current track, minutes listened

        Statistics failures are logged and reported as zero minutes.
        """
        snapshot = self.last_snapshot
        item = snapshot.item if snapshot else None
        day_minutes = week_minutes = 0

        connected = self.token_manager.has_token()
        if connected:
            try:
                stats = self.get_stats()
                day_minutes, week_minutes = stats.listening_minutes(now_ms() if now is None else now)
            except NowPlayingError as e:
                self.logger.info(f"Listening minutes unavailable: {e}")

        return {
            'connected': connected,
            'isPlaying': bool(snapshot and snapshot.is_playing),
            'currentTrack': item.name if item else "",
            'currentArtist': item.all_artists if item else "",
            'dayMinutes': day_minutes,
            'weekMinutes': week_minutes,
        }

    # Settings transfer

    def export_settings(self) -> Dict[str, Any]:
        return {
            'spotifyClientId': self.token_manager.get_client_id(),
            'widgetPreferences': self.coordinator.get_preferences(),
            'widgetPinned': self.coordinator.is_pinned(),
        }

    def import_settings(self, data: Dict[str, Any]) -> List[str]:
        """
        Apply an exported settings document

        Unrecognized or wrongly typed fields are skipped.

        Returns:
            Names of the fields that were applied
        """
        applied = []
        if not isinstance(data, dict):
            return applied

        client_id = data.get('spotifyClientId')
        if isinstance(client_id, str) and client_id.strip():
            try:
                self.set_client_id(client_id)
                applied.append('spotifyClientId')
            except ConfigError as e:
                self.logger.warning(f"Skipping imported client ID: {e}")

        preferences = data.get('widgetPreferences')
        if isinstance(preferences, dict):
            self.set_preferences(preferences)
            applied.append('widgetPreferences')

        pinned = data.get(KEY_PINNED)
        if isinstance(pinned, bool):
            self.set_widget_pinned(pinned)
            applied.append(KEY_PINNED)

        return applied

    def reset_settings(self) -> Dict[str, Any]:
        """Restore default widget preferences and unpin the widget"""
        defaults = self.coordinator.reset_preferences()
        self.coordinator.set_pinned(False)
        self.sink.emit(PreferencesChanged(defaults))
        return defaults
