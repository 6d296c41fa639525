"""
Presentation decisions for the floating widget and the lyrics overlay

The coordinator turns a snapshot plus the stored preferences into window
operations. It keeps no state of its own: preferences, positions and the
lyrics toggle live in the store, window existence and visibility live in the
window layer.

Placement rules:
- The widget has three size presets; the lyrics overlay has a fixed size.
- A surface is placed at the position remembered for the active display
  (the display under the cursor), else at the widget's last position on any
  display, else at the bottom-right corner of the active display's work area
  with a 24px margin.
- When a surface is moved its top-left corner is remembered for the display
  nearest the surface's centre.
"""

from typing import Any, Dict, Optional, Tuple

from ..config.settings import SIZE_PRESETS, STYLE_PRESETS, WidgetConfig
from ..config.store import JsonStore
from ..spotify.models import PlaybackSnapshot
from ..utils.logger import get_logger
from .windows import LYRICS, WIDGET, Rect, WindowLayer


WIDGET_SIZES = {
    'small': (320, 120),
    'medium': (400, 160),
    'large': (520, 220),
}
LYRICS_SIZE = (380, 340)
EDGE_MARGIN = 24

# Style names from earlier releases mapped to their current equivalent
LEGACY_STYLES = {'style3': 'style2'}

KEY_PREFERENCES = 'widgetPreferences'
KEY_PINNED = 'widgetPinned'
KEY_WIDGET_BOUNDS = 'widgetBounds'
KEY_WIDGET_BY_DISPLAY = 'widgetBoundsByDisplay'
KEY_LYRICS_BY_DISPLAY = 'lyricsBoundsByDisplay'
KEY_LYRICS_VISIBLE = 'lyricsVisible'

_BY_DISPLAY_KEYS = {WIDGET: KEY_WIDGET_BY_DISPLAY, LYRICS: KEY_LYRICS_BY_DISPLAY}


def should_show_widget(snapshot: Optional[PlaybackSnapshot]) -> bool:
    """The widget is visible exactly while something is audibly playing"""
    return snapshot is not None and snapshot.is_playing and snapshot.item is not None


def widget_size(preset: str) -> Tuple[int, int]:
    return WIDGET_SIZES.get(preset, WIDGET_SIZES['medium'])


def _normalize_style(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = LEGACY_STYLES.get(value, value)
    return value if value in STYLE_PRESETS else None


class PresentationCoordinator:
    """
    Applies presentation decisions through a WindowLayer

    Attributes:
        store: Preference and position store
        windows: Window layer executing the decisions
        defaults: Preferences used for anything the user has not set
    """

    def __init__(self, store: JsonStore, windows: WindowLayer, defaults: Optional[WidgetConfig] = None):
        self.store = store
        self.windows = windows
        self.defaults = defaults or WidgetConfig()
        self.logger = get_logger(__name__)

    # Preferences

    def default_preferences(self) -> Dict[str, Any]:
        return {
            'sizePreset': self.defaults.size_preset,
            'showProgress': self.defaults.show_progress,
            'stylePreset': self.defaults.style_preset,
            'hideOnFullscreen': self.defaults.hide_on_fullscreen,
        }

    def _merge(self, base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(base)
        if changes.get('sizePreset') in SIZE_PRESETS:
            merged['sizePreset'] = changes['sizePreset']
        for flag in ('showProgress', 'hideOnFullscreen'):
            if isinstance(changes.get(flag), bool):
                merged[flag] = changes[flag]
        style = _normalize_style(changes.get('stylePreset'))
        if style:
            merged['stylePreset'] = style
        return merged

    def get_preferences(self) -> Dict[str, Any]:
        """Stored preferences with defaults filled in and legacy values normalized"""
        raw = self.store.get(KEY_PREFERENCES)
        return self._merge(self.default_preferences(), raw if isinstance(raw, dict) else {})

    def set_preferences(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge a partial update into the stored preferences

        Unknown keys and invalid values are ignored. An existing widget is
        resized in place.

        Returns:
            The merged preferences
        """
        merged = self._merge(self.get_preferences(), changes or {})
        self.store.set(KEY_PREFERENCES, merged)
        self.apply_widget_size()
        return merged

    def reset_preferences(self) -> Dict[str, Any]:
        defaults = self.default_preferences()
        self.store.set(KEY_PREFERENCES, defaults)
        self.apply_widget_size()
        return defaults

    # Positions

    def _size_of(self, surface: str) -> Tuple[int, int]:
        if surface == LYRICS:
            return LYRICS_SIZE
        return widget_size(self.get_preferences()['sizePreset'])

    def scoped_position(self, surface: str, width: int, height: int) -> Tuple[int, int]:
        """
        Where a surface of the given size should appear on the active display

        Returns:
            (x, y) top-left corner
        """
        cursor_x, cursor_y = self.windows.cursor_position()
        display = self.windows.display_nearest(cursor_x, cursor_y)
        display_id = display.id if display else ""

        by_display = self.store.get(_BY_DISPLAY_KEYS[surface]) or {}
        saved = by_display.get(display_id) if isinstance(by_display, dict) else None
        if isinstance(saved, dict) and 'x' in saved and 'y' in saved:
            return int(saved['x']), int(saved['y'])

        fallback = self.store.get(KEY_WIDGET_BOUNDS)
        if isinstance(fallback, dict) and 'x' in fallback and 'y' in fallback:
            return int(fallback['x']), int(fallback['y'])

        if display is None:
            return EDGE_MARGIN, EDGE_MARGIN
        work = display.work_area
        return (work.x + work.width - width - EDGE_MARGIN,
                work.y + work.height - height - EDGE_MARGIN)

    def target_bounds(self, surface: str) -> Rect:
        width, height = self._size_of(surface)
        x, y = self.scoped_position(surface, width, height)
        return Rect(x, y, width, height)

    def persist_position(self, surface: str, bounds: Rect) -> None:
        """Remember a surface's top-left corner for the display nearest its centre"""
        center_x, center_y = bounds.center
        display = self.windows.display_nearest(center_x, center_y)
        display_id = display.id if display else ""

        key = _BY_DISPLAY_KEYS[surface]
        by_display = self.store.get(key)
        by_display = dict(by_display) if isinstance(by_display, dict) else {}
        by_display[display_id] = {'x': bounds.x, 'y': bounds.y}
        self.store.set(key, by_display)
        if surface == WIDGET:
            self.store.set(KEY_WIDGET_BOUNDS, {'x': bounds.x, 'y': bounds.y})

    # Widget

    def is_pinned(self) -> bool:
        return bool(self.store.get(KEY_PINNED, False))

    def set_pinned(self, pinned: bool) -> None:
        self.store.set(KEY_PINNED, bool(pinned))
        if self.windows.exists(WIDGET):
            self.windows.set_movable(WIDGET, not pinned)

    def ensure_widget(self) -> None:
        if not self.windows.exists(WIDGET):
            self.windows.create(WIDGET, self.target_bounds(WIDGET), movable=not self.is_pinned())

    def show_widget(self) -> None:
        """
        Reveal the widget, creating it on first use

        A widget coming back from hidden is re-placed first: the display
        layout may have changed while it was away.
        """
        self.ensure_widget()
        if not self.windows.is_visible(WIDGET):
            self.windows.set_bounds(WIDGET, self.target_bounds(WIDGET))
        self.windows.show(WIDGET)

    def hide_widget(self) -> None:
        if self.windows.exists(WIDGET):
            self.windows.hide(WIDGET)

    def widget_visible(self) -> bool:
        return self.windows.is_visible(WIDGET)

    def apply_widget_size(self) -> None:
        """Resize an existing widget to the size preset, keeping its position"""
        if not self.windows.exists(WIDGET):
            return
        current = self.windows.get_bounds(WIDGET)
        width, height = self._size_of(WIDGET)
        bounds = Rect(current.x if current else 0, current.y if current else 0, width, height)
        self.windows.set_bounds(WIDGET, bounds)
        self.persist_position(WIDGET, bounds)

    def reanchor_widget(self) -> None:
        """Re-place an existing widget after the display layout changed"""
        if self.windows.exists(WIDGET):
            self.windows.set_bounds(WIDGET, self.target_bounds(WIDGET))

    # Lyrics overlay

    def lyrics_enabled(self) -> bool:
        return bool(self.store.get(KEY_LYRICS_VISIBLE, False))

    def lyrics_active(self) -> bool:
        """True when lyrics content is wanted: toggled on or currently on screen"""
        return self.lyrics_enabled() or self.windows.is_visible(LYRICS)

    def set_lyrics_enabled(self, enabled: bool) -> None:
        self.store.set(KEY_LYRICS_VISIBLE, bool(enabled))

    def show_lyrics(self) -> bool:
        """
        Reveal the lyrics overlay if the user has it toggled on

        Returns:
            True if the overlay is now showing
        """
        if not self.lyrics_enabled():
            return False
        if not self.windows.exists(LYRICS):
            self.windows.create(LYRICS, self.target_bounds(LYRICS))
        self.windows.show(LYRICS)
        return True

    def hide_lyrics(self) -> None:
        if self.windows.exists(LYRICS):
            self.windows.hide(LYRICS)

    def hide_all(self) -> None:
        self.hide_widget()
        self.hide_lyrics()
