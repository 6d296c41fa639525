"""
Window layer interface and a headless implementation

The engine decides what the floating widget and the lyrics overlay should
do; a ``WindowLayer`` carries it out. Real desktop shells implement this
interface on top of their toolkit. ``HeadlessWindowLayer`` keeps the same
state in memory, which is what the CLI ``run`` command and the tests use.

Geometry is expressed in screen pixels. Each display has full ``bounds`` and
a ``work_area`` (bounds minus task bars and docks).
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


WIDGET = "widget"
LYRICS = "lyrics"
SURFACES = (WIDGET, LYRICS)


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    @property
    def center(self) -> Tuple[int, int]:
        return self.x + int(self.width / 2 + 0.5), self.y + int(self.height / 2 + 0.5)

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    def to_dict(self) -> Dict[str, int]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class Display:
    id: str
    bounds: Rect
    work_area: Rect


def display_nearest_point(displays: List[Display], x: int, y: int) -> Optional[Display]:
    """
    Pick the display containing a point, or the closest one to it

    Returns:
        Matching display, None only when ``displays`` is empty
    """
    if not displays:
        return None
    for display in displays:
        if display.bounds.contains(x, y):
            return display

    def distance(display: Display) -> int:
        b = display.bounds
        dx = max(b.x - x, 0, x - (b.x + b.width - 1))
        dy = max(b.y - y, 0, y - (b.y + b.height - 1))
        return dx * dx + dy * dy

    return min(displays, key=distance)


class WindowLayer:
    """
    Operations the engine needs from the desktop shell

    Surfaces are addressed by name (``WIDGET`` or ``LYRICS``). Showing is
    always "inactive": it must not steal focus from the foreground app.
    """

    def displays(self) -> List[Display]:
        raise NotImplementedError

    def cursor_position(self) -> Tuple[int, int]:
        raise NotImplementedError

    def exists(self, surface: str) -> bool:
        raise NotImplementedError

    def create(self, surface: str, bounds: Rect, movable: bool = True) -> None:
        raise NotImplementedError

    def is_visible(self, surface: str) -> bool:
        raise NotImplementedError

    def show(self, surface: str) -> None:
        raise NotImplementedError

    def hide(self, surface: str) -> None:
        raise NotImplementedError

    def get_bounds(self, surface: str) -> Optional[Rect]:
        raise NotImplementedError

    def set_bounds(self, surface: str, bounds: Rect) -> None:
        raise NotImplementedError

    def set_movable(self, surface: str, movable: bool) -> None:
        raise NotImplementedError

    def display_nearest(self, x: int, y: int) -> Optional[Display]:
        return display_nearest_point(self.displays(), x, y)


@dataclass
class _SurfaceState:
    bounds: Rect
    visible: bool = False
    movable: bool = True


class HeadlessWindowLayer(WindowLayer):
    """
    In-memory window layer

    Args:
        displays: Attached displays; defaults to one 1920x1080 screen with a
                  40px task bar at the bottom
        cursor: Cursor position used to pick the active display
    """

    def __init__(self, displays: Optional[List[Display]] = None, cursor: Tuple[int, int] = (0, 0)):
        self._displays = list(displays) if displays is not None else [
            Display(id="1", bounds=Rect(0, 0, 1920, 1080), work_area=Rect(0, 0, 1920, 1040))
        ]
        self.cursor = cursor
        self._surfaces: Dict[str, _SurfaceState] = {}
        self._lock = threading.Lock()

    def set_displays(self, displays: List[Display]) -> None:
        with self._lock:
            self._displays = list(displays)

    def displays(self) -> List[Display]:
        with self._lock:
            return list(self._displays)

    def cursor_position(self) -> Tuple[int, int]:
        return self.cursor

    def exists(self, surface: str) -> bool:
        with self._lock:
            return surface in self._surfaces

    def create(self, surface: str, bounds: Rect, movable: bool = True) -> None:
        with self._lock:
            self._surfaces[surface] = _SurfaceState(bounds=bounds, visible=False, movable=movable)

    def destroy(self, surface: str) -> None:
        with self._lock:
            self._surfaces.pop(surface, None)

    def is_visible(self, surface: str) -> bool:
        with self._lock:
            state = self._surfaces.get(surface)
            return bool(state and state.visible)

    def show(self, surface: str) -> None:
        with self._lock:
            state = self._surfaces.get(surface)
            if state:
                state.visible = True

    def hide(self, surface: str) -> None:
        with self._lock:
            state = self._surfaces.get(surface)
            if state:
                state.visible = False

    def get_bounds(self, surface: str) -> Optional[Rect]:
        with self._lock:
            state = self._surfaces.get(surface)
            return state.bounds if state else None

    def set_bounds(self, surface: str, bounds: Rect) -> None:
        with self._lock:
            state = self._surfaces.get(surface)
            if state:
                state.bounds = bounds

    def set_movable(self, surface: str, movable: bool) -> None:
        with self._lock:
            state = self._surfaces.get(surface)
            if state:
                state.movable = movable

    def is_movable(self, surface: str) -> bool:
        with self._lock:
            state = self._surfaces.get(surface)
            return bool(state and state.movable)
