"""
Foreground-window probing and the fullscreen gate

While the widget is showing and the user wants it out of the way of
fullscreen applications, a watcher thread asks the OS every few seconds
which window is in the foreground. If that window belongs to another process
and covers more than 92% of the work area of the display it sits on, the
widget is hidden. The next poll that finds music still playing brings it
back.

Probing is best effort. On Windows it shells out to PowerShell with a hard
timeout; elsewhere ``NullProber`` reports nothing. A probe that fails, times
out or returns garbage counts as "no fullscreen app": the widget is never
hidden because of a probe problem.
"""

import os
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..utils.logger import get_logger
from .windows import WIDGET, Rect, WindowLayer


DEFAULT_AREA_RATIO = 0.92

# Prints "left|top|width|height|pid" for the foreground window, or nothing
POWERSHELL_PROBE = (
    "$sig='using System; using System.Runtime.InteropServices; public class W{ "
    "[StructLayout(LayoutKind.Sequential)] public struct RECT{ public int Left; public int Top; "
    "public int Right; public int Bottom; } "
    "[DllImport(\"user32.dll\")] public static extern IntPtr GetForegroundWindow(); "
    "[DllImport(\"user32.dll\")] public static extern bool GetWindowRect(IntPtr hWnd, out RECT rect); "
    "[DllImport(\"user32.dll\")] public static extern uint GetWindowThreadProcessId(IntPtr hWnd, out uint pid); }'; "
    "Add-Type $sig -ErrorAction SilentlyContinue; $h=[W]::GetForegroundWindow(); "
    "if($h -eq [IntPtr]::Zero){''; exit}; $r=New-Object W+RECT; [W]::GetWindowRect($h,[ref]$r)|Out-Null; "
    "[uint32]$fpid=0; [W]::GetWindowThreadProcessId($h,[ref]$fpid)|Out-Null; "
    "Write-Output (\"$($r.Left)|$($r.Top)|$($r.Right-$r.Left)|$($r.Bottom-$r.Top)|$fpid\")"
)


@dataclass(frozen=True)
class ForegroundWindow:
    bounds: Rect
    pid: int


def parse_probe_output(output: str) -> Optional[ForegroundWindow]:
    """
    Parse ``left|top|width|height|pid``

    Returns:
        ForegroundWindow, or None for empty or malformed output
    """
    text = (output or "").strip()
    if '|' not in text:
        return None
    parts = text.split('|')
    if len(parts) < 5:
        return None
    try:
        x, y, width, height, pid = (int(float(p)) for p in parts[:5])
    except ValueError:
        return None
    return ForegroundWindow(bounds=Rect(x, y, width, height), pid=pid)


class ForegroundWindowProber:
    """Reports the foreground window, or None when it cannot tell"""

    def probe(self) -> Optional[ForegroundWindow]:
        raise NotImplementedError


class NullProber(ForegroundWindowProber):
    """For platforms without a probe: never sees a foreground window"""

    def probe(self) -> Optional[ForegroundWindow]:
        return None


class PowerShellProber(ForegroundWindowProber):
    """Windows probe via a time-boxed PowerShell child process"""

    def __init__(self, timeout: float = 1.2, executable: str = "powershell"):
        self.timeout = timeout
        self.executable = executable
        self.logger = get_logger(__name__)

    def probe(self) -> Optional[ForegroundWindow]:
        cmd = [self.executable, '-NoProfile', '-NonInteractive', '-Command', POWERSHELL_PROBE]
        kwargs = {}
        if sys.platform == 'win32':
            kwargs['creationflags'] = getattr(subprocess, 'CREATE_NO_WINDOW', 0)

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, errors='replace', timeout=self.timeout, **kwargs
            )
        except subprocess.TimeoutExpired:
            self.logger.debug("Foreground window probe timed out")
            return None
        except OSError as e:
            self.logger.debug(f"Foreground window probe unavailable: {e}")
            return None

        return parse_probe_output(result.stdout)


def default_prober(timeout: float = 1.2) -> ForegroundWindowProber:
    """PowerShell probe on Windows, NullProber everywhere else"""
    if sys.platform == 'win32':
        return PowerShellProber(timeout=timeout)
    return NullProber()


def is_fullscreen(
    window: Optional[ForegroundWindow],
    windows: WindowLayer,
    own_pid: int,
    area_ratio: float = DEFAULT_AREA_RATIO
) -> bool:
    """
    Decide whether a foreground window counts as a fullscreen application

    Args:
        window: Probe result (None = unknown)
        windows: Window layer, for display geometry
        own_pid: Our own process id; our windows never count
        area_ratio: Minimum covered fraction of the display's work area

    Returns:
        True only for another process's window covering more than ``area_ratio``
    """
    if window is None or window.pid == own_pid:
        return False

    center_x, center_y = window.bounds.center
    display = windows.display_nearest(center_x, center_y)
    if display is None:
        return False
    work_area = max(1, display.work_area.area)
    return window.bounds.area / work_area > area_ratio


class FullscreenWatcher:
    """
    Periodic fullscreen check on its own daemon thread

    The watcher only ever hides the widget; showing it again is the poll
    loop's decision.
    """

    def __init__(
        self,
        windows: WindowLayer,
        prober: ForegroundWindowProber,
        is_enabled: Callable[[], bool],
        on_fullscreen: Optional[Callable[[], None]] = None,
        interval: float = 3.0,
        area_ratio: float = DEFAULT_AREA_RATIO,
        own_pid: Optional[int] = None
    ):
        """
        Args:
            windows: Window layer showing the widget
            prober: Foreground window prober
            is_enabled: Returns the current hide-on-fullscreen preference
            on_fullscreen: Called instead of hiding the widget directly
            interval: Seconds between checks
            area_ratio: Fullscreen threshold
            own_pid: Process id to ignore, defaults to this process
        """
        self.windows = windows
        self.prober = prober
        self.is_enabled = is_enabled
        self.on_fullscreen = on_fullscreen
        self.interval = interval
        self.area_ratio = area_ratio
        self.own_pid = os.getpid() if own_pid is None else own_pid
        self.logger = get_logger(__name__)

        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start checking; a watcher that is already running is left alone"""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(target=self._run, args=(stop_event,), name="fullscreen-watcher")
            thread.daemon = True
            self._stop_event = stop_event
            self._thread = thread
            thread.start()

    def stop(self) -> None:
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
            self._stop_event = None
            self._thread = None

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self.check_once()
            except Exception:
                # Fail open: keep the widget and try again next interval
                self.logger.exception("Fullscreen check failed")

    def check_once(self) -> bool:
        """
        Run one check

        Returns:
            True if the widget was hidden
        """
        if not self.windows.is_visible(WIDGET):
            return False
        if not self.is_enabled():
            return False

        window = self.prober.probe()
        if not is_fullscreen(window, self.windows, self.own_pid, self.area_ratio):
            return False

        self.logger.info("Fullscreen application detected, hiding widget")
        if self.on_fullscreen:
            self.on_fullscreen()
        else:
            self.windows.hide(WIDGET)
        return True


def probe_summary(prober: ForegroundWindowProber) -> List[str]:
    """Describe the probe in use, for diagnostics"""
    name = type(prober).__name__
    window = prober.probe()
    if window is None:
        return [f"Prober: {name}", "Foreground window: unavailable"]
    b = window.bounds
    return [f"Prober: {name}", f"Foreground window: {b.width}x{b.height} at ({b.x}, {b.y}), pid {window.pid}"]
