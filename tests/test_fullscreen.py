"""Test foreground-window probing and the fullscreen gate"""

import subprocess
import threading
import pytest
from unittest.mock import Mock, patch

from nowplaying.presence import fullscreen
from nowplaying.presence.fullscreen import (
    ForegroundWindow,
    FullscreenWatcher,
    NullProber,
    PowerShellProber,
    default_prober,
    is_fullscreen,
    parse_probe_output,
    probe_summary,
)
from nowplaying.presence.windows import WIDGET, Display, HeadlessWindowLayer, Rect


OWN_PID = 1000
OTHER_PID = 2000


@pytest.fixture
def windows():
    layer = HeadlessWindowLayer(displays=[
        Display("1", Rect(0, 0, 1920, 1080), Rect(0, 0, 1920, 1040)),
        Display("2", Rect(1920, 0, 1280, 1024), Rect(1920, 0, 1280, 1024)),
    ])
    layer.create(WIDGET, Rect(1496, 856, 400, 160))
    layer.show(WIDGET)
    return layer


def window(x, y, width, height, pid=OTHER_PID):
    return ForegroundWindow(Rect(x, y, width, height), pid)


class TestParseProbeOutput:
    """Test probe output parsing"""

    def test_parse(self):
        assert parse_probe_output("0|0|1920|1080|4321\r\n") == window(0, 0, 1920, 1080, 4321)
        assert parse_probe_output("-8|-8|1936|1056|77") == window(-8, -8, 1936, 1056, 77)

    @pytest.mark.parametrize("output", ["", None, "garbage", "1|2|3", "a|b|c|d|e"])
    def test_malformed(self, output):
        assert parse_probe_output(output) is None


class TestIsFullscreen:
    """Test the fullscreen classification"""

    def test_covering_work_area(self, windows):
        assert is_fullscreen(window(0, 0, 1920, 1080), windows, OWN_PID)
        assert is_fullscreen(window(0, 0, 1920, 1000), windows, OWN_PID)

    def test_large_but_not_fullscreen(self, windows):
        # 1800x1000 covers about 90% of the 1920x1040 work area
        assert not is_fullscreen(window(0, 0, 1800, 1000), windows, OWN_PID)

    def test_uses_display_under_window_center(self, windows):
        assert is_fullscreen(window(1920, 0, 1280, 1024), windows, OWN_PID)
        assert not is_fullscreen(window(1920, 0, 1000, 800), windows, OWN_PID)

    def test_own_windows_never_count(self, windows):
        assert not is_fullscreen(window(0, 0, 1920, 1080, pid=OWN_PID), windows, OWN_PID)

    def test_unknown_window(self, windows):
        assert not is_fullscreen(None, windows, OWN_PID)


class TestFullscreenWatcher:
    """Test the periodic check"""

    def _watcher(self, windows, probe_result, enabled=True, **kwargs):
        prober = Mock()
        prober.probe.return_value = probe_result
        return FullscreenWatcher(windows, prober, is_enabled=lambda: enabled, own_pid=OWN_PID, **kwargs)

    def test_hides_widget_for_fullscreen_app(self, windows):
        watcher = self._watcher(windows, window(0, 0, 1920, 1080))

        assert watcher.check_once()
        assert not windows.is_visible(WIDGET)

    def test_on_fullscreen_callback_replaces_hide(self, windows):
        callback = Mock()
        watcher = self._watcher(windows, window(0, 0, 1920, 1080), on_fullscreen=callback)

        assert watcher.check_once()
        callback.assert_called_once()
        assert windows.is_visible(WIDGET)

    def test_probe_failure_fails_open(self, windows):
        watcher = self._watcher(windows, None)

        assert not watcher.check_once()
        assert windows.is_visible(WIDGET)

    def test_disabled_preference_skips_probe(self, windows):
        watcher = self._watcher(windows, window(0, 0, 1920, 1080), enabled=False)

        assert not watcher.check_once()
        watcher.prober.probe.assert_not_called()
        assert windows.is_visible(WIDGET)

    def test_hidden_widget_skips_probe(self, windows):
        windows.hide(WIDGET)
        watcher = self._watcher(windows, window(0, 0, 1920, 1080))

        assert not watcher.check_once()
        watcher.prober.probe.assert_not_called()

    def test_start_and_stop(self, windows):
        watcher = self._watcher(windows, None, interval=60)

        watcher.start()
        assert watcher.running
        watcher.start()
        watcher.stop()
        assert not watcher.running

    def test_failing_check_keeps_watcher_alive(self, windows):
        """A probe that raises must not end the periodic check"""
        hidden = threading.Event()
        prober = Mock()

        def probe():
            if prober.probe.call_count == 1:
                raise UnicodeDecodeError('utf-8', b'\xff', 0, 1, 'invalid start byte')
            return window(0, 0, 1920, 1080)

        prober.probe.side_effect = probe
        watcher = FullscreenWatcher(
            windows, prober, is_enabled=lambda: True, on_fullscreen=hidden.set,
            interval=0.01, own_pid=OWN_PID,
        )

        watcher.start()
        try:
            assert hidden.wait(5)
            assert watcher.running
        finally:
            watcher.stop()
        assert prober.probe.call_count >= 2

    def test_start_replaces_dead_thread(self, windows):
        watcher = self._watcher(windows, None, interval=60)
        dead = Mock()
        dead.is_alive.return_value = False
        watcher._thread = dead

        assert not watcher.running
        watcher.start()
        assert watcher.running
        watcher.stop()


class TestProbers:
    """Test probe implementations"""

    @patch('nowplaying.presence.fullscreen.subprocess.run')
    def test_powershell_probe(self, mock_run):
        mock_run.return_value = Mock(stdout="0|0|2560|1440|99\n")

        assert PowerShellProber(timeout=1.2).probe() == window(0, 0, 2560, 1440, 99)
        assert mock_run.call_args[1]['timeout'] == 1.2
        assert mock_run.call_args[1]['errors'] == 'replace'

    @pytest.mark.parametrize("error", [
        subprocess.TimeoutExpired(cmd="powershell", timeout=1.2),
        FileNotFoundError("powershell"),
    ])
    @patch('nowplaying.presence.fullscreen.subprocess.run')
    def test_powershell_failures(self, mock_run, error):
        mock_run.side_effect = error
        assert PowerShellProber().probe() is None

    def test_default_prober_by_platform(self):
        with patch.object(fullscreen.sys, 'platform', 'linux'):
            assert isinstance(default_prober(), NullProber)
        with patch.object(fullscreen.sys, 'platform', 'win32'):
            assert isinstance(default_prober(2.0), PowerShellProber)

    def test_probe_summary(self):
        assert probe_summary(NullProber()) == ["Prober: NullProber", "Foreground window: unavailable"]

        prober = Mock()
        prober.probe.return_value = window(0, 0, 800, 600, 5)
        assert probe_summary(prober)[1] == "Foreground window: 800x600 at (0, 0), pid 5"
