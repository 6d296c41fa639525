"""
Presence poller: the adaptive scheduling loop

States: ``STOPPED`` and ``POLLING``. While polling, one cycle runs at a time
and the next one is scheduled only after the current one has finished all of
its side effects:

1. Ask for a usable access token. None means "not connected": clear the
   presence and come back after the idle interval.
2. Fetch the current playback. On success the backoff level drops to 0 and
   the listener decides visibility; the next cycle follows after the
   playing interval when the widget is visible, the idle interval otherwise.
3. On any failure the listener clears the presence, the backoff level goes
   up by one and the next cycle waits
   ``min(error_base * 2 ** (level - 1), error_ceiling)``.
4. The next cycle is scheduled only if the poller is still polling.

Stopping cancels the scheduled cycle. A cycle that is already running is
allowed to finish but cannot schedule a successor.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..spotify.models import PlaybackSnapshot
from ..utils.logger import get_logger


class PollerState(Enum):
    STOPPED = "stopped"
    POLLING = "polling"


@dataclass
class PollingPolicy:
    """
    Cadence constants plus the backoff counter

    All intervals are in seconds.
    """
    playing_interval: float = 3.5
    idle_interval: float = 12.0
    error_base: float = 6.0
    error_ceiling: float = 60.0
    backoff_level: int = 0

    def error_delay(self, level: int) -> float:
        """Delay after ``level`` consecutive failures (level >= 1)"""
        return min(self.error_base * 2 ** (max(1, level) - 1), self.error_ceiling)

    def record_success(self) -> None:
        self.backoff_level = 0

    def record_failure(self) -> float:
        """Count a failure and return the delay before the next attempt"""
        self.backoff_level += 1
        return self.error_delay(self.backoff_level)

    def steady_delay(self, visible: bool) -> float:
        return self.playing_interval if visible else self.idle_interval


class Scheduler:
    """Runs a callable once after a delay; the returned handle has ``cancel()``"""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        raise NotImplementedError


class ThreadingScheduler(Scheduler):
    """One daemon ``threading.Timer`` per scheduled call"""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class PresenceListener:
    """Receives the outcome of each poll cycle"""

    def on_not_connected(self) -> None:
        raise NotImplementedError

    def on_snapshot(self, snapshot: Optional[PlaybackSnapshot]) -> bool:
        """Apply a fresh snapshot; return whether the widget is now visible"""
        raise NotImplementedError

    def on_poll_failure(self, error: Exception) -> None:
        raise NotImplementedError


class PresencePoller:
    """
    Adaptive polling state machine

    Attributes:
        policy: Cadence and backoff state
        last_delay: Delay chosen by the most recent cycle, in seconds
    """

    def __init__(
        self,
        get_token: Callable[[], Optional[str]],
        fetch_now_playing: Callable[[str], Optional[PlaybackSnapshot]],
        listener: PresenceListener,
        policy: Optional[PollingPolicy] = None,
        scheduler: Optional[Scheduler] = None
    ):
        self.get_token = get_token
        self.fetch_now_playing = fetch_now_playing
        self.listener = listener
        self.policy = policy or PollingPolicy()
        self.scheduler = scheduler or ThreadingScheduler()
        self.logger = get_logger(__name__)
        self.last_delay: Optional[float] = None

        self._state = PollerState.STOPPED
        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._handle: Any = None
        self._cycle_thread: Optional[threading.Thread] = None
        # Bumped on every start so a cycle from an earlier run cannot
        # schedule into the current one
        self._run_id = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is PollerState.POLLING

    def start(self) -> bool:
        """
        Enter POLLING and schedule an immediate first cycle

        Returns:
            False if the poller was already polling
        """
        with self._lock:
            if self._state is PollerState.POLLING:
                return False
            self._state = PollerState.POLLING
            self.policy.record_success()
            self._run_id += 1
            run_id = self._run_id
            self._handle = self.scheduler.call_later(0, lambda: self._run_cycle(run_id))
        self.logger.info("Presence polling started")
        return True

    def stop(self) -> bool:
        """
        Enter STOPPED and cancel the scheduled cycle

        Returns:
            False if the poller was already stopped
        """
        with self._lock:
            if self._state is PollerState.STOPPED:
                return False
            self._state = PollerState.STOPPED
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
        self.logger.info("Presence polling stopped")
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no cycle is running

        Called from inside a cycle it returns immediately.

        Returns:
            False if a cycle was still running when the timeout expired
        """
        if self._cycle_thread is threading.current_thread():
            return True
        acquired = self._cycle_lock.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._cycle_lock.release()
        return acquired

    def _run_cycle(self, run_id: int) -> None:
        with self._lock:
            if self._state is not PollerState.POLLING or run_id != self._run_id:
                return
            self._handle = None

        delay = self.poll_once()

        with self._lock:
            if self._state is not PollerState.POLLING or run_id != self._run_id:
                return
            self._handle = self.scheduler.call_later(delay, lambda: self._run_cycle(run_id))

    def poll_once(self) -> float:
        """
        Run one full cycle without scheduling a successor

        Never raises; every failure is turned into a backoff delay.

        Returns:
            Delay in seconds before the next cycle should run
        """
        with self._cycle_lock:
            self._cycle_thread = threading.current_thread()
            try:
                token = self.get_token()
                if not token:
                    self.listener.on_not_connected()
                    delay = self.policy.idle_interval
                else:
                    snapshot = self.fetch_now_playing(token)
                    self.policy.record_success()
                    visible = self.listener.on_snapshot(snapshot)
                    delay = self.policy.steady_delay(visible)
            except Exception as e:
                delay = self.policy.record_failure()
                self.logger.warning(
                    f"Now playing poll failed (backoff level {self.policy.backoff_level}, "
                    f"next in {delay:g}s): {e}"
                )
                self._notify_failure(e)

            self.last_delay = delay
            self._cycle_thread = None
            return delay

    def _notify_failure(self, error: Exception) -> None:
        try:
            self.listener.on_poll_failure(error)
        except Exception:
            self.logger.exception("Presence listener failed while handling a poll failure")
