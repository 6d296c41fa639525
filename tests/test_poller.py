"""Test the adaptive presence poller"""

import pytest
from unittest.mock import Mock

from nowplaying.exceptions import TransientRemoteError
from nowplaying.presence.coordinator import should_show_widget
from nowplaying.presence.poller import PollerState, PollingPolicy, PresenceListener, PresencePoller

from conftest import make_snapshot


class RecordingListener(PresenceListener):
    def __init__(self):
        self.events = []

    def on_not_connected(self):
        self.events.append('not_connected')

    def on_snapshot(self, snapshot):
        self.events.append(('snapshot', snapshot))
        return should_show_widget(snapshot)

    def on_poll_failure(self, error):
        self.events.append(('failure', error))


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def poller(listener, scheduler):
    return PresencePoller(
        get_token=Mock(return_value="token"),
        fetch_now_playing=Mock(return_value=make_snapshot()),
        listener=listener,
        scheduler=scheduler,
    )


class TestPollingPolicy:
    """Test cadence and backoff arithmetic"""

    def test_error_delays(self):
        policy = PollingPolicy()
        delays = [policy.record_failure() for _ in range(7)]
        assert delays == [6.0, 12.0, 24.0, 48.0, 60.0, 60.0, 60.0]

    def test_success_resets_backoff(self):
        policy = PollingPolicy()
        policy.record_failure()
        policy.record_failure()
        policy.record_success()
        assert policy.backoff_level == 0
        assert policy.record_failure() == 6.0

    def test_steady_delay(self):
        policy = PollingPolicy()
        assert policy.steady_delay(True) == 3.5
        assert policy.steady_delay(False) == 12.0


class TestPresencePoller:
    """Test the polling state machine"""

    def test_start_schedules_immediate_cycle(self, poller, scheduler):
        assert poller.start()
        assert poller.state is PollerState.POLLING
        assert scheduler.last_delay == 0

        assert not poller.start()
        assert len(scheduler.pending()) == 1

    def test_playing_uses_fast_cadence(self, poller, scheduler, listener):
        poller.start()
        scheduler.run_next()

        assert listener.events[0][0] == 'snapshot'
        assert scheduler.last_delay == 3.5
        assert poller.last_delay == 3.5

    def test_paused_uses_idle_cadence(self, poller, scheduler):
        poller.fetch_now_playing.return_value = make_snapshot(is_playing=False)
        poller.start()
        scheduler.run_next()

        assert scheduler.last_delay == 12.0

    def test_nothing_playing_uses_idle_cadence(self, poller, scheduler):
        poller.fetch_now_playing.return_value = None
        poller.start()
        scheduler.run_next()

        assert scheduler.last_delay == 12.0

    def test_not_connected(self, poller, scheduler, listener):
        poller.get_token.return_value = None
        poller.start()
        scheduler.run_next()

        assert listener.events == ['not_connected']
        poller.fetch_now_playing.assert_not_called()
        assert scheduler.last_delay == 12.0

    def test_backoff_sequence_and_recovery(self, poller, scheduler, listener):
        poller.fetch_now_playing.side_effect = TransientRemoteError("Now playing failed: 503", status=503)
        poller.start()

        delays = []
        for _ in range(6):
            scheduler.run_next()
            delays.append(scheduler.last_delay)
        assert delays == [6.0, 12.0, 24.0, 48.0, 60.0, 60.0]
        assert all(event[0] == 'failure' for event in listener.events)

        poller.fetch_now_playing.side_effect = None
        scheduler.run_next()
        assert scheduler.last_delay == 3.5
        assert poller.policy.backoff_level == 0

        poller.fetch_now_playing.side_effect = TransientRemoteError("again")
        scheduler.run_next()
        assert scheduler.last_delay == 6.0

    def test_stop_cancels_scheduled_cycle(self, poller, scheduler):
        poller.start()
        scheduler.run_next()
        scheduled = scheduler.calls[-1]

        assert poller.stop()
        assert scheduled.cancelled
        assert not scheduler.pending()
        assert not poller.stop()

    def test_stop_during_cycle_prevents_reschedule(self, poller, scheduler):
        def fetch(token):
            poller.stop()
            return make_snapshot()

        poller.fetch_now_playing.side_effect = fetch
        poller.start()
        scheduler.run_next()

        assert poller.state is PollerState.STOPPED
        assert not scheduler.pending()

    def test_restart_ignores_stale_callback(self, poller, scheduler):
        poller.start()
        stale = scheduler.calls[-1]
        poller.stop()
        poller.start()

        # A callback from the first run that fires anyway does nothing
        stale.callback()
        poller.fetch_now_playing.assert_not_called()

    def test_restart_resets_backoff(self, poller, scheduler):
        poller.fetch_now_playing.side_effect = TransientRemoteError("down")
        poller.start()
        scheduler.run_next()
        scheduler.run_next()
        poller.stop()

        poller.start()
        assert poller.policy.backoff_level == 0

    def test_listener_failure_is_contained(self, poller, scheduler):
        listener = Mock(spec=PresenceListener)
        listener.on_poll_failure.side_effect = RuntimeError("presentation broke")
        poller.listener = listener
        poller.fetch_now_playing.side_effect = TransientRemoteError("down")

        assert poller.poll_once() == 6.0

    def test_listener_error_on_snapshot_counts_as_failure(self, poller, listener):
        listener.on_snapshot = Mock(side_effect=RuntimeError("render failed"))

        assert poller.poll_once() == 6.0
        assert listener.events[-1][0] == 'failure'
