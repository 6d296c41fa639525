"""Test the command line interface"""

import pytest
from click.testing import CliRunner
from unittest.mock import Mock, patch

from nowplaying.exceptions import ConfigError, NotConnectedError, PermissionDeniedError
from nowplaying.main import cli
from nowplaying.spotify.models import PlaybackStats

from conftest import make_snapshot


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def engine():
    return Mock()


@pytest.fixture(autouse=True)
def cli_environment(settings, engine):
    with patch('nowplaying.main.configure_from_settings'), \
            patch('nowplaying.main.get_settings', return_value=settings), \
            patch('nowplaying.main.build_engine', return_value=engine):
        yield


class TestCli:
    """Test command wiring and error reporting"""

    def test_version(self, runner):
        result = runner.invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert "Now-Playing Companion 1.0.0" in result.output

    def test_help_without_command(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "auth" in result.output and "doctor" in result.output

    def test_client_id(self, runner, engine):
        result = runner.invoke(cli, ['client-id', '0123456789abcdef0123456789abcdef'])
        assert result.exit_code == 0
        engine.set_client_id.assert_called_once_with('0123456789abcdef0123456789abcdef')

    def test_client_id_rejected(self, runner, engine):
        engine.set_client_id.side_effect = ConfigError("Client ID must be 32 hexadecimal characters")

        result = runner.invoke(cli, ['client-id', 'bad'])
        assert result.exit_code == 1
        assert "Client ID must be 32 hexadecimal characters" in result.output

    def test_now(self, runner, engine):
        engine.refresh_now_playing.return_value = make_snapshot()

        result = runner.invoke(cli, ['now'])
        assert result.exit_code == 0
        assert "Playing: Artist - Song [0:42 / 3:35]" in result.output

    def test_player_not_connected(self, runner, engine):
        engine.player_action.side_effect = NotConnectedError()

        result = runner.invoke(cli, ['player', 'next'])
        assert result.exit_code == 1
        assert "nowplaying auth login" in result.output

    def test_player_toggle_refreshes_first(self, runner, engine):
        result = runner.invoke(cli, ['player', 'toggle'])
        assert result.exit_code == 0
        engine.refresh_now_playing.assert_called_once()
        engine.player_action.assert_called_once_with('toggle')

    def test_stats(self, runner, engine):
        engine.get_stats.return_value = PlaybackStats(
            top_tracks_short=[{'name': 'Hit', 'artists': [{'name': 'Band'}]}],
            top_artists_short=[{'name': 'Band'}],
        )

        result = runner.invoke(cli, ['stats'])
        assert result.exit_code == 0
        assert "1. Band - Hit" in result.output
        assert "0 min today" in result.output

    def test_stats_permission_missing(self, runner, engine):
        engine.get_stats.side_effect = PermissionDeniedError(
            "Statistics permission missing. Disconnect and connect to Spotify again.", status=403)

        result = runner.invoke(cli, ['stats'])
        assert result.exit_code == 1
        assert "Statistics permission missing" in result.output

    def test_lyrics(self, runner, engine):
        engine.resolver.resolve.return_value = "la la la"

        result = runner.invoke(cli, ['lyrics', 'Song', 'Artist', '--duration-ms', '215000'])
        assert result.exit_code == 0
        assert "la la la" in result.output
        engine.resolver.resolve.assert_called_once_with('Song', 'Artist', 215000)

    def test_lyrics_not_found(self, runner, engine):
        engine.resolver.resolve.return_value = None
        result = runner.invoke(cli, ['lyrics', 'Song', 'Artist'])
        assert "No lyrics found" in result.output

    def test_config_validate(self, runner, settings):
        result = runner.invoke(cli, ['config', 'validate'])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

        settings.polling.playing_interval = -1
        result = runner.invoke(cli, ['config', 'validate'])
        assert result.exit_code == 1
        assert "polling.playing_interval must be positive" in result.output

    def test_config_show(self, runner):
        result = runner.invoke(cli, ['config', 'show'])
        assert result.exit_code == 0
        assert "http://127.0.0.1:43821/callback" in result.output

    def test_auth_status_not_connected(self, runner, engine):
        engine.get_settings_snapshot.return_value = {
            'hasToken': False,
            'clientId': '',
            'diagnostics': {
                'lastTokenRefreshStatus': 'idle',
                'lastTokenRefreshAt': 0,
                'lastTokenRefreshError': '',
            },
        }
        engine.token_manager.load.return_value = None

        result = runner.invoke(cli, ['auth', 'status'])
        assert result.exit_code == 0
        assert "Not connected" in result.output
        assert "Client ID: not set" in result.output
        assert "Last refresh: idle (never)" in result.output
