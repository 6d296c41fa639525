"""
Main CLI interface for the now-playing companion

Thin bootstrap around the presence engine. The desktop shell normally drives
the engine directly; the CLI exists to run it headless, to connect an
account, and to inspect what the engine sees.

Command groups:
- run: poll and report what is playing until interrupted
- auth (login, logout, status) and client-id: account connection
- now, player: current playback and transport controls
- stats, lyrics: listening statistics and lyrics lookup
- config (show, validate) and doctor: configuration and diagnostics
"""

import functools
import json
import sys
import time

import click

from . import __version__
from .config.settings import get_settings, reload_settings
from .exceptions import NotConnectedError, NowPlayingError, PermissionDeniedError
from .presence.engine import PLAYER_ACTIONS, PresenceEngine
from .presence.events import LoggingSink
from .presence.fullscreen import default_prober, probe_summary
from .utils.helpers import format_duration, format_timestamp_ms, truncate_string
from .utils.logger import configure_from_settings, get_current_log_file, get_logger
from .utils.validation import validate_client_id, validate_port


logger = get_logger(__name__)


def print_banner():
    """Print application banner to console"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                     Now-Playing Companion                     ║
║                                                               ║
║      Spotify now-playing widget, lyrics and statistics        ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    click.echo(click.style(banner, fg='green', bold=True))


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Classified engine errors are shown as-is; anything else is logged with
    its traceback in the file log and reported briefly.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except NotConnectedError:
            click.echo(click.style("Not connected. Run 'nowplaying auth login' first.", fg='red'), err=True)
            sys.exit(1)
        except NowPlayingError as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
        except Exception as e:
            logger.exception(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def build_engine(**kwargs) -> PresenceEngine:
    """Create an engine from the active settings with a console event sink"""
    kwargs.setdefault('sink', LoggingSink())
    return PresenceEngine(get_settings(), **kwargs)


def _format_snapshot(snapshot) -> str:
    if snapshot is None or snapshot.item is None:
        return "Nothing playing"
    item = snapshot.item
    state = "Playing" if snapshot.is_playing else "Paused"
    position = f"{format_duration(snapshot.progress_ms / 1000)} / {format_duration(item.duration_ms / 1000)}"
    return f"{state}: {item.all_artists} - {item.name} [{position}]"


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    Now-Playing Companion - Spotify presence, lyrics and statistics

    Keeps a floating "now playing" surface in sync with your Spotify account.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"Now-Playing Companion {__version__}")
        return

    settings = reload_settings(config) if config else get_settings()
    if verbose:
        settings.logging.level = "DEBUG"
        ctx.obj['verbose'] = True
    configure_from_settings()

    if config:
        logger.console_info(f"Loaded config: {config}")

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


@cli.command()
@handle_error
def run():
    """
    Run the presence engine until interrupted

    Polls Spotify, keeps a headless widget state and reports track and lyrics
    changes on the console.
    """
    engine = build_engine()
    try:
        if not engine.token_manager.has_token():
            click.echo("Not connected. Run 'nowplaying auth login' first.")
            return
        engine.startup()
        click.echo("Watching playback (Ctrl-C to stop)...")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        engine.shutdown()


@cli.command('client-id')
@click.argument('client_id')
@handle_error
def client_id(client_id):
    """Store the Spotify application client ID"""
    engine = build_engine()
    engine.set_client_id(client_id)
    click.echo("Client ID saved")


@cli.group()
def auth():
    """Spotify account connection"""
    pass


@auth.command()
@click.option('--timeout', type=int, default=300, show_default=True, help='Seconds to wait for the browser')
@click.option('--no-browser', is_flag=True, help='Print the authorization URL instead of opening it')
@handle_error
def login(timeout, no_browser):
    """
    Connect a Spotify account

    Opens the Spotify consent page and waits for the redirect to the local
    callback receiver.
    """
    engine = build_engine()
    try:
        if engine.token_manager.has_token():
            click.echo("Already connected. Run 'nowplaying auth logout' to connect another account.")
            return

        url = engine.connect(launch_browser=not no_browser)
        click.echo("Opening browser for Spotify authorization...")
        click.echo(f"If the browser doesn't open, visit: {url}")
        click.echo("Waiting for authorization callback...")

        deadline = time.time() + timeout
        while not engine.token_manager.has_token():
            if time.time() > deadline:
                raise TimeoutError("Authorization timeout")
            time.sleep(0.5)
        click.echo(click.style("Successfully connected to Spotify", fg='green'))
    finally:
        engine.shutdown()


@auth.command()
@handle_error
def logout():
    """Forget the stored token"""
    engine = build_engine()
    engine.disconnect()
    engine.shutdown()


@auth.command()
@handle_error
def status():
    """Show connection state and the last token refresh"""
    engine = build_engine()
    snapshot = engine.get_settings_snapshot()
    tokens = engine.token_manager.load()
    diagnostics = snapshot['diagnostics']

    if snapshot['hasToken']:
        click.echo("Connection Status: Connected")
        click.echo(f"   Token expires: {format_timestamp_ms(tokens.expires_at if tokens else 0)}")
    else:
        click.echo("Connection Status: Not connected")
        click.echo("   Run 'nowplaying auth login' to connect")

    client = snapshot['clientId']
    click.echo(f"   Client ID: {truncate_string(client, 12) if client else 'not set'}")
    click.echo(f"   Last refresh: {diagnostics['lastTokenRefreshStatus']} "
               f"({format_timestamp_ms(diagnostics['lastTokenRefreshAt'])})")
    if diagnostics['lastTokenRefreshError']:
        click.echo(f"   Last refresh error: {diagnostics['lastTokenRefreshError']}")


@cli.command()
@handle_error
def now():
    """Show what is playing right now"""
    engine = build_engine()
    click.echo(_format_snapshot(engine.refresh_now_playing()))


@cli.command()
@click.argument('action', type=click.Choice(PLAYER_ACTIONS))
@handle_error
def player(action):
    """Skip to the previous/next track or toggle play/pause"""
    engine = build_engine()
    if action == 'toggle':
        engine.refresh_now_playing()
    engine.player_action(action)
    click.echo(f"Sent '{action}'")


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print raw statistics as JSON')
@handle_error
def stats(as_json):
    """Show listening statistics"""
    engine = build_engine()
    try:
        result = engine.get_stats()
    except PermissionDeniedError as e:
        click.echo(click.style(str(e), fg='yellow'), err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    day_minutes, week_minutes = result.listening_minutes()
    click.echo(f"Listening time: {day_minutes} min today, {week_minutes} min this week\n")

    click.echo("Top tracks (last 4 weeks):")
    for i, track in enumerate(result.top_tracks_short[:10], 1):
        artists = ', '.join(a.get('name', '') for a in track.get('artists') or [])
        click.echo(f"   {i:2d}. {artists} - {track.get('name', '')}")

    click.echo("\nTop artists (last 4 weeks):")
    for i, artist in enumerate(result.top_artists_short[:10], 1):
        click.echo(f"   {i:2d}. {artist.get('name', '')}")


@cli.command()
@click.argument('track')
@click.argument('artist')
@click.option('--duration-ms', type=int, default=None, help='Track length hint in milliseconds')
@handle_error
def lyrics(track, artist, duration_ms):
    """Look up lyrics for TRACK by ARTIST"""
    engine = build_engine()
    try:
        text = engine.resolver.resolve(track, artist, duration_ms)
    finally:
        engine.shutdown()

    if text:
        click.echo(text)
    else:
        click.echo("No lyrics found")


@cli.group()
def config():
    """Configuration management"""
    pass


@config.command()
@handle_error
def show():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Current Configuration:\n")

    click.echo("Spotify:")
    click.echo(f"   Redirect URI: {settings.get_redirect_uri()}")
    click.echo(f"   Scopes: {', '.join(settings.spotify.scopes)}")
    click.echo(f"   Request timeout: {settings.spotify.request_timeout}s")

    click.echo("\nPolling:")
    click.echo(f"   Playing: {settings.polling.playing_interval}s")
    click.echo(f"   Idle: {settings.polling.idle_interval}s")
    click.echo(f"   Error backoff: {settings.polling.error_base}s up to {settings.polling.error_ceiling}s")

    click.echo("\nLyrics:")
    click.echo(f"   Enabled: {settings.lyrics.enabled}")
    click.echo(f"   Cache size: {settings.lyrics.cache_size}")

    click.echo("\nFullscreen:")
    click.echo(f"   Check interval: {settings.fullscreen.check_interval}s")
    click.echo(f"   Area ratio: {settings.fullscreen.area_ratio}")

    click.echo("\nStorage:")
    click.echo(f"   Store: {settings.get_store_path()}")


@config.command()
@handle_error
def validate():
    """Check the configuration for problems"""
    errors = get_settings().validate()
    if not errors:
        click.echo(click.style("Configuration is valid", fg='green'))
        return
    click.echo(f"Found {len(errors)} problems:")
    for error in errors:
        click.echo(f"   • {error}")
    sys.exit(1)


@cli.command()
@handle_error
def doctor():
    """
    Run system diagnostics

    Checks configuration, client id, connection state, the callback port and
    the foreground-window probe.
    """
    click.echo("Running diagnostics...\n")
    issues = []

    settings = get_settings()
    errors = settings.validate()
    if errors:
        click.echo("Configuration: Invalid")
        issues.extend(errors)
    else:
        click.echo("Configuration: OK")

    engine = build_engine()
    client = engine.token_manager.get_client_id()
    is_valid, error = validate_client_id(client)
    if is_valid:
        click.echo("Client ID: OK")
    else:
        click.echo(f"Client ID: {error}")
        issues.append("Run 'nowplaying client-id <ID>' with the ID from the Spotify dashboard")

    port = engine.oauth.get_redirect_port()
    is_valid, error = validate_port(port)
    if is_valid:
        click.echo(f"Callback port: {port}")
    else:
        click.echo(f"Callback port: {error}")
        issues.append(error)

    if engine.token_manager.has_token():
        token = engine.token_manager.get_valid_access_token()
        if token:
            click.echo("Spotify connection: OK")
        else:
            click.echo("Spotify connection: Token refresh failed")
            issues.append(engine.token_manager.diagnostics.error or "Token refresh failed")
    else:
        click.echo("Spotify connection: Not connected")
        issues.append("Run 'nowplaying auth login' to connect")

    for line in probe_summary(default_prober(settings.fullscreen.probe_timeout)):
        click.echo(line)

    current_log = get_current_log_file()
    click.echo(f"Logging: {current_log}" if current_log else "Logging: Console only")

    engine.shutdown()

    if issues:
        click.echo(f"\nFound {len(issues)} issues:")
        for issue in issues:
            click.echo(f"   • {issue}")
    else:
        click.echo("\nAll systems operational!")


if __name__ == '__main__':
    cli()
