"""
Now-Playing Companion: a desktop presence for what you are playing on Spotify

The companion keeps a compact "now playing" widget in sync with a Spotify
account. It maintains a valid OAuth credential, polls playback on an adaptive
schedule, decides when the floating widget and the lyrics overlay should be
on screen, and resolves lyrics for the current track.

## Packages

**Configuration (`nowplaying/config/`)**
- Settings from YAML files and environment variables
- JSON key/value store for credentials, preferences and window positions
- Token lifecycle manager and the PKCE connect handshake

**Spotify integration (`nowplaying/spotify/`)**
- Data models for tokens, playback snapshots and listening statistics
- Remote playback client with classified errors

**Lyrics (`nowplaying/lyrics/`)**
- LRCLIB and lyrics.ovh sources
- Resolver with a bounded cache and stale-result protection

**Presence (`nowplaying/presence/`)**
- Adaptive presence poller
- Presentation coordinator and window layer interface
- Foreground-window probe and fullscreen gate
- The engine object wiring it all together

**Utilities (`nowplaying/utils/`)**
- Logging, time helpers, input validation

The command line entry point lives in `nowplaying/main.py`.
"""

__version__ = "1.0.0"

__all__ = [
    "__version__",
]
