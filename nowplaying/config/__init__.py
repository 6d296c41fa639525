"""
Configuration package for the now-playing companion

Components:

1. Settings (settings.py):
   - Dataclass sections loaded from YAML files and environment variables
   - Validation and persistence of the configuration file
   - Lazy singleton access through get_settings()

2. Store (store.py):
   - JSON-file key/value store for credentials, the pending OAuth
     transaction, widget preferences and window positions

3. Authentication (auth.py):
   - TokenManager: reuse, refresh or "not connected" decisions
   - OAuthFlow: PKCE connect handshake and loopback callback receiver

Only the settings API is re-exported here. The store and the auth module
depend on the logging utilities, which themselves read the settings, so they
are imported from their modules directly:

    from nowplaying.config import get_settings
    from nowplaying.config.store import JsonStore
    from nowplaying.config.auth import TokenManager, OAuthFlow
"""

from .settings import get_settings, reload_settings, Settings

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
]
