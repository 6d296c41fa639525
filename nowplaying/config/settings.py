"""
Configuration management for the now-playing companion

This module handles loading, validation, and management of application settings
from multiple sources including YAML files and environment variables. It provides
a centralized configuration system that supports reloading and validation.

The configuration is organized into logical sections using dataclasses:
- Spotify API settings (client id, loopback callback port, scopes, timeouts)
- Polling cadence (playing, idle and error-backoff intervals)
- Lyrics lookup (sources, cache size, timeouts)
- Fullscreen detection (probe interval, probe timeout, area threshold)
- Default widget preferences
- Logging, network and storage locations

The client id may be provided via environment variable, while non-sensitive
settings can be stored in YAML files. Only the Authorization Code with PKCE
flow is used, so no client secret is ever configured.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


DEFAULT_SCOPES = [
    "user-read-currently-playing",
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-recently-played",
    "user-top-read",
]

SIZE_PRESETS = ("small", "medium", "large")
STYLE_PRESETS = ("style1", "style2")


@dataclass
class SpotifyConfig:
    """
    Spotify Web API configuration

    The redirect URI registered in the Spotify developer dashboard must be
    ``http://<redirect_host>:<redirect_port>/callback``.
    """
    client_id: str = ""
    redirect_host: str = "127.0.0.1"
    redirect_port: int = 43821
    scopes: List[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    request_timeout: float = 10.0
    retries: int = 0


@dataclass
class PollingConfig:
    """
    Presence poller cadence, in seconds

    Fast refresh while something is audibly playing, slow idle polling to
    conserve the remote quota, exponential pullback under sustained failure.
    """
    playing_interval: float = 3.5
    idle_interval: float = 12.0
    error_base: float = 6.0
    error_ceiling: float = 60.0


@dataclass
class LyricsConfig:
    """Lyrics lookup configuration"""
    enabled: bool = True
    cache_size: int = 80
    timeout: float = 10.0
    lrclib_url: str = "https://lrclib.net/api/get"
    lyricsovh_url: str = "https://api.lyrics.ovh/v1"


@dataclass
class FullscreenConfig:
    """
    Fullscreen detection configuration

    A foreground window covering more than ``area_ratio`` of its display's
    work area is treated as a fullscreen application.
    """
    check_interval: float = 3.0
    probe_timeout: float = 1.2
    area_ratio: float = 0.92


@dataclass
class WidgetConfig:
    """Default widget preferences used until the user changes them"""
    size_preset: str = "medium"
    show_progress: bool = True
    style_preset: str = "style1"
    hide_on_fullscreen: bool = True


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Controls application logging behavior including log levels, file output,
    rotation, and console formatting.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class NetworkConfig:
    """HTTP settings shared by the lyric sources"""
    user_agent: str = "NowPlaying-Companion/1.0"


@dataclass
class SecurityConfig:
    """
    Storage locations

    The key/value store holds the client id, the token set and the pending
    OAuth transaction, so it is written with owner-only permissions.
    """
    config_directory: str = "~/.nowplaying/"
    store_path: str = "~/.nowplaying/store.json"


class Settings:
    """
    Main settings class that manages all configuration

    Loads settings from multiple sources (YAML files, environment variables)
    and provides a unified interface for accessing configuration throughout
    the application.
    """

    def __init__(self, config_path: Optional[str] = None, create_directories: bool = True):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
            create_directories: Create the configuration directory if missing
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".nowplaying"

        self.spotify = SpotifyConfig()
        self.polling = PollingConfig()
        self.lyrics = LyricsConfig()
        self.fullscreen = FullscreenConfig()
        self.widget = WidgetConfig()
        self.logging = LoggingConfig()
        self.network = NetworkConfig()
        self.security = SecurityConfig()

        # Precedence: defaults < YAML < environment
        self._load_config()
        self._load_environment_variables()
        if create_directories:
            self._create_directories()

    def _sections(self) -> Dict[str, Any]:
        return {
            'spotify': self.spotify,
            'polling': self.polling,
            'lyrics': self.lyrics,
            'fullscreen': self.fullscreen,
            'widget': self.widget,
            'logging': self.logging,
            'network': self.network,
            'security': self.security,
        }

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in multiple locations in order of
        precedence. The first file found will be used.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except (OSError, yaml.YAMLError) as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        self._apply_config(config_data)

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only attributes that exist in both the config file and the dataclass
        definition are updated; unknown sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """Load overrides from environment variables"""
        env_mappings = {
            'SPOTIFY_CLIENT_ID': lambda v: setattr(self.spotify, 'client_id', v.strip()),
            'NOWPLAYING_REDIRECT_PORT': lambda v: setattr(self.spotify, 'redirect_port', int(v)),
            'NOWPLAYING_STORE_PATH': lambda v: setattr(self.security, 'store_path', v),
            'NOWPLAYING_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                try:
                    setter(value)
                except ValueError as e:
                    print(f"Warning: Ignoring invalid {env_var}={value!r}: {e}")

    def _create_directories(self) -> None:
        """Ensure the configuration directory exists"""
        directory = self.get_config_directory()
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Warning: Failed to create directory {directory}: {e}")

    def get_config_directory(self) -> Path:
        """
        Get the expanded config directory path

        Returns:
            Path object for the configuration directory
        """
        return Path(self.security.config_directory).expanduser()

    def get_store_path(self) -> Path:
        """
        Get the expanded key/value store path

        Returns:
            Path object for the credential and preferences store file
        """
        return Path(self.security.store_path).expanduser()

    def get_redirect_uri(self, port: Optional[int] = None) -> str:
        """
        Build the loopback redirect URI registered with Spotify

        Args:
            port: Port override (the store may remember a previously used port)

        Returns:
            Redirect URI string
        """
        return f"http://{self.spotify.redirect_host}:{port or self.spotify.redirect_port}/callback"

    def save_config(self, path: Optional[str] = None) -> None:
        """
        Save current configuration to file

        The client id is blanked in the saved file; it belongs in the store
        or in the environment.

        Args:
            path: Custom path to save config, defaults to user config directory

        Raises:
            OSError: If the configuration cannot be written
        """
        if not path:
            target = self.get_config_directory() / "config.yaml"
        else:
            target = Path(path)

        config_data = {name: asdict(section) for name, section in self._sections().items()}
        config_data['spotify']['client_id'] = ""

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f, default_flow_style=False, indent=2)

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of human-readable problems; empty when the configuration is valid
        """
        errors = []

        polling = self.polling
        for name in ('playing_interval', 'idle_interval', 'error_base', 'error_ceiling'):
            if getattr(polling, name) <= 0:
                errors.append(f"polling.{name} must be positive")
        if polling.error_ceiling < polling.error_base:
            errors.append("polling.error_ceiling must be >= polling.error_base")

        try:
            port = int(self.spotify.redirect_port)
        except (TypeError, ValueError):
            port = 0
        if not 1 <= port <= 65535:
            errors.append(f"Invalid redirect port: {self.spotify.redirect_port}")

        if self.widget.size_preset not in SIZE_PRESETS:
            errors.append(f"Invalid widget size preset: {self.widget.size_preset}")

        if self.widget.style_preset not in STYLE_PRESETS:
            errors.append(f"Invalid widget style preset: {self.widget.style_preset}")

        if not 0 < self.fullscreen.area_ratio <= 1:
            errors.append(f"fullscreen.area_ratio must be in (0, 1]: {self.fullscreen.area_ratio}")

        if self.lyrics.cache_size < 1:
            errors.append("lyrics.cache_size must be at least 1")

        return errors

    def __str__(self) -> str:
        sections = [
            f"Polling: {self.polling.playing_interval}s/{self.polling.idle_interval}s",
            f"Lyrics: {'enabled' if self.lyrics.enabled else 'disabled'}",
            f"Store: {self.security.store_path}",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance for singleton pattern
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance, created on first access
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global _settings
    _settings = Settings(config_path)
    return _settings
