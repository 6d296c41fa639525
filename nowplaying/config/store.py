"""
Key/value persistence for credentials, OAuth transaction state and preferences

The engine needs nothing more than get/set/delete over string keys with
last-write-wins semantics. The whole map lives in one JSON file, rewritten on
every change, readable only by the owner where the platform supports it.

Keys used by the engine:
    spotifyClientId        client id entered by the user
    tokenSet               {access_token, refresh_token, expires_at (epoch ms)}
    oauthState             state of the pending connect attempt
    codeVerifier           PKCE verifier of the pending connect attempt
    redirectPort           loopback callback port
    widgetPreferences      {sizePreset, showProgress, stylePreset, hideOnFullscreen}
    widgetPinned           whether the widget may be moved
    widgetBounds           last widget position on any display
    widgetBoundsByDisplay  {display id: {x, y}}
    lyricsBoundsByDisplay  {display id: {x, y}}
    lyricsVisible          lyrics surface toggle
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils.logger import get_logger


class JsonStore:
    """
    Thread-safe JSON-file backed key/value store

    The poll thread, the OAuth callback thread and the command caller all
    share one instance, so every public method holds ``_lock``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = get_logger(__name__)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to read store {self.path}, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            self.logger.warning(f"Store {self.path} does not contain an object, starting empty")
            return {}
        return data

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # mkstemp creates the file owner read/write only (0o600)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._flush()
