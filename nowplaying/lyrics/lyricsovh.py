"""
lyrics.ovh lyrics source

Fallback source with plain-text lyrics only, addressed by path:
``/v1/<artist>/<track>`` with both segments percent-encoded.
Fails soft like every lyrics source.
"""

import urllib.parse
from typing import Optional

import requests

from ..utils.logger import get_logger


class LyricsOvhProvider:
    """Path-based lookups against lyrics.ovh"""

    name = "lyricsovh"

    def __init__(
        self,
        base_url: str = "https://api.lyrics.ovh/v1",
        timeout: float = 10.0,
        user_agent: str = "NowPlaying-Companion/1.0",
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = get_logger(__name__)

        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})

    def build_url(self, track: str, artist: str) -> str:
        safe_artist = urllib.parse.quote(artist, safe='')
        safe_track = urllib.parse.quote(track, safe='')
        return f"{self.base_url}/{safe_artist}/{safe_track}"

    def search_lyrics(self, track: str, artist: str, duration_ms: Optional[int] = None) -> Optional[str]:
        """
        Look up plain lyrics for a track

        ``duration_ms`` is accepted for interface parity and ignored.

        Returns:
            Lyrics text or None
        """
        try:
            response = self.session.get(self.build_url(track, artist), timeout=self.timeout)
            if not response.ok:
                self.logger.debug(f"lyrics.ovh miss for '{artist} - {track}': HTTP {response.status_code}")
                return None
            data = response.json()
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"lyrics.ovh request failed: {e}")
            return None
        except ValueError as e:
            self.logger.warning(f"lyrics.ovh returned malformed JSON: {e}")
            return None

        if not isinstance(data, dict) or not data.get('lyrics'):
            return None
        return str(data['lyrics'])
