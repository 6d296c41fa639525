"""
LRCLIB lyrics source

Primary lyrics source: a free catalog without API keys that often carries
time-synced (LRC) lyrics. Lookup is an exact-match query on track and artist
name, with the track duration (in whole seconds) as an optional
disambiguation hint. Synced lyrics are preferred over plain lyrics when both
are present.

The source never raises: any network, status or decoding failure is logged
and reported as "no lyrics" (None) so the resolver can fall back.
"""

from typing import Any, Dict, Optional

import requests

from ..utils.logger import get_logger


class LrclibProvider:
    """Exact-match lookups against the LRCLIB ``/api/get`` endpoint"""

    name = "lrclib"

    def __init__(
        self,
        url: str = "https://lrclib.net/api/get",
        timeout: float = 10.0,
        user_agent: str = "NowPlaying-Companion/1.0",
        session: Optional[requests.Session] = None
    ):
        self.url = url
        self.timeout = timeout
        self.logger = get_logger(__name__)

        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})

    def search_lyrics(self, track: str, artist: str, duration_ms: Optional[int] = None) -> Optional[str]:
        """
        Look up lyrics for a track

        Args:
            track: Track title (already trimmed)
            artist: Primary artist name (already trimmed)
            duration_ms: Track length; sent rounded to seconds when positive

        Returns:
            Synced lyrics if available, otherwise plain lyrics, otherwise None
        """
        params: Dict[str, Any] = {'track_name': track, 'artist_name': artist}
        if duration_ms and duration_ms > 0:
            params['duration'] = int(duration_ms / 1000 + 0.5)

        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            if not response.ok:
                self.logger.debug(f"LRCLIB miss for '{artist} - {track}': HTTP {response.status_code}")
                return None
            data = response.json()
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"LRCLIB request failed: {e}")
            return None
        except ValueError as e:
            self.logger.warning(f"LRCLIB returned malformed JSON: {e}")
            return None

        if not isinstance(data, dict):
            return None

        text = data.get('syncedLyrics') or data.get('plainLyrics')
        if text and str(text).strip():
            return str(text)
        return None
