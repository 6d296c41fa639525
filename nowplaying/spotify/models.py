"""
Data models for credentials, playback state and listening statistics

This module defines the data structures exchanged between the remote playback
client, the token lifecycle manager and the presence engine. Models are built
from raw Web API payloads through ``from_spotify_data()`` factory methods that
tolerate missing optional fields, and can be turned back into plain
dictionaries for the presentation layer with ``to_dict()``.

Model Overview:

1. **Credentials**
   - TokenSet: access token, refresh token and absolute expiry (epoch ms)

2. **Playback state**
   - SpotifyArtist / SpotifyAlbum / TrackInfo: the currently playing work
   - PlaybackSnapshot: one immutable observation of the player

3. **Statistics**
   - PlayHistoryItem: a recently-played entry
   - PlaybackStats: the five-way statistics fan-out result

Snapshots are frozen dataclasses: a poll produces one, the next poll
supersedes it, nothing mutates it in between.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..utils.helpers import now_ms, parse_iso_timestamp_ms


# Subtracted from the provider's stated token lifetime so that a token read
# as valid still has a real remaining lifetime
TOKEN_EXPIRY_MARGIN_SECONDS = 30
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS


def expiry_from_lifetime(expires_in: Optional[Any], now: Optional[int] = None) -> int:
    """
    Compute an absolute expiry from a token endpoint ``expires_in`` value

    Args:
        expires_in: Lifetime in seconds as returned by the provider (may be None)
        now: Current epoch milliseconds, defaults to the wall clock

    Returns:
        Epoch milliseconds at which the token must be treated as expired
    """
    try:
        lifetime = int(expires_in) if expires_in is not None else DEFAULT_TOKEN_LIFETIME_SECONDS
    except (TypeError, ValueError):
        lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS
    current = now_ms() if now is None else now
    return current + max(0, lifetime - TOKEN_EXPIRY_MARGIN_SECONDS) * 1000


@dataclass
class TokenSet:
    """
    OAuth credential material owned by the token lifecycle manager

    Attributes:
        access_token: Bearer token for Web API calls
        refresh_token: Long-lived token used to mint new access tokens
        expires_at: Epoch milliseconds, already reduced by the safety margin
    """
    access_token: str
    refresh_token: str
    expires_at: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['TokenSet']:
        """
        Build a TokenSet from its stored representation

        Returns:
            TokenSet, or None when the stored value is missing a required field
        """
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                access_token=str(data.get('access_token') or ''),
                refresh_token=str(data.get('refresh_token') or ''),
                expires_at=int(data['expires_at']),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'access_token': self.access_token,
            'refresh_token': self.refresh_token,
            'expires_at': self.expires_at,
        }

    def is_valid(self, now: Optional[int] = None) -> bool:
        """True when the access token may be used without refreshing"""
        current = now_ms() if now is None else now
        return bool(self.access_token) and current < self.expires_at


@dataclass(frozen=True)
class OAuthTransaction:
    """
    State of one browser-based connect attempt

    Single-use: generated per connect attempt, overwritten by the next one
    and cleared once the callback has been accepted.
    """
    state: str
    code_verifier: str
    redirect_port: int


@dataclass(frozen=True)
class SpotifyArtist:
    """Artist reference as embedded in track payloads"""
    name: str
    id: Optional[str] = None

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'SpotifyArtist':
        return cls(name=data.get('name') or '', id=data.get('id'))


@dataclass(frozen=True)
class SpotifyAlbum:
    """
    Album context of a track

    Images are kept as the raw list of ``{url, width, height}`` dictionaries,
    largest first as the API returns them.
    """
    name: str
    images: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def from_spotify_data(cls, data: Optional[Dict[str, Any]]) -> 'SpotifyAlbum':
        data = data or {}
        return cls(name=data.get('name') or '', images=tuple(data.get('images') or ()))

    def get_best_image(self, min_size: int = 300) -> Optional[str]:
        """
        Select album artwork for a given display size

        Picks the largest image meeting ``min_size`` on either side, falling
        back to the largest available image.

        Returns:
            Image URL, or None if the album has no artwork
        """
        if not self.images:
            return None
        suitable = [img for img in self.images
                    if (img.get('width') or 0) >= min_size or (img.get('height') or 0) >= min_size]
        candidates = suitable or list(self.images)
        return max(candidates, key=lambda img: (img.get('width') or 0) * (img.get('height') or 0)).get('url')


@dataclass(frozen=True)
class TrackInfo:
    """
    The currently playing work

    Attributes:
        id: Spotify track id (None for local files)
        name: Track title
        duration_ms: Track length, 0 when unknown
        album: Album context with artwork
        artists: Contributing artists, primary artist first
    """
    name: str
    duration_ms: int = 0
    album: SpotifyAlbum = field(default_factory=lambda: SpotifyAlbum(name=''))
    artists: Tuple[SpotifyArtist, ...] = ()
    id: Optional[str] = None

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'TrackInfo':
        return cls(
            id=data.get('id'),
            name=data.get('name') or '',
            duration_ms=int(data.get('duration_ms') or 0),
            album=SpotifyAlbum.from_spotify_data(data.get('album')),
            artists=tuple(SpotifyArtist.from_spotify_data(a) for a in data.get('artists') or () if a),
        )

    @property
    def primary_artist(self) -> str:
        return self.artists[0].name if self.artists else ''

    @property
    def all_artists(self) -> str:
        return ', '.join(a.name for a in self.artists if a.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'duration_ms': self.duration_ms,
            'album': {'name': self.album.name, 'images': [dict(img) for img in self.album.images]},
            'artists': [{'name': a.name} for a in self.artists],
        }


@dataclass(frozen=True)
class PlaybackSnapshot:
    """
    One observation of the remote player

    Absence of ``item`` or ``is_playing=False`` means nothing is actively
    playing.
    """
    is_playing: bool
    progress_ms: int = 0
    item: Optional[TrackInfo] = None

    @classmethod
    def from_spotify_data(cls, data: Optional[Dict[str, Any]]) -> Optional['PlaybackSnapshot']:
        """
        Build a snapshot from a currently-playing payload

        Args:
            data: Decoded JSON body, or None for a 204 "nothing playing" reply

        Returns:
            PlaybackSnapshot, or None when the provider reported no content
        """
        if not data:
            return None
        item = data.get('item')
        return cls(
            is_playing=bool(data.get('is_playing')),
            progress_ms=int(data.get('progress_ms') or 0),
            # Episodes and ads come through without track artists; still a TrackInfo
            item=TrackInfo.from_spotify_data(item) if isinstance(item, dict) else None,
        )

    @property
    def is_active(self) -> bool:
        """True when something is audibly playing"""
        return self.is_playing and self.item is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_playing': self.is_playing,
            'progress_ms': self.progress_ms,
            'item': self.item.to_dict() if self.item else None,
        }


@dataclass(frozen=True)
class PlayHistoryItem:
    """A recently-played entry"""
    played_at: str
    track: TrackInfo

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'PlayHistoryItem':
        return cls(
            played_at=data.get('played_at') or '',
            track=TrackInfo.from_spotify_data(data.get('track') or {}),
        )


@dataclass
class PlaybackStats:
    """
    Aggregate listening statistics

    Tracks and artists are kept as raw API dictionaries; the statistics page
    renders fields (genres, images, links) the engine has no use for.
    """
    recently_played: List[PlayHistoryItem] = field(default_factory=list)
    top_tracks_short: List[Dict[str, Any]] = field(default_factory=list)
    top_tracks_medium: List[Dict[str, Any]] = field(default_factory=list)
    top_artists_short: List[Dict[str, Any]] = field(default_factory=list)
    top_artists_medium: List[Dict[str, Any]] = field(default_factory=list)

    def listening_minutes(self, now: Optional[int] = None) -> Tuple[int, int]:
        """
        Estimate minutes listened over the last day and the last week

        Each recently-played entry contributes its rounded duration in
        minutes to every window its ``played_at`` falls into.

        Args:
            now: Current epoch milliseconds, defaults to the wall clock

        Returns:
            Tuple of (day_minutes, week_minutes)
        """
        current = now_ms() if now is None else now
        day_minutes = 0
        week_minutes = 0
        for entry in self.recently_played:
            played_at = parse_iso_timestamp_ms(entry.played_at)
            if played_at is None:
                continue
            minutes = int(entry.track.duration_ms / 60000 + 0.5)
            age = current - played_at
            if age <= DAY_MS:
                day_minutes += minutes
            if age <= WEEK_MS:
                week_minutes += minutes
        return day_minutes, week_minutes

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recentlyPlayed': [
                {'played_at': entry.played_at, 'track': entry.track.to_dict()}
                for entry in self.recently_played
            ],
            'topTracksShort': self.top_tracks_short,
            'topTracksMedium': self.top_tracks_medium,
            'topArtistsShort': self.top_artists_short,
            'topArtistsMedium': self.top_artists_medium,
        }
