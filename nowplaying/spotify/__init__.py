"""
Spotify integration package

1. Models (models.py):
   - TokenSet and OAuthTransaction: credential material
   - PlaybackSnapshot, TrackInfo, SpotifyAlbum, SpotifyArtist: player state
   - PlayHistoryItem, PlaybackStats: listening statistics

2. Client (client.py):
   - PKCE helpers and authorization URL construction
   - Code and refresh-token exchanges against the accounts service
   - PlaybackClient: now playing, transport controls, statistics

All remote failures surface as RemoteError subclasses from
``nowplaying.exceptions``; a "nothing playing" reply is ``None``.
"""

from .client import (
    PlaybackClient,
    build_authorize_url,
    code_challenge,
    create_transaction,
    exchange_code_for_token,
    refresh_access_token,
)
from .models import (
    OAuthTransaction,
    PlayHistoryItem,
    PlaybackSnapshot,
    PlaybackStats,
    SpotifyAlbum,
    SpotifyArtist,
    TokenSet,
    TrackInfo,
)

__all__ = [
    # Client
    'PlaybackClient',
    'build_authorize_url',
    'code_challenge',
    'create_transaction',
    'exchange_code_for_token',
    'refresh_access_token',

    # Models
    'OAuthTransaction',
    'PlayHistoryItem',
    'PlaybackSnapshot',
    'PlaybackStats',
    'SpotifyAlbum',
    'SpotifyArtist',
    'TokenSet',
    'TrackInfo',
]
