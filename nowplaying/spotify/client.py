"""
Remote playback client for the Spotify accounts service and Web API

This module is the only place that talks to Spotify. Everything in it is
request/response: no token caching, no scheduling, no retry loops. Callers
pass the access token they obtained from the token lifecycle manager and get
back either model objects or a classified exception.

Components:

1. **PKCE helpers**: verifier/state generation (``secrets``), S256 challenge
   (``hashlib``), base64url encoding without padding.

2. **Accounts service** (plain ``requests``): authorize URL construction,
   authorization-code exchange and refresh-token exchange against
   ``/api/token``. Expiries are stored as absolute epoch milliseconds with a
   30 second safety margin already subtracted.

3. **Web API** (``spotipy``): currently-playing fetch, transport controls and
   the five-way statistics fan-out.

Error Mapping:

Every failure is re-raised as a ``RemoteError`` subclass:
- network errors, timeouts, 429 and 5xx -> TransientRemoteError
- 401/403 -> PermissionDeniedError
- token endpoint rejections and malformed token replies -> TokenExchangeError
- anything else -> RemoteError carrying the HTTP status

A 204 from the currently-playing endpoint is not an error: it means nothing
is playing and is returned as ``None``.
"""

import base64
import hashlib
import secrets
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from ..config.settings import DEFAULT_SCOPES
from ..exceptions import (
    PermissionDeniedError,
    RemoteError,
    TokenExchangeError,
    TransientRemoteError,
)
from ..utils.logger import get_logger
from .models import (
    OAuthTransaction,
    PlayHistoryItem,
    PlaybackSnapshot,
    PlaybackStats,
    TokenSet,
    expiry_from_lifetime,
)


AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

STATS_RECENT_LIMIT = 50
STATS_TOP_LIMIT = 20

logger = get_logger(__name__)


def base64url(raw: bytes) -> str:
    """Encode bytes as base64url without trailing padding"""
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


def random_string(length: int = 64) -> str:
    """
    Generate a cryptographically random URL-safe string

    Args:
        length: Number of random bytes before encoding

    Returns:
        base64url string (about 4/3 * length characters)
    """
    return base64url(secrets.token_bytes(length))


def code_challenge(verifier: str) -> str:
    """Derive the S256 PKCE challenge for a code verifier"""
    return base64url(hashlib.sha256(verifier.encode('ascii')).digest())


def create_transaction(redirect_port: int) -> OAuthTransaction:
    """
    Generate the state and verifier for a new connect attempt

    Args:
        redirect_port: Port of the loopback callback receiver

    Returns:
        Fresh single-use OAuthTransaction
    """
    return OAuthTransaction(
        state=random_string(32),
        code_verifier=random_string(64),
        redirect_port=redirect_port,
    )


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    state: str,
    challenge: str,
    scopes: Optional[List[str]] = None
) -> str:
    """
    Build the accounts-service authorization URL for the PKCE flow

    Args:
        client_id: Spotify application client id
        redirect_uri: Loopback callback URI registered for the application
        state: Anti-forgery state of the pending transaction
        challenge: S256 code challenge derived from the transaction verifier
        scopes: Requested scopes, defaults to the engine's fixed scope list

    Returns:
        Complete authorization URL to open in the user's browser
    """
    params = {
        'response_type': 'code',
        'client_id': client_id,
        'scope': ' '.join(scopes or DEFAULT_SCOPES),
        'redirect_uri': redirect_uri,
        'state': state,
        'code_challenge_method': 'S256',
        'code_challenge': challenge,
    }
    return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"


def _post_token(data: Dict[str, str], operation: str, timeout: float) -> Dict[str, Any]:
    """
    POST a form to the token endpoint and return the decoded reply

    Raises:
        TransientRemoteError: Network failure, 429 or 5xx
        TokenExchangeError: Any other rejection, or a reply without an access token
    """
    headers = {'Content-Type': 'application/x-www-form-urlencoded'}
    try:
        response = requests.post(TOKEN_URL, headers=headers, data=data, timeout=timeout)
    except requests.RequestException as e:
        raise TransientRemoteError(f"{operation} failed: {e}", details={'operation': operation}) from e

    if not response.ok:
        status = response.status_code
        message = f"{operation} failed: {status} {response.text}"
        if status == 429 or status >= 500:
            raise TransientRemoteError(message, status=status)
        raise TokenExchangeError(message, status=status)

    try:
        payload = response.json()
    except ValueError as e:
        raise TokenExchangeError(f"{operation} failed: malformed response", status=response.status_code) from e

    if not isinstance(payload, dict) or not payload.get('access_token'):
        raise TokenExchangeError(f"{operation} failed: response has no access token",
                                 status=response.status_code)
    return payload


def exchange_code_for_token(
    client_id: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    timeout: float = 10.0
) -> TokenSet:
    """
    Exchange an authorization code for a token set

    Args:
        client_id: Spotify application client id
        code: Authorization code received on the callback
        redirect_uri: Exactly the redirect URI used in the authorization request
        code_verifier: Verifier of the transaction the code belongs to
        timeout: Request timeout in seconds

    Returns:
        New TokenSet with a margin-adjusted expiry

    Raises:
        TokenExchangeError: The code was rejected or the reply was malformed
        TransientRemoteError: The token endpoint could not be reached
    """
    payload = _post_token({
        'client_id': client_id,
        'grant_type': 'authorization_code',
        'code': code,
        'redirect_uri': redirect_uri,
        'code_verifier': code_verifier,
    }, "Token exchange", timeout)

    return TokenSet(
        access_token=payload['access_token'],
        refresh_token=payload.get('refresh_token') or '',
        expires_at=expiry_from_lifetime(payload.get('expires_in')),
    )


def refresh_access_token(client_id: str, refresh_token: str, timeout: float = 10.0) -> TokenSet:
    """
    Mint a new access token from a refresh token

    The returned TokenSet carries an empty ``refresh_token`` unless the
    provider rotated it; callers keep their existing refresh token then.

    Raises:
        TokenExchangeError: The grant was revoked or the reply was malformed
        TransientRemoteError: The token endpoint could not be reached
    """
    payload = _post_token({
        'client_id': client_id,
        'grant_type': 'refresh_token',
        'refresh_token': refresh_token,
    }, "Refresh", timeout)

    return TokenSet(
        access_token=payload['access_token'],
        refresh_token=payload.get('refresh_token') or '',
        expires_at=expiry_from_lifetime(payload.get('expires_in')),
    )


def _map_spotify_error(error: SpotifyException, operation: str) -> RemoteError:
    status = error.http_status
    message = f"{operation} failed: {status} {error.msg}"
    details = {'operation': operation, 'reason': getattr(error, 'reason', None)}
    if status in (401, 403):
        return PermissionDeniedError(message, status=status, details=details)
    if status is None or status == 429 or status >= 500:
        return TransientRemoteError(message, status=status, details=details)
    return RemoteError(message, status=status, details=details)


class PlaybackClient:
    """
    Web API calls on behalf of the current user

    Holds no credentials: every method takes the access token to use. A
    spotipy client is kept per token so repeated polls with the same token
    reuse one connection pool.
    """

    def __init__(self, timeout: float = 10.0, retries: int = 0):
        """
        Args:
            timeout: Per-request timeout in seconds
            retries: spotipy-level retries; the presence poller does its own
                     backoff, so this defaults to none
        """
        self.timeout = timeout
        self.retries = retries
        self._session = requests.Session()
        self._token: Optional[str] = None
        self._spotify: Optional[spotipy.Spotify] = None

    def _client(self, access_token: str) -> spotipy.Spotify:
        if self._spotify is None or access_token != self._token:
            self._spotify = spotipy.Spotify(
                auth=access_token,
                requests_session=self._session,
                requests_timeout=self.timeout,
                retries=self.retries,
                status_retries=self.retries,
            )
            self._token = access_token
        return self._spotify

    def _call(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except SpotifyException as e:
            raise _map_spotify_error(e, operation) from e
        except requests.RequestException as e:
            raise TransientRemoteError(f"{operation} failed: {e}", details={'operation': operation}) from e

    def get_now_playing(self, access_token: str) -> Optional[PlaybackSnapshot]:
        """
        Fetch the currently playing item

        Returns:
            PlaybackSnapshot, or None when the player reports no content (204)

        Raises:
            RemoteError: Any non-success status or network failure
        """
        sp = self._client(access_token)
        data = self._call("Now playing", sp.current_user_playing_track)
        return PlaybackSnapshot.from_spotify_data(data)

    def play_next(self, access_token: str) -> None:
        sp = self._client(access_token)
        self._call("Player action next", sp.next_track)

    def play_previous(self, access_token: str) -> None:
        sp = self._client(access_token)
        self._call("Player action previous", sp.previous_track)

    def toggle_play_pause(self, access_token: str, is_playing: bool) -> None:
        """Pause when currently playing, resume otherwise"""
        sp = self._client(access_token)
        if is_playing:
            self._call("Player action pause", sp.pause_playback)
        else:
            self._call("Player action play", sp.start_playback)

    def get_stats(self, access_token: str) -> PlaybackStats:
        """
        Fetch recently-played plus short/medium-term top tracks and artists

        The five requests run in parallel and fail as a unit: if any one of
        them fails, its error is raised and the partial results are dropped.

        Raises:
            PermissionDeniedError: The token lacks the statistics scopes
            RemoteError: Any other failure
        """
        sp = self._client(access_token)
        requests_by_key = {
            'recent': ("Recently played", sp.current_user_recently_played, {'limit': STATS_RECENT_LIMIT}),
            'tracks_short': ("Top tracks", sp.current_user_top_tracks,
                             {'limit': STATS_TOP_LIMIT, 'time_range': 'short_term'}),
            'tracks_medium': ("Top tracks", sp.current_user_top_tracks,
                              {'limit': STATS_TOP_LIMIT, 'time_range': 'medium_term'}),
            'artists_short': ("Top artists", sp.current_user_top_artists,
                              {'limit': STATS_TOP_LIMIT, 'time_range': 'short_term'}),
            'artists_medium': ("Top artists", sp.current_user_top_artists,
                               {'limit': STATS_TOP_LIMIT, 'time_range': 'medium_term'}),
        }

        with ThreadPoolExecutor(max_workers=len(requests_by_key)) as executor:
            futures = {
                key: executor.submit(self._call, operation, func, **kwargs)
                for key, (operation, func, kwargs) in requests_by_key.items()
            }
            # result() re-raises the first failure in submission order
            results = {key: future.result() for key, future in futures.items()}

        def items(key: str) -> List[Dict[str, Any]]:
            payload = results.get(key) or {}
            value = payload.get('items') if isinstance(payload, dict) else None
            return value if isinstance(value, list) else []

        return PlaybackStats(
            recently_played=[PlayHistoryItem.from_spotify_data(item) for item in items('recent')
                             if isinstance(item, dict)],
            top_tracks_short=items('tracks_short'),
            top_tracks_medium=items('tracks_medium'),
            top_artists_short=items('artists_short'),
            top_artists_medium=items('artists_medium'),
        )
