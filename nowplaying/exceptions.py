"""
Exception classes for the now-playing companion.

Every failure the engine can observe is mapped onto one of these classes so
that callers (the presence poller, the inbound command handlers, the CLI)
only ever deal with already-classified states and never with raw transport
errors.

Exception Hierarchy:
    NowPlayingError (base)
        ConfigError - Configuration problems (missing client id, bad values)
        NotConnectedError - No usable credential (not an error for the poller)
        RemoteError - A remote call failed
            TransientRemoteError - Network errors, timeouts, 5xx, 429
            PermissionDeniedError - 401/403 on endpoints needing extra scopes
            TokenExchangeError - Token endpoint rejected a code or refresh token
        OAuthCallbackError - Missing/mismatched state or code on the callback

Lyrics that cannot be found are not an exception: the lyrics package
represents them as ``None``.
"""

from typing import Any, Dict, Optional


class NowPlayingError(Exception):
    """
    Base exception for all now-playing companion errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (status codes,
                 endpoint names, the wrapped error text).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(NowPlayingError):
    """
    Raised when configuration is missing or invalid.

    Example:
        raise ConfigError("Client ID is required", details={'key': 'spotifyClientId'})
    """
    pass


class NotConnectedError(NowPlayingError):
    """
    Raised by commands that need an access token when none can be obtained.

    The presence poller never raises this; for the poller "not connected" is
    a normal state that hides the widget and polls at the idle interval.
    """

    def __init__(self, message: str = "Not connected", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)


class RemoteError(NowPlayingError):
    """
    Raised when a call to the remote playback provider fails.

    Attributes:
        status: HTTP status code when the failure came from a response,
                None for network-level failures.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, details)
        self.status = status


class TransientRemoteError(RemoteError):
    """Network failure, timeout, rate limit or server-side error; retried via backoff."""
    pass


class PermissionDeniedError(RemoteError):
    """The granted scopes do not cover the request; the user must reconnect."""
    pass


class TokenExchangeError(RemoteError):
    """The token endpoint rejected an authorization code or refresh token."""
    pass


class OAuthCallbackError(NowPlayingError):
    """
    Raised when the OAuth redirect cannot be accepted.

    Common causes:
        - No connect attempt is pending (state/verifier missing from the store)
        - The ``state`` parameter does not match the pending transaction
        - The ``code`` parameter is missing
        - The provider redirected with ``error=access_denied``
    """
    pass
