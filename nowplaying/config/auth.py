"""
Token lifecycle management and the OAuth connect handshake

This module owns every decision about the access credential:

- ``TokenManager`` answers "give me a usable access token" on every poll.
  While the stored token is inside its lifetime it is returned as-is without
  touching the network. Once it has expired, exactly one refresh-token
  exchange is attempted; the refreshed material is merged into the stored
  token set and persisted. Any refresh failure is recorded as a diagnostic
  and reported to the caller as "not connected" (``None``), never raised.

- ``OAuthFlow`` runs the Authorization Code with PKCE handshake:
  1. Generate a single-use transaction (state + code verifier)
  2. Persist it together with the loopback callback port
  3. Start the loopback callback receiver (once per process)
  4. Open the browser on the authorization URL
  5. On ``GET /callback?code&state``: validate the state against the stored
     transaction, exchange the code, persist the token set, clear the
     transaction and announce the connection

The callback receiver never writes a token for a request whose state is
missing or does not match; such requests get an error page.

Security considerations:
- No client secret: PKCE is the only proof of possession
- The receiver binds to the loopback interface only
- The store holding tokens and verifier is written with owner-only permissions
"""

import threading
import urllib.parse
import webbrowser
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import ConfigError, OAuthCallbackError, RemoteError
from ..spotify.client import (
    build_authorize_url,
    code_challenge,
    create_transaction,
    exchange_code_for_token,
    refresh_access_token,
)
from ..spotify.models import OAuthTransaction, TokenSet
from ..utils.helpers import now_ms
from ..utils.logger import get_logger
from ..utils.validation import validate_client_id
from .settings import Settings
from .store import JsonStore


KEY_CLIENT_ID = 'spotifyClientId'
KEY_TOKEN_SET = 'tokenSet'
KEY_OAUTH_STATE = 'oauthState'
KEY_CODE_VERIFIER = 'codeVerifier'
KEY_REDIRECT_PORT = 'redirectPort'

REFRESH_IDLE = 'idle'
REFRESH_OK = 'ok'
REFRESH_ERROR = 'error'


@dataclass
class RefreshDiagnostics:
    """Outcome of the most recent token refresh attempt"""
    status: str = REFRESH_IDLE
    at: int = 0
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lastTokenRefreshStatus': self.status,
            'lastTokenRefreshAt': self.at,
            'lastTokenRefreshError': self.error,
        }


class TokenManager:
    """
    Sole owner of the stored TokenSet

    Attributes:
        store: Credential store holding client id and token set
        diagnostics: Result of the last refresh attempt, for observability
    """

    def __init__(
        self,
        store: JsonStore,
        default_client_id: str = "",
        timeout: float = 10.0,
        clock: Callable[[], int] = now_ms,
        refresher: Callable[..., TokenSet] = refresh_access_token
    ):
        """
        Args:
            store: Credential store
            default_client_id: Client id from configuration, used when the
                               store has none
            timeout: Token endpoint timeout in seconds
            clock: Epoch-millisecond clock
            refresher: Refresh-token exchange function
        """
        self.store = store
        self.default_client_id = default_client_id
        self.timeout = timeout
        self.clock = clock
        self.refresher = refresher
        self.diagnostics = RefreshDiagnostics()
        self.logger = get_logger(__name__)
        # Poll thread and command callers may both find the token expired
        self._lock = threading.Lock()

    def get_client_id(self) -> str:
        return (self.store.get(KEY_CLIENT_ID) or self.default_client_id or "").strip()

    def set_client_id(self, client_id: str) -> None:
        self.store.set(KEY_CLIENT_ID, client_id.strip())

    def load(self) -> Optional[TokenSet]:
        return TokenSet.from_dict(self.store.get(KEY_TOKEN_SET))

    def save(self, tokens: TokenSet) -> None:
        self.store.set(KEY_TOKEN_SET, tokens.to_dict())

    def clear(self) -> None:
        """Forget the token set (explicit disconnect)"""
        self.store.delete(KEY_TOKEN_SET)

    def has_token(self) -> bool:
        return self.load() is not None

    def get_valid_access_token(self) -> Optional[str]:
        """
        Return an access token that can be used right now

        Returns:
            Access token, or None when not connected or the refresh failed
        """
        with self._lock:
            tokens = self.load()
            client_id = self.get_client_id()
            if tokens is None or not client_id:
                return None

            if tokens.is_valid(self.clock()):
                return tokens.access_token

            return self._refresh(tokens, client_id)

    def _refresh(self, tokens: TokenSet, client_id: str) -> Optional[str]:
        self.logger.info("Refreshing access token")
        try:
            if not tokens.refresh_token:
                raise RemoteError("No refresh token stored")
            refreshed = self.refresher(client_id, tokens.refresh_token, timeout=self.timeout)
        except RemoteError as e:
            self.diagnostics = RefreshDiagnostics(REFRESH_ERROR, self.clock(), str(e))
            self.logger.warning(f"Token refresh failed: {e}")
            return None

        updated = TokenSet(
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or tokens.refresh_token,
            expires_at=refreshed.expires_at,
        )
        self.save(updated)
        self.diagnostics = RefreshDiagnostics(REFRESH_OK, self.clock(), "")
        self.logger.info("Token refresh succeeded")
        return updated.access_token


SUCCESS_HTML = """
<html>
<head><title>Spotify connected</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: #1DB954;">Spotify connected</h1>
    <p>You can close this window and return to the app.</p>
</body>
</html>
"""

ERROR_HTML = """
<html>
<head><title>Connection failed</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: #E22134;">Connection failed</h1>
    <p>{message}</p>
    <p>You can close this window and try again from the app.</p>
</body>
</html>
"""


class CallbackHandler(BaseHTTPRequestHandler):
    """
    Loopback receiver for the OAuth redirect

    Delegates the actual validation and token exchange to the ``OAuthFlow``
    attached to the server and renders its outcome as an HTML page.
    """

    def do_GET(self):
        parsed_url = urllib.parse.urlparse(self.path)
        if parsed_url.path != '/callback':
            self._respond(404, ERROR_HTML.format(message="Not found"))
            return

        query_params = urllib.parse.parse_qs(parsed_url.query)
        try:
            self.server.flow.handle_callback(query_params)
        except OAuthCallbackError as e:
            self._respond(400, ERROR_HTML.format(message=_escape(str(e))))
        except RemoteError as e:
            self._respond(500, ERROR_HTML.format(message=_escape(f"Error: {e}")))
        else:
            self._respond(200, SUCCESS_HTML)

    def _respond(self, status: int, body: str) -> None:
        self.send_response(status)
        self.send_header('Content-type', 'text/html; charset=utf-8')
        self.end_headers()
        self.wfile.write(body.encode('utf-8'))

    def log_message(self, format, *args):
        """Route request lines to the debug log instead of stderr"""
        get_logger(__name__).debug(format % args)


def _escape(text: str) -> str:
    return text.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')


def _first(params: Dict[str, List[str]], name: str) -> str:
    values = params.get(name) or ['']
    return values[0]


class OAuthFlow:
    """
    Browser-based connect handshake with a loopback callback receiver

    The receiver is started on the first connect attempt and keeps running
    until ``shutdown()``; a later attempt on a different port restarts it.
    """

    def __init__(
        self,
        store: JsonStore,
        settings: Settings,
        token_manager: TokenManager,
        on_connected: Optional[Callable[[], None]] = None,
        exchanger: Callable[..., TokenSet] = exchange_code_for_token,
        open_browser: Callable[[str], Any] = webbrowser.open
    ):
        self.store = store
        self.settings = settings
        self.token_manager = token_manager
        self.on_connected = on_connected
        self.exchanger = exchanger
        self.open_browser = open_browser
        self.logger = get_logger(__name__)
        self._server: Optional[HTTPServer] = None
        self._server_thread: Optional[threading.Thread] = None
        self._server_lock = threading.Lock()

    def get_redirect_port(self) -> int:
        port = self.store.get(KEY_REDIRECT_PORT)
        return int(port) if port else int(self.settings.spotify.redirect_port)

    def pending_transaction(self) -> Optional[OAuthTransaction]:
        state = self.store.get(KEY_OAUTH_STATE)
        verifier = self.store.get(KEY_CODE_VERIFIER)
        if not state or not verifier:
            return None
        return OAuthTransaction(state=state, code_verifier=verifier, redirect_port=self.get_redirect_port())

    def _clear_transaction(self) -> None:
        self.store.delete(KEY_OAUTH_STATE)
        self.store.delete(KEY_CODE_VERIFIER)

    def start_connect(self, launch_browser: bool = True, serve: bool = True) -> str:
        """
        Begin a connect attempt

        Any previous pending transaction is overwritten.

        Args:
            launch_browser: Open the authorization URL in the default browser
            serve: Make sure the loopback receiver is listening

        Returns:
            Authorization URL

        Raises:
            ConfigError: No client id configured, or the client id is malformed
        """
        client_id = self.token_manager.get_client_id()
        if not client_id:
            raise ConfigError("Client ID is required", details={'key': KEY_CLIENT_ID})
        is_valid, error = validate_client_id(client_id)
        if not is_valid:
            raise ConfigError(error or "Invalid client ID", details={'key': KEY_CLIENT_ID})

        port = self.get_redirect_port()
        self.store.set(KEY_REDIRECT_PORT, port)

        if serve:
            self.start_server(port)

        transaction = create_transaction(port)
        self.store.set(KEY_OAUTH_STATE, transaction.state)
        self.store.set(KEY_CODE_VERIFIER, transaction.code_verifier)

        url = build_authorize_url(
            client_id=client_id,
            redirect_uri=self.settings.get_redirect_uri(port),
            state=transaction.state,
            challenge=code_challenge(transaction.code_verifier),
            scopes=self.settings.spotify.scopes,
        )

        self.logger.info(f"Connect attempt started, callback on port {port}")
        if launch_browser:
            self.open_browser(url)
        return url

    def handle_callback(self, params: Dict[str, List[str]]) -> TokenSet:
        """
        Complete a connect attempt from the redirect's query parameters

        Args:
            params: Parsed query string (``urllib.parse.parse_qs`` shape)

        Returns:
            The newly stored TokenSet

        Raises:
            OAuthCallbackError: Denied, no pending attempt, state mismatch or missing code
            RemoteError: The code could not be exchanged
        """
        error = _first(params, 'error')
        if error:
            self.logger.warning(f"Authorization denied: {error}")
            raise OAuthCallbackError(f"Authorization denied: {error}", details={'error': error})

        client_id = self.token_manager.get_client_id()
        if not client_id:
            raise OAuthCallbackError("Client ID missing")

        transaction = self.pending_transaction()
        if transaction is None:
            raise OAuthCallbackError("OAuth state/verifier missing")

        code = _first(params, 'code')
        state = _first(params, 'state')
        if not code or state != transaction.state:
            self.logger.warning("Rejected OAuth callback with invalid state or missing code")
            raise OAuthCallbackError("Invalid state or missing code")

        tokens = self.exchanger(
            client_id=client_id,
            code=code,
            redirect_uri=self.settings.get_redirect_uri(transaction.redirect_port),
            code_verifier=transaction.code_verifier,
            timeout=self.settings.spotify.request_timeout,
        )

        self.token_manager.save(tokens)
        self._clear_transaction()
        self.logger.console_info("Spotify connected")
        if self.on_connected:
            self.on_connected()
        return tokens

    def start_server(self, port: int) -> None:
        """Start the loopback receiver on ``port`` unless it is already there"""
        with self._server_lock:
            if self._server is not None:
                if self._server.server_address[1] == port:
                    return
                self._stop_server_locked()

            server = HTTPServer((self.settings.spotify.redirect_host, port), CallbackHandler)
            server.flow = self
            thread = threading.Thread(target=server.serve_forever, name="oauth-callback")
            thread.daemon = True
            thread.start()
            self._server = server
            self._server_thread = thread
            self.logger.debug(f"OAuth callback receiver listening on port {port}")

    def _stop_server_locked(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        self._server_thread = None

    def shutdown(self) -> None:
        with self._server_lock:
            self._stop_server_locked()
