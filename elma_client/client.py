"""
ELMA Public API client with ECDH handshake and signed requests.

This module provides the login handshake that agrees on a shared secret
with the server, and the session that signs every subsequent request
with HMAC-SHA256 keyed by that secret.
"""

import contextlib
import copy
import enum
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple, Union
from urllib.parse import urljoin, urlsplit

import requests

from .authenticator import HMACAuthenticator, MessageAuthenticator
from .canonical import COMMA, declared_headers, sign_request
from .constants import (
    CONTENT_TYPE_JSON,
    DEFAULT_CONFIG,
    HEADER_APPLICATION_TOKEN,
    HEADER_AUTH_INFO,
    HEADER_AUTH_TOKEN,
    HEADER_CONTENT_TYPE,
    HEADER_SESSION_TOKEN,
    HEADER_SIGNED_HEADERS,
    HEADER_WEBDATA_VERSION,
    LOGIN_PATH,
    TOKEN_HEADERS,
    UTF8_BOM,
)
from .ecdh import ECDHKeyAgreement, KeyAgreement
from .exceptions import (
    STAGE_HANDSHAKE,
    STAGE_REQUEST,
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    ElmaClientError,
    InvalidPeerKeyError,
    NotAuthenticatedError,
    TransportError,
)

logger = logging.getLogger(__name__)

SignerFactory = Callable[[bytes], MessageAuthenticator]


class SessionState(enum.Enum):
    """Lifecycle of a client session."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class AuthSession:
    """Tokens returned by the login endpoint."""
    session_token: str
    auth_token: str
    user_id: str = ""
    locale: str = ""

    @classmethod
    def from_response(cls, payload: Any) -> "AuthSession":
        """
        Parse the login response body.

        Raises:
            ValueError: If the payload is not an object or lacks a token
        """
        if not isinstance(payload, dict):
            raise ValueError("login response is not a JSON object")

        session_token = payload.get("SessionToken")
        auth_token = payload.get("AuthToken")
        if not session_token or not auth_token:
            raise ValueError("login response lacks SessionToken or AuthToken")

        user_id = payload.get("CurrentUserId")
        return cls(
            session_token=str(session_token),
            auth_token=str(auth_token),
            user_id="" if user_id is None else str(user_id),
            locale=payload.get("Lang") or "",
        )


@dataclass(frozen=True)
class _Credentials:
    auth: AuthSession
    authenticator: MessageAuthenticator


def decode_json(body: bytes) -> Any:
    """
    Decode a JSON response body.

    A leading UTF-8 byte-order mark is stripped. An empty body decodes to None.

    Raises:
        DecodeError: If the body is not valid JSON
    """
    if body.startswith(UTF8_BOM):
        body = body[len(UTF8_BOM):]
    if not body.strip():
        return None
    try:
        return json.loads(body.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"decoding response body: {e}") from e


@contextlib.contextmanager
def _stage(stage: str):
    try:
        yield
    except ElmaClientError as e:
        if e.stage is None:
            e.stage = stage
        raise


class ClientSession:
    """
    Client session for the ELMA Public API.

    authenticate() performs the ECDH handshake against the login endpoint;
    afterwards execute_signed() (and the get/post/put/delete shortcuts)
    send requests carrying the session tokens and an HMAC signature.

    Handshakes are serialized by an internal lock. Once a handshake is
    installed the tokens and authenticator are read-only, so signed requests
    may be issued from several threads.
    """

    def __init__(self, base_url: str, application_token: str,
                 key_agreement: Optional[KeyAgreement] = None,
                 signer_factory: Optional[SignerFactory] = None,
                 http_session: Optional[requests.Session] = None,
                 **config):
        """
        Initialize ELMA client session.

        Args:
            base_url: Base URL of the ELMA server
            application_token: Static application identifier
            key_agreement: Key agreement used for handshakes (ECDH on P-256 by default)
            signer_factory: Callable building an authenticator from the shared secret
            http_session: requests.Session to send through
            **config: Configuration options (timeout, max_input_size, webdata_version)
        """
        self.base_url = (base_url or "").rstrip('/')
        self.application_token = application_token

        # Merge default config with user overrides
        self.config = {**DEFAULT_CONFIG, **config}

        self._validate_config()

        self.key_agreement = key_agreement if key_agreement is not None else ECDHKeyAgreement()
        self.signer_factory = signer_factory if signer_factory is not None else HMACAuthenticator

        self._owns_session = http_session is None
        self.session = http_session if http_session is not None else requests.Session()

        self._lock = threading.Lock()
        self._state = SessionState.UNAUTHENTICATED
        self._credentials: Optional[_Credentials] = None

    def _validate_config(self):
        """Validate client configuration."""
        if not self.base_url:
            raise ConfigurationError("base_url cannot be empty")

        parts = urlsplit(self.base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigurationError(f"base_url must be an absolute http(s) URL: {self.base_url}")

        if not self.application_token:
            raise ConfigurationError("application_token cannot be empty")

        if self.config['timeout'] <= 0:
            raise ConfigurationError("timeout must be positive")

        if self.config['max_input_size'] <= 0:
            raise ConfigurationError("max_input_size must be positive")

        if not self.config['webdata_version']:
            raise ConfigurationError("webdata_version cannot be empty")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    @property
    def auth(self) -> Optional[AuthSession]:
        """Tokens of the installed handshake, or None."""
        credentials = self._credentials
        return credentials.auth if credentials is not None else None

    def _resolve(self, path: str) -> str:
        return urljoin(self.base_url + '/', path.lstrip('/'))

    def _prepare(self, request: requests.Request) -> requests.PreparedRequest:
        try:
            return self.session.prepare_request(request)
        except requests.RequestException as e:
            raise TransportError(f"preparing request: {e}") from e

    def _send(self, prepared: requests.PreparedRequest) -> requests.Response:
        logger.debug("Sending %s %s", prepared.method, prepared.url)
        try:
            return self.session.send(prepared, timeout=self.config['timeout'])
        except requests.RequestException as e:
            raise TransportError(f"HTTP request failed: {e}") from e

    def authenticate(self, username: str, password: str) -> AuthSession:
        """
        Log in and agree on a shared secret with the server.

        On failure the previously installed tokens and authenticator stay
        in place and the session returns to its previous state.

        Args:
            username: Login name
            password: Password, sent as a JSON string literal

        Returns:
            The new AuthSession

        Raises:
            KeyGenerationError: If the ephemeral key pair cannot be generated
            AuthenticationError: If the server rejects the login or answers garbage
            InvalidPeerKeyError: If the server public key is missing or invalid
            TransportError: If the login request fails
        """
        with self._lock:
            previous = self._state
            self._state = SessionState.AUTHENTICATING
            try:
                with _stage(STAGE_HANDSHAKE):
                    credentials = self._handshake(username, password)
            except Exception:
                self._state = previous
                raise

            self._credentials = credentials
            self._state = SessionState.AUTHENTICATED

        logger.info("Authenticated %s (user id %s)", username, credentials.auth.user_id)
        return credentials.auth

    def _handshake(self, username: str, password: str) -> _Credentials:
        public_key = self.key_agreement.generate_public_key()

        request = requests.Request(
            'POST',
            self._resolve(LOGIN_PATH),
            params={'username': username},
            data=json.dumps(password),
            headers={
                HEADER_CONTENT_TYPE: CONTENT_TYPE_JSON,
                HEADER_APPLICATION_TOKEN: self.application_token,
                HEADER_AUTH_INFO: public_key.hex(),
            },
        )
        response = self._send(self._prepare(request))

        if response.status_code >= 400:
            logger.warning("Login rejected for %s: HTTP %s", username, response.status_code)
            raise AuthenticationError(
                f"error in auth process, code: {response.status_code}, error: {response.reason}",
                status_code=response.status_code,
            )

        try:
            auth = AuthSession.from_response(decode_json(response.content))
        except (DecodeError, ValueError) as e:
            logger.warning("Malformed login response for %s", username)
            raise AuthenticationError(
                f"bad auth response format: {e}", status_code=response.status_code
            ) from e

        server_key = response.headers.get(HEADER_AUTH_INFO)
        if not server_key:
            raise InvalidPeerKeyError(f"login response has no {HEADER_AUTH_INFO} header")
        try:
            server_key_bytes = bytes.fromhex(server_key.strip())
        except ValueError as e:
            raise InvalidPeerKeyError(f"decoding hex server key: {e}") from e

        secret = self.key_agreement.derive_shared_secret(server_key_bytes)
        return _Credentials(auth=auth, authenticator=self.signer_factory(secret))

    def _require_credentials(self, stage: str) -> _Credentials:
        credentials = self._credentials
        if self._state is not SessionState.AUTHENTICATED or credentials is None:
            raise NotAuthenticatedError(
                f"session is {self._state.value}, authenticate first", stage=stage
            )
        return credentials

    def execute_signed(self, request: requests.Request,
                       signed_headers: Optional[Iterable[str]] = None) -> Tuple[requests.Response, Any]:
        """
        Sign and send a request.

        Adds the token and version headers, defaults Content-Type to JSON,
        declares the token headers plus signed_headers as signed and signs
        the request. The URL is resolved against base_url on a copy, the
        caller's request is left untouched.

        Args:
            request: Request with a URL relative to base_url
            signed_headers: Extra header names to sign

        Returns:
            Tuple of (response, decoded JSON body). An empty body decodes to
            None instead of raising DecodeError.

        Raises:
            NotAuthenticatedError: If no handshake has completed
            TransportError: If the request fails
            DecodeError: If the response body is not JSON, the response is
                attached as DecodeError.response
            InputTooLargeError: If the body exceeds max_input_size
        """
        credentials = self._require_credentials(STAGE_REQUEST)

        with _stage(STAGE_REQUEST):
            resolved = copy.copy(request)
            resolved.url = self._resolve(request.url)
            prepared = self._prepare(resolved)
            self._add_service_headers(prepared, credentials.auth, signed_headers)
            sign_request(prepared, credentials.authenticator, self.config['max_input_size'])

            response = self._send(prepared)
            try:
                return response, decode_json(response.content)
            except DecodeError as e:
                e.response = response
                e.status_code = response.status_code
                raise

    def _add_service_headers(self, prepared: requests.PreparedRequest, auth: AuthSession,
                             signed_headers: Optional[Iterable[str]]):
        prepared.headers.update({
            HEADER_APPLICATION_TOKEN: self.application_token,
            HEADER_SESSION_TOKEN: auth.session_token,
            HEADER_AUTH_TOKEN: auth.auth_token,
            HEADER_WEBDATA_VERSION: self.config['webdata_version'],
        })

        if not prepared.headers.get(HEADER_CONTENT_TYPE):
            prepared.headers[HEADER_CONTENT_TYPE] = CONTENT_TYPE_JSON

        declared = declared_headers(prepared.headers)
        declared.extend(signed_headers or ())
        declared.extend(TOKEN_HEADERS)
        prepared.headers[HEADER_SIGNED_HEADERS] = COMMA.join(declared)

    def verify(self, message: Union[str, bytes], signature: bytes) -> bool:
        """
        Check a signature with the installed authenticator.

        Whether server responses are verified is up to the caller.
        """
        return self._require_credentials(STAGE_REQUEST).authenticator.verify(message, signature)

    def _request(self, method: str, path: str, signed_headers=None, **kwargs):
        return self.execute_signed(requests.Request(method, path, **kwargs), signed_headers)

    def get(self, path: str, **kwargs) -> Tuple[requests.Response, Any]:
        """Make signed GET request."""
        return self._request('GET', path, **kwargs)

    def post(self, path: str, json=None, data=None, **kwargs) -> Tuple[requests.Response, Any]:
        """Make signed POST request."""
        return self._request('POST', path, json=json, data=data, **kwargs)

    def put(self, path: str, json=None, data=None, **kwargs) -> Tuple[requests.Response, Any]:
        """Make signed PUT request."""
        return self._request('PUT', path, json=json, data=data, **kwargs)

    def delete(self, path: str, **kwargs) -> Tuple[requests.Response, Any]:
        """Make signed DELETE request."""
        return self._request('DELETE', path, **kwargs)

    def close(self):
        """Close HTTP session."""
        if self.session and self._owns_session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
