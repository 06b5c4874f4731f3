"""
ELMA Client Library

A Python client for the ELMA Public API. Logs in with an ephemeral ECDH
handshake and signs every subsequent request with HMAC-SHA256 keyed by
the agreed secret.

Example usage:
    from elma_client import ClientSession

    with ClientSession("http://localhost:4300", "your-application-token") as client:
        client.authenticate("admin", "admin")
        response, data = client.get("/API/REST/Entity/Load?type=...&id=1")
"""

from .authenticator import HMACAuthenticator, MessageAuthenticator
from .canonical import SignableRequest, canonical_string, sign_request, verify_request
from .client import AuthSession, ClientSession, SessionState, decode_json
from .ecdh import ECDHKeyAgreement, KeyAgreement
from .exceptions import (
    ElmaClientError,
    KeyGenerationError,
    InvalidPeerKeyError,
    AuthenticationError,
    NotAuthenticatedError,
    TransportError,
    DecodeError,
    ConfigurationError,
    InputTooLargeError
)
from .constants import (
    HEADER_AUTH_INFO,
    HEADER_SIGNED_HEADERS,
    HEADER_APPLICATION_TOKEN,
    HEADER_SESSION_TOKEN,
    HEADER_AUTH_TOKEN,
    HEADER_WEBDATA_VERSION,
    DEFAULT_CONFIG
)

__version__ = "1.0.0"
__all__ = [
    "ClientSession",
    "SessionState",
    "AuthSession",
    "decode_json",
    "KeyAgreement",
    "ECDHKeyAgreement",
    "MessageAuthenticator",
    "HMACAuthenticator",
    "SignableRequest",
    "canonical_string",
    "sign_request",
    "verify_request",
    "ElmaClientError",
    "KeyGenerationError",
    "InvalidPeerKeyError",
    "AuthenticationError",
    "NotAuthenticatedError",
    "TransportError",
    "DecodeError",
    "ConfigurationError",
    "InputTooLargeError",
    "HEADER_AUTH_INFO",
    "HEADER_SIGNED_HEADERS",
    "HEADER_APPLICATION_TOKEN",
    "HEADER_SESSION_TOKEN",
    "HEADER_AUTH_TOKEN",
    "HEADER_WEBDATA_VERSION",
    "DEFAULT_CONFIG"
]
