"""
Custom exceptions for ELMA client library.
"""

from typing import Optional


STAGE_HANDSHAKE = "handshake"
STAGE_REQUEST = "request"


class ElmaClientError(Exception):
    """Base exception for ELMA client errors."""

    def __init__(self, message: str = "", stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self):
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class KeyGenerationError(ElmaClientError):
    """Raised when an ephemeral key pair cannot be generated."""
    pass


class InvalidPeerKeyError(ElmaClientError):
    """Raised when the peer public key is malformed or not on the curve."""
    pass


class AuthenticationError(ElmaClientError):
    """Raised when the login handshake is rejected or unparseable."""

    def __init__(self, message: str = "", stage: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, stage)
        self.status_code = status_code


class NotAuthenticatedError(ElmaClientError):
    """Raised when a signed call is attempted before the handshake."""
    pass


class TransportError(ElmaClientError):
    """Raised when HTTP request fails."""
    pass


class DecodeError(ElmaClientError):
    """Raised when a response body is not valid JSON."""

    def __init__(self, message: str = "", stage: Optional[str] = None,
                 response=None, status_code: Optional[int] = None):
        super().__init__(message, stage)
        self.response = response
        self.status_code = status_code


class ConfigurationError(ElmaClientError):
    """Raised when client configuration is invalid."""
    pass


class InputTooLargeError(ElmaClientError):
    """Raised when a request body exceeds size limits."""
    pass
