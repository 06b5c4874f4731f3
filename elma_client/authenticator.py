"""
Message authentication keyed by the ECDH shared secret.
"""

import abc
import hashlib
import hmac
from typing import Union

from .exceptions import ConfigurationError


class MessageAuthenticator(abc.ABC):
    """Signs messages and checks their signatures."""

    @abc.abstractmethod
    def sign(self, message: Union[str, bytes]) -> bytes:
        """Return the raw signature of message."""

    @abc.abstractmethod
    def verify(self, message: Union[str, bytes], signature: bytes) -> bool:
        """Return True if signature is valid for message."""


class HMACAuthenticator(MessageAuthenticator):
    """HMAC-SHA256 signer holding only the shared secret."""

    __slots__ = ('_secret',)

    def __init__(self, secret: bytes):
        if not isinstance(secret, (bytes, bytearray)) or not secret:
            raise ConfigurationError("secret must be non-empty bytes")
        object.__setattr__(self, '_secret', bytes(secret))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def sign(self, message: Union[str, bytes]) -> bytes:
        """
        Generate HMAC-SHA256 signature.

        Args:
            message: Message to sign, str is UTF-8 encoded

        Returns:
            Raw 32-byte signature
        """
        if isinstance(message, str):
            message = message.encode('utf-8')
        return hmac.new(self._secret, message, hashlib.sha256).digest()

    def verify(self, message: Union[str, bytes], signature: bytes) -> bool:
        """
        Verify HMAC-SHA256 signature.

        Args:
            message: Original message
            signature: Raw signature to verify

        Returns:
            True if signature is valid
        """
        try:
            # Use constant-time comparison to prevent timing attacks
            return hmac.compare_digest(self.sign(message), signature)
        except TypeError:
            return False
