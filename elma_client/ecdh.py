"""
Ephemeral ECDH key agreement.

The client and the server each generate a one-shot key pair, exchange the
public halves in uncompressed point form (0x04 || X || Y) and derive the
same 32-byte secret: SHA-256 of the X-coordinate of the shared point.
"""

import abc
import hashlib
import logging

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .exceptions import InvalidPeerKeyError, KeyGenerationError

logger = logging.getLogger(__name__)

UNCOMPRESSED_POINT_MARKER = 0x04


class KeyAgreement(abc.ABC):
    """Shared secret agreement over an untrusted channel."""

    @abc.abstractmethod
    def generate_public_key(self) -> bytes:
        """Generate a fresh key pair and return the encoded public key."""

    @abc.abstractmethod
    def derive_shared_secret(self, peer_public_key: bytes) -> bytes:
        """Derive the shared secret from the peer's encoded public key."""


class ECDHKeyAgreement(KeyAgreement):
    """
    Elliptic-curve Diffie-Hellman on a NIST curve (P-256 by default).

    One handshake may be in flight per instance: every call to
    generate_public_key() replaces the stored private key, and a successful
    derive_shared_secret() discards it.
    """

    def __init__(self, curve: ec.EllipticCurve = None):
        self.curve = curve if curve is not None else ec.SECP256R1()
        self._private_key = None

    @property
    def coordinate_size(self) -> int:
        return (self.curve.key_size + 7) // 8

    def generate_public_key(self) -> bytes:
        """
        Generate an ephemeral key pair.

        Returns:
            Public key as an uncompressed point (65 bytes on P-256)

        Raises:
            KeyGenerationError: If the backend cannot produce a key on the curve
        """
        try:
            private_key = ec.generate_private_key(self.curve)
        except (UnsupportedAlgorithm, ValueError, OSError) as e:
            raise KeyGenerationError(f"generate key pair on {self.curve.name}: {e}") from e

        self._private_key = private_key
        logger.debug("Generated ephemeral key pair on %s", self.curve.name)

        return private_key.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint
        )

    def derive_shared_secret(self, peer_public_key: bytes) -> bytes:
        """
        Derive the SHA-256 hashed shared secret.

        Args:
            peer_public_key: Peer public key as an uncompressed point

        Returns:
            32-byte shared secret

        Raises:
            InvalidPeerKeyError: If the key does not decode to a point on the curve
            KeyGenerationError: If no key pair has been generated
        """
        if self._private_key is None:
            raise KeyGenerationError("no key pair in flight, generate a public key first")

        peer = self._load_peer_key(peer_public_key)
        shared_x = self._private_key.exchange(ec.ECDH(), peer)
        self._private_key = None

        return hashlib.sha256(shared_x).digest()

    def _load_peer_key(self, data: bytes) -> ec.EllipticCurvePublicKey:
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidPeerKeyError("peer public key must be bytes")

        expected_len = 1 + 2 * self.coordinate_size
        if len(data) != expected_len or data[0] != UNCOMPRESSED_POINT_MARKER:
            raise InvalidPeerKeyError(
                f"peer public key is not an uncompressed {self.curve.name} point "
                f"(got {len(data)} bytes, expected {expected_len})"
            )

        # from_encoded_point rejects coordinates that are not on the curve
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(self.curve, bytes(data))
        except ValueError as e:
            raise InvalidPeerKeyError(f"invalid peer public key: {e}") from e
