"""
Unit tests for HMAC message authenticator.
"""

import hashlib
import hmac

import pytest

from elma_client import ConfigurationError, HMACAuthenticator


# HMAC-SHA256 of message "1" under short secrets
KNOWN_SIGNATURES = {
    "9ddc24e28fce94ebe67a9846b66d593302de1f95e564b0628e034d79d504a4fd": b"\x63",
    "e59a6db987e389320c24a21be1deb9726f554414314c86d86cee04dbfd790d82": b"\x04\x05\x06",
    "b747a9c3a6d62ea317484ade42d3a3bb32c22510111c35fb8239bd8d56808100": b"\x07\x08\x09",
}


class TestHMACAuthenticator:
    """Test HMAC authenticator functionality."""

    @pytest.fixture
    def authenticator(self):
        return HMACAuthenticator(b"\x01" * 32)

    def test_init_invalid_secret(self):
        """Test that empty or non-bytes secrets are rejected."""
        with pytest.raises(ConfigurationError):
            HMACAuthenticator(b"")

        with pytest.raises(ConfigurationError):
            HMACAuthenticator("secret")

    def test_sign(self, authenticator):
        """Test HMAC-SHA256 signing."""
        signature = authenticator.sign("GET\n/\n\n\n\n")

        expected = hmac.new(b"\x01" * 32, b"GET\n/\n\n\n\n", hashlib.sha256).digest()
        assert signature == expected
        assert len(signature) == 32

    @pytest.mark.parametrize("expected_hex,secret", KNOWN_SIGNATURES.items())
    def test_sign_known_vectors(self, expected_hex, secret):
        """Test signatures against known values."""
        assert HMACAuthenticator(secret).sign("1") == bytes.fromhex(expected_hex)

    def test_sign_deterministic(self, authenticator):
        """Test that signing is deterministic."""
        assert authenticator.sign("message") == authenticator.sign("message")
        assert authenticator.sign("message") == authenticator.sign(b"message")

    def test_verify_valid(self, authenticator):
        """Test verification with valid signature."""
        signature = authenticator.sign("message")

        assert authenticator.verify("message", signature) is True

    def test_verify_tampered(self, authenticator):
        """Test verification with tampered signature."""
        signature = bytearray(authenticator.sign("message"))
        signature[0] ^= 0xFF

        assert authenticator.verify("message", bytes(signature)) is False

    def test_verify_wrong_message(self, authenticator):
        """Test verification with wrong message."""
        signature = authenticator.sign("message")

        assert authenticator.verify("other message", signature) is False

    def test_verify_wrong_type(self, authenticator):
        """Test verification with a signature of the wrong type."""
        assert authenticator.verify("message", "not bytes") is False
        assert authenticator.verify("message", None) is False

    def test_verify_other_secret(self, authenticator):
        """Test that another secret does not verify."""
        other = HMACAuthenticator(b"\x02" * 32)

        assert authenticator.verify("message", other.sign("message")) is False

    def test_immutable(self, authenticator):
        """Test that the secret cannot be replaced."""
        with pytest.raises(AttributeError):
            authenticator._secret = b"other"
