"""
Request canonicalization and signing.

Canonical Request Format:
    {METHOD}\\n{path}\\n{raw query}\\n{signed headers block}{body_hash}\\n{content type}\\n

Where:
    - METHOD: uppercased HTTP method
    - path: request path exactly as sent (percent-encoding preserved)
    - raw query: query string without the leading '?'
    - signed headers block: one "name:value\\n" line per declared header present
      on the request, names lowercased and sorted ascending, values trimmed
      of surrounding spaces and newlines
    - body_hash: lowercase hex SHA-256 of the body, or empty if there is no body
    - content type: Content-Type header value, or empty

The signature is HMAC-SHA256 over the UTF-8 canonical string, base64 encoded
(standard alphabet, padded) into the Auth-Info header. The names actually
signed are written to Signed-Headers so a verifier can rebuild the string.
"""

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import requests

from .authenticator import MessageAuthenticator
from .constants import HEADER_AUTH_INFO, HEADER_CONTENT_TYPE, HEADER_SIGNED_HEADERS
from .exceptions import InputTooLargeError

NEWLINE = "\n"
COMMA = ","

# Headers rewritten by signing can never be part of the signed set
_UNSIGNABLE = frozenset((HEADER_AUTH_INFO.lower(), HEADER_SIGNED_HEADERS.lower()))


@dataclass(frozen=True)
class SignableRequest:
    """Signable fields of one outgoing request."""
    method: str
    path: str
    query: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @classmethod
    def from_prepared(cls, prepared: requests.PreparedRequest) -> "SignableRequest":
        """
        Build the signable view of a prepared request.

        Streamed bodies (file objects, iterators) are read once and written
        back onto the request as bytes, so the hashed bytes are the sent bytes.
        """
        body = _buffer_body(prepared)
        parts = urlsplit(prepared.url)
        return cls(
            method=prepared.method,
            path=parts.path or "/",
            query=parts.query,
            headers=prepared.headers,
            body=body,
        )


def _buffer_body(prepared: requests.PreparedRequest) -> Optional[bytes]:
    body = prepared.body
    if body is None or isinstance(body, bytes):
        return body
    if isinstance(body, str):
        body = body.encode('utf-8')
    elif hasattr(body, 'read'):
        body = body.read()
        if isinstance(body, str):
            body = body.encode('utf-8')
    else:
        body = b"".join(
            chunk.encode('utf-8') if isinstance(chunk, str) else chunk
            for chunk in body
        )

    prepared.headers.pop('Transfer-Encoding', None)
    prepared.body = body
    prepared.prepare_content_length(body)
    return body


def declared_headers(headers: Mapping[str, str]) -> List[str]:
    """
    Flatten the Signed-Headers declaration.

    Returns:
        Lowercased, deduplicated header names in declaration order
    """
    value = _lowercase_lookup(headers).get(HEADER_SIGNED_HEADERS.lower())
    if not value:
        return []

    names = []
    for name in value.split(COMMA):
        name = normalize_key(name)
        if name and name not in _UNSIGNABLE and name not in names:
            names.append(name)
    return names


def normalize_key(key: str) -> str:
    return key.strip().lower()


def normalize_value(value: str) -> str:
    return value.strip(" \n")


def normalize_headers(headers: Mapping[str, str]) -> Tuple[str, List[str]]:
    """
    Render the signed headers block.

    Declared names missing from the request are skipped; a header that is
    present with an empty value is signed as empty.

    Returns:
        Tuple of (block, sorted list of names actually signed)
    """
    lookup = _lowercase_lookup(headers)
    present: Dict[str, str] = {}
    for name in declared_headers(headers):
        if name in lookup:
            present[name] = normalize_value(lookup[name])

    keys = sorted(present)
    block = "".join(f"{k}:{present[k]}{NEWLINE}" for k in keys)
    return block, keys


def _to_str(value) -> str:
    # requests accepts bytes header names and values, sent as latin-1
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


def _lowercase_lookup(headers: Mapping[str, str]) -> Dict[str, str]:
    # CaseInsensitiveDict already folds case, plain dicts need it done here
    return {_to_str(k).lower(): _to_str(v) for k, v in headers.items()}


def content_hash(body: Optional[bytes]) -> str:
    """Lowercase hex SHA-256 of body, or empty string if there is no body."""
    if not body:
        return ""
    return hashlib.sha256(body).hexdigest()


def canonical_string(request: SignableRequest) -> str:
    """Build the canonical string for signing/verification."""
    block, _ = normalize_headers(request.headers)
    content_type = _lowercase_lookup(request.headers).get(HEADER_CONTENT_TYPE.lower(), "")

    return (
        request.method.upper() + NEWLINE
        + request.path + NEWLINE
        + request.query + NEWLINE
        + block
        + content_hash(request.body) + NEWLINE
        + content_type + NEWLINE
    )


def sign_request(prepared: requests.PreparedRequest,
                 authenticator: MessageAuthenticator,
                 max_input_size: Optional[int] = None) -> str:
    """
    Sign a prepared request in place.

    Args:
        prepared: Request with its Signed-Headers declaration already set
        authenticator: Authenticator keyed by the shared secret
        max_input_size: Optional body size limit in bytes

    Returns:
        The canonical string that was signed

    Raises:
        InputTooLargeError: If the body exceeds max_input_size
    """
    request = SignableRequest.from_prepared(prepared)
    if max_input_size is not None and request.body and len(request.body) > max_input_size:
        raise InputTooLargeError(
            f"Input size {len(request.body)} exceeds limit {max_input_size}"
        )

    canonical = canonical_string(request)
    _, signed = normalize_headers(request.headers)

    signature = authenticator.sign(canonical)
    prepared.headers[HEADER_SIGNED_HEADERS] = COMMA.join(signed)
    prepared.headers[HEADER_AUTH_INFO] = base64.b64encode(signature).decode('ascii')
    return canonical


def verify_request(prepared: requests.PreparedRequest,
                   authenticator: MessageAuthenticator) -> bool:
    """
    Verify the Auth-Info signature of a signed request.

    Returns:
        True if the signature matches the request's canonical string
    """
    encoded = prepared.headers.get(HEADER_AUTH_INFO)
    if not encoded:
        return False
    try:
        signature = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return False

    request = SignableRequest.from_prepared(prepared)
    return authenticator.verify(canonical_string(request), signature)
