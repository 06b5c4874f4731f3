"""
Constants for ELMA client library.
Reserved header names and defaults of the ELMA Public API handshake.
"""

# HTTP Headers
HEADER_AUTH_INFO = "Auth-Info"
HEADER_SIGNED_HEADERS = "Signed-Headers"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_APPLICATION_TOKEN = "ApplicationToken"
HEADER_SESSION_TOKEN = "SessionToken"
HEADER_AUTH_TOKEN = "AuthToken"
HEADER_WEBDATA_VERSION = "WebData-Version"

# Token headers always declared as signed
TOKEN_HEADERS = (HEADER_AUTH_TOKEN, HEADER_SESSION_TOKEN, HEADER_APPLICATION_TOKEN)

CONTENT_TYPE_JSON = "application/json"
LOGIN_PATH = "API/REST/Authorization/LoginWith"

# WCF occasionally prefixes JSON bodies with a UTF-8 byte-order mark
UTF8_BOM = b"\xef\xbb\xbf"

# Other constants
MAX_INPUT_SIZE = 32 * 1024 * 1024  # 32MB
WEBDATA_VERSION = "2.0"

# Default configuration values
DEFAULT_CONFIG = {
    'timeout': 30,                    # HTTP timeout in seconds
    'max_input_size': MAX_INPUT_SIZE, # signed body limit in bytes
    'webdata_version': WEBDATA_VERSION,
}
