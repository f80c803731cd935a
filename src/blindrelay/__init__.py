"""
blindrelay - End-to-end encrypted room chat over an untrusted relay

Peers agree on keys with an ephemeral ECDH handshake carried by the relay
and exchange AES-GCM ciphertext. The relay routes by room and sender name
only and never holds a key.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import Config
from .constants import APP_NAME, VERSION
from .crypto import KeyPair, decrypt, derive_shared_secret, encrypt
from .envelope import Envelope, EnvelopeKind
from .errors import (
    AuthenticationFailure,
    BlindRelayError,
    ConfigError,
    CryptoError,
    EntropyFailure,
    ErrorCode,
    InvalidPeerKey,
    MalformedCiphertext,
    NetworkError,
    NoSecureChannel,
    ProtocolError,
    SessionError,
    TransportClosed,
)
from .relay import RelayRouter
from .session import EventType, PeerSession, SessionEvent, SessionState

__all__ = [
    "APP_NAME",
    "VERSION",
    "AuthenticationFailure",
    "BlindRelayError",
    "Config",
    "ConfigError",
    "CryptoError",
    "EntropyFailure",
    "Envelope",
    "EnvelopeKind",
    "ErrorCode",
    "EventType",
    "InvalidPeerKey",
    "KeyPair",
    "MalformedCiphertext",
    "NetworkError",
    "NoSecureChannel",
    "PeerSession",
    "ProtocolError",
    "RelayRouter",
    "SessionError",
    "SessionEvent",
    "SessionState",
    "TransportClosed",
    "decrypt",
    "derive_shared_secret",
    "encrypt",
    "__license__",
    "__version__",
]
