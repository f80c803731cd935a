"""
blindrelay - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
blindrelay. Each error has a unique code for logging and debugging.

Only EntropyFailure is fatal. Every other error is recoverable and is
converted into a local event at the boundary where it is detected.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all blindrelay error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENTROPY_FAILURE = "E101"
    E102_INVALID_PEER_KEY = "E102"
    E103_MALFORMED_CIPHERTEXT = "E103"
    E104_AUTHENTICATION_FAILURE = "E104"

    # Network Errors (E200-E299)
    E200_NETWORK_ERROR = "E200"
    E201_CONNECTION_FAILED = "E201"
    E202_CONNECTION_TIMEOUT = "E202"
    E203_TRANSPORT_CLOSED = "E203"
    E206_INVALID_MESSAGE = "E206"
    E207_MESSAGE_TOO_LARGE = "E207"

    # Session Errors (E300-E399)
    E300_SESSION_ERROR = "E300"
    E301_NO_SECURE_CHANNEL = "E301"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E704_CONFIG_PARSE_ERROR = "E704"


class BlindRelayError(Exception):
    """Base exception class for all blindrelay errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize a blindrelay error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary containing error information
        """
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(BlindRelayError):
    """Exception raised for cryptographic operation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class EntropyFailure(CryptoError):
    """The secure random source failed. Fatal: keys cannot be generated."""

    def __init__(
        self,
        message: str = "Secure random source unavailable",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E101_ENTROPY_FAILURE, message, details)


class InvalidPeerKey(CryptoError):
    """A peer's public key does not decode to a valid curve point."""

    def __init__(
        self,
        message: str = "Peer public key is invalid",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E102_INVALID_PEER_KEY, message, details)


class MalformedCiphertext(CryptoError):
    """Ciphertext blob is too short or does not decode to text."""

    def __init__(
        self,
        message: str = "Ciphertext is malformed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E103_MALFORMED_CIPHERTEXT, message, details)


class AuthenticationFailure(CryptoError):
    """AEAD tag check failed: wrong key, corruption or tampering."""

    def __init__(
        self,
        message: str = "Ciphertext failed authentication",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E104_AUTHENTICATION_FAILURE, message, details)


class SessionError(BlindRelayError):
    """Exception raised for peer session failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E300_SESSION_ERROR,
        message: str = "Session operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class NoSecureChannel(SessionError):
    """Local send attempted before any shared secret was established."""

    def __init__(
        self,
        message: str = "No secure channel yet, message not sent",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E301_NO_SECURE_CHANNEL, message, details)


class NetworkError(BlindRelayError):
    """Exception raised for network operation failures.

    This includes connection errors, timeouts, send/receive failures,
    and protocol violations.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_NETWORK_ERROR,
        message: str = "Network operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class TransportClosed(NetworkError):
    """The underlying transport was closed or failed. Terminal for one session."""

    def __init__(
        self,
        message: str = "Transport closed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E203_TRANSPORT_CLOSED, message, details)


class ProtocolError(NetworkError):
    """A frame or envelope could not be parsed."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E206_INVALID_MESSAGE,
        message: str = "Invalid message",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(BlindRelayError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
