"""
blindrelay - Global Constants and Configuration Values

This module defines all constants used throughout blindrelay.
All magic numbers and configuration defaults are centralized here.
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "blindrelay"

# Network Constants
DEFAULT_SERVER_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
LOCALHOST = "127.0.0.1"

# Connection Timeouts (seconds)
CONNECTION_TIMEOUT = 10
SEND_TIMEOUT = 5.0  # Per-recipient write bound during broadcast
CLOSE_TIMEOUT = 1.0  # Bound on waiting for a closed connection to finish

# Message Limits
MAX_FRAME_SIZE = 64 * 1024  # 64 KB
MAX_ROOM_LENGTH = 64
MAX_SENDER_LENGTH = 64
DISPATCH_QUEUE_SIZE = 1024

# Wire Protocol
PROTOCOL_VERSION = 1
FRAME_HEADER_FORMAT = "!BI"  # version (1 byte), payload length (4 bytes)

# Cryptography Constants
CURVE_NAME = "secp256r1"  # NIST P-256
PUBLIC_KEY_SIZE = 65  # Uncompressed SEC1 point: 0x04 || X || Y
KEY_SIZE = 32  # 256 bits for AES-256-GCM
NONCE_SIZE = 12  # 96 bits for GCM
TAG_SIZE = 16  # 128-bit GCM tag

# Notice Texts
JOIN_NOTICE = ">>> {sender} joined the secure channel"
LEAVE_NOTICE = ">>> {sender} disconnected"
JOINED_MARKER = "joined"
LEFT_MARKER = "disconnected"
RELAY_SENDER = "*relay*"

# File Paths
DEFAULT_DATA_DIR = "~/.blindrelay"
CONFIG_FILENAME = "config.toml"
LOG_FILENAME = "blindrelay.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
