"""
blindrelay - Envelope wire record.

An envelope is the only thing that crosses the relay. Routing fields
(type, room, sender) are plaintext so the relay can partition traffic;
content and public_key are opaque bytes, base64 encoded on the wire.

Wire form:
    {"type": "msg", "room": "r1", "sender": "x",
     "content": "<base64>", "public_key": null}

A join is announced as a "system" envelope carrying the join text, which
is what every peer on the network understands. JOIN is the local
classification of such a notice; a "join" type received on the wire is
accepted as the same thing.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .constants import JOIN_NOTICE, JOINED_MARKER, LEAVE_NOTICE, MAX_ROOM_LENGTH, MAX_SENDER_LENGTH
from .errors import ErrorCode, ProtocolError


class EnvelopeKind(str, Enum):
    """Envelope type definitions."""

    JOIN = "join"
    KEY_OFFER = "pubkey"
    CIPHER_MSG = "msg"
    SYSTEM_NOTICE = "system"

    @classmethod
    def parse(cls, value: str) -> Optional["EnvelopeKind"]:
        """Return the kind for a wire string, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


def _b64(data: bytes) -> Optional[str]:
    if not data:
        return None
    return base64.b64encode(data).decode("ascii")


def _b64d(value: Any, field: str) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ProtocolError(message=f"Field '{field}' must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(message=f"Field '{field}' is not valid base64: {e}")


@dataclass(frozen=True)
class Envelope:
    """A single message on the wire.

    kind is kept as a plain string so that envelopes of unknown type
    survive decoding and can be ignored (or relayed) instead of rejected.
    """

    kind: str
    room: str
    sender: str
    content: bytes = b""
    public_key: bytes = b""
    recipient: str = ""

    @classmethod
    def join(cls, room: str, sender: str) -> "Envelope":
        return cls.system_notice(room, sender, JOIN_NOTICE.format(sender=sender))

    @classmethod
    def key_offer(cls, room: str, sender: str, public_key: bytes) -> "Envelope":
        return cls(EnvelopeKind.KEY_OFFER.value, room, sender, public_key=public_key)

    @classmethod
    def cipher_msg(cls, room: str, sender: str, ciphertext: bytes, recipient: str = "") -> "Envelope":
        return cls(EnvelopeKind.CIPHER_MSG.value, room, sender, content=ciphertext, recipient=recipient)

    @classmethod
    def system_notice(cls, room: str, sender: str, text: str) -> "Envelope":
        return cls(EnvelopeKind.SYSTEM_NOTICE.value, room, sender, content=text.encode("utf-8"))

    @classmethod
    def leave_notice(cls, room: str, sender: str, departed: str) -> "Envelope":
        return cls.system_notice(room, sender, LEAVE_NOTICE.format(sender=departed))

    @property
    def known_kind(self) -> Optional[EnvelopeKind]:
        """Classified kind; system notices announcing a join count as JOIN."""
        kind = EnvelopeKind.parse(self.kind)
        if kind is EnvelopeKind.SYSTEM_NOTICE and JOINED_MARKER in self.text:
            return EnvelopeKind.JOIN
        return kind

    @property
    def text(self) -> str:
        """Content decoded as UTF-8, for Join and SystemNotice envelopes."""
        return self.content.decode("utf-8", errors="replace")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-compatible wire dictionary."""
        data: Dict[str, Any] = {
            "type": self.kind,
            "room": self.room,
            "sender": self.sender,
            "content": _b64(self.content),
            "public_key": _b64(self.public_key),
        }
        if self.recipient:
            data["recipient"] = self.recipient
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Envelope":
        """
        Build an envelope from a wire dictionary.

        Only the shape is checked here; see validate_envelope() for the
        stricter checks.

        Raises:
            ProtocolError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ProtocolError(message="Envelope must be a JSON object")
        for field in ("type", "room", "sender"):
            value = data.get(field, "")
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ProtocolError(message=f"Field '{field}' must be a string")
        recipient = data.get("recipient") or ""
        if not isinstance(recipient, str):
            raise ProtocolError(message="Field 'recipient' must be a string")
        return cls(
            kind=data.get("type") or "",
            room=data.get("room") or "",
            sender=data.get("sender") or "",
            content=_b64d(data.get("content"), "content"),
            public_key=_b64d(data.get("public_key"), "public_key"),
            recipient=recipient,
        )

    def encode(self) -> bytes:
        """Serialize to UTF-8 JSON bytes."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "Envelope":
        """
        Parse UTF-8 JSON bytes.

        Raises:
            ProtocolError: If the bytes are not a well-formed envelope
        """
        try:
            obj = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE, f"Failed to parse envelope: {e}", {"error": str(e)}
            )
        return cls.from_dict(obj)


def validate_envelope(env: Envelope, strict: bool = True) -> None:
    """
    Validate an envelope beyond its structural shape.

    Args:
        env: Envelope to validate
        strict: Reject unknown kinds when True

    Raises:
        ProtocolError: If the envelope is invalid
    """
    kind = env.known_kind
    if kind is None and strict:
        raise ProtocolError(message=f"Unknown envelope type: {env.kind!r}", details={"type": env.kind})
    if len(env.room) > MAX_ROOM_LENGTH:
        raise ProtocolError(message=f"Room name too long (max {MAX_ROOM_LENGTH} characters)")
    if len(env.sender) > MAX_SENDER_LENGTH:
        raise ProtocolError(message=f"Sender name too long (max {MAX_SENDER_LENGTH} characters)")
    if kind is EnvelopeKind.KEY_OFFER and not env.public_key:
        raise ProtocolError(message="Key offer carries no public key")
    if kind is EnvelopeKind.CIPHER_MSG and not env.content:
        raise ProtocolError(message="Ciphertext message carries no content")
