"""
blindrelay - Transport framing.

Envelopes travel over a reliable, ordered byte stream. Each envelope is
prefixed with a header containing:
- Protocol version (1 byte)
- Payload length (4 bytes)

Total header size: 5 bytes. The payload is the JSON envelope encoding.
"""

import asyncio
import struct
from typing import Optional, Tuple

from .constants import FRAME_HEADER_FORMAT, MAX_FRAME_SIZE, PROTOCOL_VERSION
from .envelope import Envelope
from .errors import ErrorCode, ProtocolError, TransportClosed


class Protocol:
    """Frame codec for envelopes."""

    VERSION = PROTOCOL_VERSION
    HEADER_SIZE = struct.calcsize(FRAME_HEADER_FORMAT)
    MAX_PAYLOAD_SIZE = MAX_FRAME_SIZE

    @staticmethod
    def pack_frame(envelope: Envelope) -> bytes:
        """
        Pack an envelope with protocol header.

        Raises:
            ProtocolError: If the encoded envelope is too large
        """
        return Protocol.pack_payload(envelope.encode())

    @staticmethod
    def pack_payload(payload: bytes) -> bytes:
        """
        Frame an already encoded envelope.

        Raises:
            ProtocolError: If the payload is too large
        """
        if len(payload) > Protocol.MAX_PAYLOAD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_MESSAGE_TOO_LARGE,
                f"Payload too large: {len(payload)} bytes",
                {"size": len(payload), "max_size": Protocol.MAX_PAYLOAD_SIZE},
            )

        header = struct.pack(FRAME_HEADER_FORMAT, Protocol.VERSION, len(payload))
        return header + payload

    @staticmethod
    def parse_header(header: bytes) -> int:
        """
        Validate a frame header and return the payload length.

        Raises:
            ProtocolError: If the version is unsupported or the length too large
        """
        version, length = struct.unpack(FRAME_HEADER_FORMAT, header)

        if version != Protocol.VERSION:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                f"Unsupported protocol version: {version}",
                {"version": version, "expected": Protocol.VERSION},
            )

        if length > Protocol.MAX_PAYLOAD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_MESSAGE_TOO_LARGE,
                f"Payload too large: {length} bytes",
                {"size": length, "max_size": Protocol.MAX_PAYLOAD_SIZE},
            )

        return length

    @staticmethod
    def unpack_frame(data: bytes) -> Optional[Tuple[Envelope, int]]:
        """
        Unpack one envelope from buffered data.

        Returns:
            (envelope, bytes consumed), or None if the frame is incomplete

        Raises:
            ProtocolError: If the frame is invalid
        """
        if len(data) < Protocol.HEADER_SIZE:
            return None

        length = Protocol.parse_header(data[: Protocol.HEADER_SIZE])

        if len(data) < Protocol.HEADER_SIZE + length:
            return None

        payload = data[Protocol.HEADER_SIZE : Protocol.HEADER_SIZE + length]
        return Envelope.decode(payload), Protocol.HEADER_SIZE + length


async def read_frame(reader: asyncio.StreamReader) -> bytes:
    """
    Read exactly one frame and return its payload bytes.

    Raises:
        TransportClosed: If the stream ends or fails
        ProtocolError: If the header is invalid; the stream cannot be resynchronised
    """
    try:
        header = await reader.readexactly(Protocol.HEADER_SIZE)
        length = Protocol.parse_header(header)
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise TransportClosed("Connection closed by peer") from e
    except (ConnectionError, OSError) as e:
        raise TransportClosed(f"Read failed: {e}") from e


async def read_envelope(reader: asyncio.StreamReader) -> Envelope:
    """
    Read exactly one framed envelope.

    Raises:
        TransportClosed: If the stream ends or fails
        ProtocolError: If the frame is invalid
    """
    return Envelope.decode(await read_frame(reader))


async def write_frame(writer: asyncio.StreamWriter, frame: bytes) -> None:
    """
    Write one packed frame and wait for the buffer to drain.

    Raises:
        TransportClosed: If the stream is closed or fails
    """
    if writer.is_closing():
        raise TransportClosed("Writer is closing")
    try:
        writer.write(frame)
        await writer.drain()
    except (ConnectionError, OSError) as e:
        raise TransportClosed(f"Write failed: {e}") from e
