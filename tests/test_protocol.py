"""
blindrelay - Transport framing tests.
"""

import asyncio
import struct

import pytest

from blindrelay.envelope import Envelope
from blindrelay.errors import ProtocolError, TransportClosed
from blindrelay.protocol import Protocol, read_envelope


def test_protocol_pack_unpack():
    env = Envelope.cipher_msg("r1", "x", b"\x00\x01\x02")

    packed = Protocol.pack_frame(env)
    unpacked, consumed = Protocol.unpack_frame(packed)

    assert packed[0] == Protocol.VERSION
    assert unpacked == env
    assert consumed == len(packed)


def test_protocol_incomplete_message():
    packed = Protocol.pack_frame(Envelope.join("r1", "x"))

    assert Protocol.unpack_frame(packed[:3]) is None
    assert Protocol.unpack_frame(packed[:Protocol.HEADER_SIZE]) is None
    assert Protocol.unpack_frame(packed[:-1]) is None


def test_protocol_consumes_one_frame_at_a_time():
    first = Protocol.pack_frame(Envelope.join("r1", "x"))
    second = Protocol.pack_frame(Envelope.join("r1", "y"))

    env, consumed = Protocol.unpack_frame(first + second)

    assert env.sender == "x"
    assert consumed == len(first)


def test_protocol_version_mismatch():
    header = struct.pack("!BI", Protocol.VERSION + 1, 2)

    with pytest.raises(ProtocolError):
        Protocol.unpack_frame(header + b"{}")


def test_protocol_rejects_oversized_header():
    header = struct.pack("!BI", Protocol.VERSION, Protocol.MAX_PAYLOAD_SIZE + 1)

    with pytest.raises(ProtocolError):
        Protocol.unpack_frame(header)


def test_protocol_rejects_oversized_envelope():
    env = Envelope.cipher_msg("r1", "x", b"\x00" * Protocol.MAX_PAYLOAD_SIZE)

    with pytest.raises(ProtocolError):
        Protocol.pack_frame(env)


@pytest.mark.asyncio
async def test_read_envelope_from_stream():
    reader = asyncio.StreamReader()
    env = Envelope.key_offer("r1", "x", b"\x04" + b"\x02" * 64)
    reader.feed_data(Protocol.pack_frame(env))

    assert await read_envelope(reader) == env


@pytest.mark.asyncio
async def test_read_envelope_eof_is_transport_closed():
    reader = asyncio.StreamReader()
    reader.feed_data(Protocol.pack_frame(Envelope.join("r1", "x"))[:4])
    reader.feed_eof()

    with pytest.raises(TransportClosed):
        await read_envelope(reader)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
