"""
blindrelay - Envelope wire format tests.
"""

import base64
import json

import pytest

from blindrelay.envelope import Envelope, EnvelopeKind, validate_envelope
from blindrelay.errors import ProtocolError


def test_wire_field_names():
    env = Envelope.key_offer("r1", "x", b"\x04" + b"\x01" * 64)

    data = env.to_dict()

    assert set(data) == {"type", "room", "sender", "content", "public_key"}
    assert data["type"] == "pubkey"
    assert data["content"] is None
    assert base64.b64decode(data["public_key"]) == env.public_key


def test_binary_content_survives_encoding():
    payload = bytes(range(256))
    env = Envelope.cipher_msg("r1", "x", payload)

    decoded = Envelope.decode(env.encode())

    assert decoded == env
    assert decoded.content == payload


def test_join_carries_announcement_text():
    env = Envelope.join("r1", "alice")

    assert env.to_dict()["type"] == "system"
    assert env.known_kind is EnvelopeKind.JOIN
    assert env.text == ">>> alice joined the secure channel"


def test_join_type_from_wire_is_classified_as_join():
    env = Envelope.decode(b'{"type":"join","room":"r1","sender":"x"}')

    assert env.known_kind is EnvelopeKind.JOIN


def test_encoding_is_compact():
    encoded = Envelope.join("r1", "x").encode()

    assert b", " not in encoded
    assert b": " not in encoded


def test_leave_notice_text():
    env = Envelope.leave_notice("r1", "*relay*", "bob")

    assert env.known_kind is EnvelopeKind.SYSTEM_NOTICE
    assert env.text == ">>> bob disconnected"


def test_null_and_missing_fields_decode_to_empty():
    env = Envelope.from_dict({"type": "msg", "room": "r1", "sender": "x", "content": None})

    assert env.content == b""
    assert env.public_key == b""
    assert env.recipient == ""


def test_recipient_only_on_wire_when_set():
    assert "recipient" not in Envelope.cipher_msg("r1", "x", b"c").to_dict()
    assert Envelope.cipher_msg("r1", "x", b"c", recipient="y").to_dict()["recipient"] == "y"


def test_unknown_kind_survives_decoding():
    raw = json.dumps({"type": "typing", "room": "r1", "sender": "x"}).encode()

    env = Envelope.decode(raw)

    assert env.kind == "typing"
    assert env.known_kind is None


def test_strict_validation_rejects_unknown_kind():
    env = Envelope("typing", "r1", "x")

    with pytest.raises(ProtocolError):
        validate_envelope(env)
    validate_envelope(env, strict=False)


@pytest.mark.parametrize("env", [
    Envelope("pubkey", "r1", "x"),
    Envelope("msg", "r1", "x"),
    Envelope("join", "r" * 65, "x"),
    Envelope("join", "r1", "x" * 65),
])
def test_validation_rejects_bad_envelopes(env):
    with pytest.raises(ProtocolError):
        validate_envelope(env)


@pytest.mark.parametrize("raw", [
    b"not json",
    b"[1, 2, 3]",
    b'{"type": 5, "room": "r1", "sender": "x"}',
    b'{"type": "msg", "room": "r1", "sender": "x", "content": "%%%"}',
    b'{"type": "msg", "room": "r1", "sender": "x", "content": 12}',
    b"\xff\xfe",
])
def test_malformed_envelopes_raise_protocol_error(raw):
    with pytest.raises(ProtocolError):
        Envelope.decode(raw)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
