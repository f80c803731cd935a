"""
blindrelay - Cryptography tests.

Tests for ephemeral key exchange and AES-GCM payload encryption.
"""

import hashlib
import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from blindrelay import crypto
from blindrelay.constants import KEY_SIZE, NONCE_SIZE, PUBLIC_KEY_SIZE, TAG_SIZE
from blindrelay.errors import (
    AuthenticationFailure,
    EntropyFailure,
    InvalidPeerKey,
    MalformedCiphertext,
)


def test_keypair_generation(alice_keys):
    """Public key is an uncompressed P-256 point."""
    public = alice_keys.public_bytes()

    assert len(public) == PUBLIC_KEY_SIZE
    assert public[0] == 0x04
    assert isinstance(alice_keys.private_key.curve, ec.SECP256R1)


def test_keypairs_are_independent():
    assert crypto.KeyPair.generate().public_bytes() != crypto.KeyPair.generate().public_bytes()


def test_key_exchange_is_symmetric():
    """Both sides derive the same 32-byte secret."""
    for _ in range(5):
        a = crypto.KeyPair.generate()
        b = crypto.KeyPair.generate()

        secret_ab = crypto.derive_shared_secret(a.private_key, b.public_bytes())
        secret_ba = crypto.derive_shared_secret(b.private_key, a.public_bytes())

        assert secret_ab == secret_ba
        assert len(secret_ab) == 32


def test_derive_hashes_minimal_x_coordinate(alice_keys, bob_keys):
    """The secret is SHA-256 over the x-coordinate without leading zeros."""
    shared_x = alice_keys.private_key.exchange(ec.ECDH(), bob_keys.public_key)

    expected = hashlib.sha256(shared_x.lstrip(b"\x00")).digest()

    assert alice_keys.derive(bob_keys.public_bytes()) == expected


def test_different_peers_give_different_secrets(alice_keys, bob_keys):
    charlie = crypto.KeyPair.generate()

    assert alice_keys.derive(bob_keys.public_bytes()) != alice_keys.derive(charlie.public_bytes())


@pytest.mark.parametrize("bad_key", [
    b"",
    b"\x04",
    b"\x04" + b"\x00" * 64,
    b"\x05" + os.urandom(64),
    b"\x04" + b"\xff" * 64,
    b"not a key at all",
])
def test_invalid_peer_key_rejected(alice_keys, bad_key):
    with pytest.raises(InvalidPeerKey):
        crypto.derive_shared_secret(alice_keys.private_key, bad_key)


def test_compressed_point_rejected(alice_keys, bob_keys):
    """Only the uncompressed encoding is accepted on the wire."""
    from cryptography.hazmat.primitives import serialization

    compressed = bob_keys.public_key.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
    )

    with pytest.raises(InvalidPeerKey):
        alice_keys.derive(compressed)


def test_encryption_roundtrip():
    key = os.urandom(KEY_SIZE)
    plaintext = "This is a secret message with unicode: héllo wörld 你好"

    blob = crypto.encrypt_text(key, plaintext)

    assert crypto.decrypt_text(key, blob) == plaintext


def test_empty_plaintext_roundtrip():
    key = os.urandom(KEY_SIZE)

    assert crypto.decrypt(key, crypto.encrypt(key, b"")) == b""


def test_ciphertext_length():
    key = os.urandom(KEY_SIZE)
    plaintext = b"x" * 37

    blob = crypto.encrypt(key, plaintext)

    assert len(blob) == NONCE_SIZE + len(plaintext) + TAG_SIZE
    assert plaintext not in blob


def test_fresh_nonce_per_message():
    key = os.urandom(KEY_SIZE)

    first = crypto.encrypt(key, b"same message")
    second = crypto.encrypt(key, b"same message")

    assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
    assert first != second


def test_decrypt_with_wrong_key_fails():
    blob = crypto.encrypt(os.urandom(KEY_SIZE), b"Secret message")

    with pytest.raises(AuthenticationFailure):
        crypto.decrypt(os.urandom(KEY_SIZE), blob)


def test_tampered_ciphertext_fails():
    key = os.urandom(KEY_SIZE)
    blob = bytearray(crypto.encrypt(key, b"Secret message"))
    blob[NONCE_SIZE] ^= 0x01

    with pytest.raises(AuthenticationFailure):
        crypto.decrypt(key, bytes(blob))


@pytest.mark.parametrize("length", [0, 5, NONCE_SIZE - 1])
def test_short_blob_is_malformed(length):
    with pytest.raises(MalformedCiphertext):
        crypto.decrypt(os.urandom(KEY_SIZE), b"\x00" * length)


@pytest.mark.parametrize("length", [NONCE_SIZE, NONCE_SIZE + TAG_SIZE - 1])
def test_blob_without_room_for_tag_fails_authentication(length):
    with pytest.raises(AuthenticationFailure):
        crypto.decrypt(os.urandom(KEY_SIZE), b"\x00" * length)


def test_non_utf8_plaintext_is_malformed():
    key = os.urandom(KEY_SIZE)
    blob = crypto.encrypt(key, b"\xff\xfe\xfd")

    with pytest.raises(MalformedCiphertext):
        crypto.decrypt_text(key, blob)


def test_nonce_entropy_failure(monkeypatch):
    def broken_urandom(n):
        raise OSError("no entropy")

    monkeypatch.setattr(crypto.os, "urandom", broken_urandom)

    with pytest.raises(EntropyFailure):
        crypto.encrypt(b"k" * 32, b"data")


def test_keypair_entropy_failure(monkeypatch):
    def broken_generate(curve):
        raise RuntimeError("rng failure")

    monkeypatch.setattr(crypto.ec, "generate_private_key", broken_generate)

    with pytest.raises(EntropyFailure):
        crypto.KeyPair.generate()


def test_fingerprint_is_stable(alice_keys):
    public = alice_keys.public_bytes()

    assert crypto.fingerprint(public) == crypto.fingerprint(public)
    assert len(crypto.fingerprint(public)) == 16


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
