"""
blindrelay - Ephemeral key exchange and payload encryption.

This module implements the cryptographic core of the secure channel:
- Ephemeral ECDH keypairs on NIST P-256
- Shared secret derivation: SHA-256 over the x-coordinate of the shared point
- AES-256-GCM authenticated encryption with a fresh random nonce per message

Ciphertext blobs are laid out as nonce || ciphertext || tag, which is the
format produced by Go's cipher.AEAD.Seal(nonce, nonce, ...) and lets peers
written against either implementation talk to each other.

All cryptographic operations use the cryptography library
(Apache 2.0/BSD License).
"""

import hashlib
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import NONCE_SIZE, PUBLIC_KEY_SIZE, TAG_SIZE
from .errors import AuthenticationFailure, EntropyFailure, InvalidPeerKey, MalformedCiphertext

CURVE = ec.SECP256R1()


class KeyPair:
    """
    An ephemeral P-256 keypair owned by a single peer session.

    The private scalar never leaves this object; only the public point
    is transmitted, as an uncompressed SEC1 encoding.
    """

    __slots__ = ("private_key", "public_key")

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> "KeyPair":
        """
        Generate a fresh keypair from the OS random source.

        Raises:
            EntropyFailure: If secure randomness is unavailable
        """
        try:
            private_key = ec.generate_private_key(CURVE)
        except Exception as e:
            raise EntropyFailure(f"Key generation failed: {e}") from e
        return cls(private_key)

    def public_bytes(self) -> bytes:
        """Get public key as an uncompressed point (0x04 || X || Y)."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )

    def derive(self, peer_public_bytes: bytes) -> bytes:
        """Derive the shared secret with a peer's encoded public key."""
        return derive_shared_secret(self.private_key, load_peer_public_key(peer_public_bytes))


def load_peer_public_key(data: bytes) -> ec.EllipticCurvePublicKey:
    """
    Decode a peer's uncompressed public point.

    Raises:
        InvalidPeerKey: If the encoding is not a valid point on the curve
    """
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidPeerKey("Public key must be bytes", {"type": type(data).__name__})
    if len(data) != PUBLIC_KEY_SIZE or data[0] != 0x04:
        raise InvalidPeerKey(
            "Public key is not an uncompressed P-256 point",
            {"length": len(data)},
        )
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes(data))
    except ValueError as e:
        raise InvalidPeerKey(f"Public key is not on the curve: {e}") from e


def derive_shared_secret(private_key: ec.EllipticCurvePrivateKey,
                         peer_public: Union[ec.EllipticCurvePublicKey, bytes]) -> bytes:
    """
    Compute SHA-256(x) where (x, y) = private_scalar * peer_point.

    The x-coordinate is hashed in its minimal big-endian form, with
    leading zero bytes stripped.

    Raises:
        InvalidPeerKey: If peer_public is an undecodable encoding
    """
    if isinstance(peer_public, (bytes, bytearray)):
        peer_public = load_peer_public_key(peer_public)
    try:
        shared_x = private_key.exchange(ec.ECDH(), peer_public)
    except ValueError as e:
        raise InvalidPeerKey(f"Key agreement failed: {e}") from e
    return hashlib.sha256(shared_x.lstrip(b"\x00")).digest()


def generate_nonce() -> bytes:
    """Return NONCE_SIZE bytes from the OS CSPRNG."""
    try:
        return os.urandom(NONCE_SIZE)
    except (OSError, NotImplementedError) as e:
        raise EntropyFailure(f"Nonce generation failed: {e}") from e


def encrypt(key: bytes, plaintext: bytes) -> bytes:
    """
    Seal plaintext under key with AES-256-GCM and no associated data.

    Returns nonce || ciphertext || tag. A new nonce is drawn for every call.
    """
    nonce = generate_nonce()
    return nonce + AESGCM(key).encrypt(nonce, plaintext, None)


def decrypt(key: bytes, blob: bytes) -> bytes:
    """
    Open a blob produced by encrypt().

    Only a blob shorter than the nonce is malformed. A blob that holds a
    nonce but is too short for the tag cannot authenticate and is reported
    as an authentication failure, like any other tag mismatch.

    Raises:
        MalformedCiphertext: If the blob is shorter than the nonce
        AuthenticationFailure: If the tag check fails
    """
    if len(blob) < NONCE_SIZE:
        raise MalformedCiphertext(
            "Ciphertext shorter than nonce",
            {"length": len(blob), "minimum": NONCE_SIZE},
        )
    nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    if len(sealed) < TAG_SIZE:
        raise AuthenticationFailure()
    try:
        return AESGCM(key).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise AuthenticationFailure() from e


def encrypt_text(key: bytes, text: str) -> bytes:
    """Encrypt a UTF-8 string."""
    return encrypt(key, text.encode("utf-8"))


def decrypt_text(key: bytes, blob: bytes) -> str:
    """Decrypt a blob and decode it as UTF-8."""
    plaintext = decrypt(key, blob)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedCiphertext(f"Plaintext is not valid UTF-8: {e}") from e



def fingerprint(public_key_bytes: bytes) -> str:
    """Short hex fingerprint of a public key, for display only."""
    return hashlib.sha256(public_key_bytes).hexdigest()[:16]
