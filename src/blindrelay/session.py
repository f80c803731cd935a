"""
blindrelay - Peer session key-exchange state machine.

A PeerSession owns one ephemeral keypair and reacts to envelopes from the
relay. It performs no I/O: every operation returns the envelopes that must
be transmitted, and everything the user should see is reported as a
SessionEvent to registered listeners.

Handshake flow:
1. start() announces the peer (a "system" join notice) and offers its public key (KeyOffer)
2. A KeyOffer from another peer derives and stores the shared secret
3. A Join from another peer triggers a re-offer so the newcomer can derive
   a secret too; the relay keeps no record of who already holds keys

By default a session holds a single secret slot and the most recent
KeyOffer wins, which gives pairwise secrecy only. With pairwise=True a
secret is kept per peer and outgoing messages are addressed to each
peer individually.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, List, Optional

from . import crypto
from .constants import LEFT_MARKER
from .envelope import Envelope, EnvelopeKind, validate_envelope
from .errors import BlindRelayError, CryptoError, InvalidPeerKey, NoSecureChannel

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Key-exchange states."""

    NO_KEY = auto()  # No shared secret yet
    KEY_ESTABLISHED = auto()  # At least one shared secret derived


class EventType(Enum):
    """Local conditions reported to the UI layer."""

    CHANNEL_ESTABLISHED = auto()
    MESSAGE_DECRYPTED = auto()
    DECRYPTION_FAILED = auto()
    PEER_KEY_INVALID = auto()
    NO_SECURE_CHANNEL = auto()
    PEER_JOINED = auto()
    PEER_LEFT = auto()
    SYSTEM_NOTICE = auto()
    TRANSPORT_CLOSED = auto()


@dataclass(frozen=True)
class SessionEvent:
    """One entry of the local event feed."""

    type: EventType
    sender: str = ""
    text: str = ""
    error: Optional[BlindRelayError] = None


@dataclass(frozen=True)
class SecretSlot:
    """A derived key together with the peer it was agreed with.

    Always replaced as a whole, never mutated.
    """

    key: bytes
    peer: str
    peer_fingerprint: str


EventListener = Callable[[SessionEvent], None]


class PeerSession:
    """Client-side handshake and message state for one room."""

    def __init__(self, username: str, room: str,
                 keypair: Optional[crypto.KeyPair] = None, pairwise: bool = False):
        """
        Initialize a session.

        Args:
            username: Display name, used as the sender field
            room: Room to join
            keypair: Ephemeral keypair (generated if not provided)
            pairwise: Keep one secret per peer instead of a single slot

        Raises:
            EntropyFailure: If a keypair cannot be generated
            ProtocolError: If username or room are not valid envelope fields
        """
        validate_envelope(Envelope.join(room, username))
        self.username = username
        self.room = room
        self.pairwise = pairwise
        self.keypair = keypair or crypto.KeyPair.generate()

        self._lock = threading.Lock()
        self._slot: Optional[SecretSlot] = None
        self._peer_slots: Dict[str, SecretSlot] = {}
        self._listeners: List[EventListener] = []

    # Listener management

    def add_listener(self, listener: EventListener) -> None:
        """Register a callback for session events."""
        self._listeners.append(listener)

    def emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Session listener failed on {event.type.name}: {e}", exc_info=True)

    # State

    @property
    def state(self) -> SessionState:
        with self._lock:
            established = self._slot is not None or bool(self._peer_slots)
        return SessionState.KEY_ESTABLISHED if established else SessionState.NO_KEY

    @property
    def current_secret(self) -> Optional[SecretSlot]:
        """Snapshot of the active secret slot (single-slot mode)."""
        with self._lock:
            return self._slot

    @property
    def shared_secret(self) -> Optional[bytes]:
        slot = self.current_secret
        return slot.key if slot else None

    def secret_for(self, peer: str) -> Optional[bytes]:
        """Secret agreed with a specific peer (pairwise mode)."""
        with self._lock:
            slot = self._peer_slots.get(peer)
        return slot.key if slot else None

    def peers(self) -> List[str]:
        """Peers this session holds a secret with."""
        with self._lock:
            if self.pairwise:
                return sorted(self._peer_slots)
            return [self._slot.peer] if self._slot else []

    # Outbound

    def start(self) -> List[Envelope]:
        """Envelopes to send when the session starts: Join, then KeyOffer."""
        logger.info(f"Session start for '{self.username}' in room '{self.room}'")
        return [Envelope.join(self.room, self.username), self.key_offer()]

    def key_offer(self) -> Envelope:
        return Envelope.key_offer(self.room, self.username, self.keypair.public_bytes())

    def send_text(self, text: str) -> List[Envelope]:
        """
        Encrypt a message for the room.

        Raises:
            NoSecureChannel: If no secret has been established yet
        """
        if self.pairwise:
            with self._lock:
                slots = list(self._peer_slots.values())
        else:
            slot = self.current_secret
            slots = [slot] if slot else []

        if not slots:
            error = NoSecureChannel()
            self.emit(SessionEvent(EventType.NO_SECURE_CHANNEL, self.username, error.message, error))
            raise error

        if not self.pairwise:
            ciphertext = crypto.encrypt_text(slots[0].key, text)
            return [Envelope.cipher_msg(self.room, self.username, ciphertext)]

        return [
            Envelope.cipher_msg(self.room, self.username, crypto.encrypt_text(s.key, text), recipient=s.peer)
            for s in slots
        ]

    # Inbound

    def handle(self, envelope: Envelope) -> List[Envelope]:
        """
        Process one envelope from the relay.

        Returns:
            Envelopes that must be sent in response (possibly empty)
        """
        if envelope.sender == self.username:
            return []

        kind = envelope.known_kind
        if kind is EnvelopeKind.KEY_OFFER:
            self._handle_key_offer(envelope)
        elif kind is EnvelopeKind.CIPHER_MSG:
            self._handle_cipher_msg(envelope)
        elif kind in (EnvelopeKind.JOIN, EnvelopeKind.SYSTEM_NOTICE):
            return self._handle_notice(kind, envelope)
        else:
            logger.debug(f"Ignoring envelope of unknown type {envelope.kind!r} from {envelope.sender}")
        return []

    def _handle_key_offer(self, envelope: Envelope) -> None:
        try:
            key = self.keypair.derive(envelope.public_key)
        except InvalidPeerKey as e:
            logger.warning(f"Dropping invalid key offer from {envelope.sender}: {e.message}")
            self.emit(SessionEvent(EventType.PEER_KEY_INVALID, envelope.sender, e.message, e))
            return

        slot = SecretSlot(key=key, peer=envelope.sender,
                          peer_fingerprint=crypto.fingerprint(envelope.public_key))
        with self._lock:
            if self.pairwise:
                peer_slots = dict(self._peer_slots)
                peer_slots[envelope.sender] = slot
                self._peer_slots = peer_slots
            else:
                self._slot = slot

        logger.info(f"Shared secret derived with {envelope.sender} ({slot.peer_fingerprint})")
        self.emit(SessionEvent(EventType.CHANNEL_ESTABLISHED, envelope.sender, slot.peer_fingerprint))

    def _handle_cipher_msg(self, envelope: Envelope) -> None:
        if self.pairwise:
            if envelope.recipient and envelope.recipient != self.username:
                return
            key = self.secret_for(envelope.sender)
        else:
            key = self.shared_secret

        if key is None:
            error = NoSecureChannel("Encrypted message received, but no key")
            self.emit(SessionEvent(EventType.NO_SECURE_CHANNEL, envelope.sender, error.message, error))
            return

        try:
            text = crypto.decrypt_text(key, envelope.content)
        except CryptoError as e:
            logger.warning(f"Could not decrypt message from {envelope.sender}: {e.message}")
            self.emit(SessionEvent(EventType.DECRYPTION_FAILED, envelope.sender, e.message, e))
            return

        self.emit(SessionEvent(EventType.MESSAGE_DECRYPTED, envelope.sender, text))

    def _handle_notice(self, kind: EnvelopeKind, envelope: Envelope) -> List[Envelope]:
        text = envelope.text

        if kind is EnvelopeKind.JOIN and self.username not in text:
            self.emit(SessionEvent(EventType.PEER_JOINED, envelope.sender, text))
            logger.info(f"New participant {envelope.sender}, re-offering public key")
            return [self.key_offer()]

        if LEFT_MARKER in text:
            self.emit(SessionEvent(EventType.PEER_LEFT, envelope.sender, text))
            self._forget_peer(text)
        else:
            self.emit(SessionEvent(EventType.SYSTEM_NOTICE, envelope.sender, text))
        return []

    def _forget_peer(self, notice_text: str) -> None:
        """Drop pairwise secrets for a peer named in a leave notice."""
        if not self.pairwise:
            return
        with self._lock:
            departed = [p for p in self._peer_slots if f" {p} {LEFT_MARKER}" in notice_text]
            if departed:
                self._peer_slots = {p: s for p, s in self._peer_slots.items() if p not in departed}
        for peer in departed:
            logger.info(f"Forgot secret for departed peer {peer}")
