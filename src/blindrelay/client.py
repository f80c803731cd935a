"""
blindrelay - Relay client.

Binds a PeerSession to a TCP connection with the relay. Two flows share
the session: a receive task that feeds inbound envelopes to the session
(the only place its secrets change), and callers of send_text(), which
only take a snapshot of the current secret.
"""

import asyncio
import logging
from typing import Iterable, Optional

from .constants import CONNECTION_TIMEOUT, DEFAULT_SERVER_PORT, LOCALHOST
from .envelope import Envelope
from .errors import ErrorCode, NetworkError, ProtocolError, TransportClosed
from .protocol import Protocol, read_frame, write_frame
from .session import EventType, PeerSession, SessionEvent

logger = logging.getLogger(__name__)


class RelayClient:
    """One peer's connection to the relay."""

    def __init__(self, session: PeerSession, host: str = LOCALHOST,
                 port: int = DEFAULT_SERVER_PORT, connect_timeout: float = CONNECTION_TIMEOUT):
        self.session = session
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout

        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def connected(self) -> bool:
        return self.writer is not None and not self._closed

    async def connect(self) -> None:
        """
        Connect to the relay and start the handshake.

        Raises:
            NetworkError: If the relay cannot be reached
        """
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise NetworkError(
                ErrorCode.E202_CONNECTION_TIMEOUT,
                f"Timed out connecting to {self.host}:{self.port}",
                {"host": self.host, "port": self.port},
            )
        except OSError as e:
            raise NetworkError(
                ErrorCode.E201_CONNECTION_FAILED,
                f"Failed to connect to {self.host}:{self.port}: {e}",
                {"host": self.host, "port": self.port},
            )

        logger.info(f"Connected to relay at {self.host}:{self.port}")
        await self._send_all(self.session.start())
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def send_text(self, text: str) -> None:
        """
        Encrypt and send a message to the room.

        Raises:
            NoSecureChannel: If no secret is established (nothing is sent)
            ProtocolError: If the message is too large to frame (nothing is sent)
            TransportClosed: If the connection is gone
        """
        envelopes = self.session.send_text(text)
        await self._send_all(envelopes)

    async def _send_all(self, envelopes: Iterable[Envelope]) -> None:
        """
        Write envelopes in order. All are framed first, so an envelope that
        is too large leaves nothing half sent.

        Raises:
            ProtocolError: If an envelope is too large to frame
            TransportClosed: If the connection is gone
        """
        frames = [Protocol.pack_frame(envelope) for envelope in envelopes]
        if not self.connected:
            raise TransportClosed("Not connected to relay")
        async with self._write_lock:
            for frame in frames:
                await write_frame(self.writer, frame)

    async def _receive_loop(self) -> None:
        """Feed inbound envelopes to the session until the transport fails."""
        reason = "Disconnected from server"
        try:
            while True:
                payload = await read_frame(self.reader)
                try:
                    envelope = Envelope.decode(payload)
                except ProtocolError as e:
                    logger.warning(f"Ignoring malformed envelope from relay: {e.message}")
                    continue

                replies = self.session.handle(envelope)
                if replies:
                    await self._send_all(replies)
        except (TransportClosed, ProtocolError) as e:
            reason = e.message
            logger.info(f"Relay connection lost: {reason}")
        finally:
            await self._teardown()
            self.session.emit(SessionEvent(EventType.TRANSPORT_CLOSED, text=reason))

    async def _teardown(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.writer is not None and not self.writer.is_closing():
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error closing writer: {e}")

    async def close(self) -> None:
        """Close the connection. The session cannot be resumed."""
        await self._teardown()
        if self._receive_task is not None:
            self._receive_task.cancel()
            await asyncio.gather(self._receive_task, return_exceptions=True)
            self._receive_task = None

    async def wait_closed(self) -> None:
        """Wait until the receive loop has ended."""
        if self._receive_task is not None:
            await asyncio.gather(self._receive_task, return_exceptions=True)
