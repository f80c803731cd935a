"""
blindrelay - Room-partitioned broadcast router.

The router keeps a registry of live connections, each bound to at most one
room, and fans every envelope out to all connections bound to the
envelope's room. It never looks inside content or public_key and never
authenticates the sender field: it is content-blind by construction.

Envelopes read from a peer are forwarded as the exact frame that arrived,
so what one recipient gets is byte-for-byte what every other recipient
gets. Envelopes the relay creates itself (leave notices) are packed once
before the fan-out.

The router is transport-agnostic. A connection is any object providing
``async send(frame)`` and ``async close()``; StreamConnection adapts an
asyncio stream pair.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import CLOSE_TIMEOUT, DISPATCH_QUEUE_SIZE, RELAY_SENDER, SEND_TIMEOUT
from .envelope import Envelope
from .errors import NetworkError, ProtocolError
from .protocol import Protocol, write_frame

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class StreamConnection:
    """A relay-side connection over an asyncio stream pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.conn_id = next(_connection_ids)
        self.reader = reader
        self.writer = writer
        self.address = writer.get_extra_info("peername")

    async def send(self, frame: bytes) -> None:
        await write_frame(self.writer, frame)

    async def close(self) -> None:
        """
        Close the connection without waiting on a peer that stopped reading.

        A graceful close only completes once buffered data is flushed, so a
        connection with unsent data is aborted instead.
        """
        if self.writer.is_closing():
            return
        transport = self.writer.transport
        if transport.get_write_buffer_size():
            logger.debug(f"Aborting connection {self.conn_id} with unsent data")
            transport.abort()
        else:
            self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            transport.abort()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error closing connection {self.conn_id}: {e}")

    def __repr__(self) -> str:
        return f"<StreamConnection {self.conn_id} {self.address}>"


@dataclass
class Binding:
    """Registry entry for one connection."""

    room: str = ""
    sender: str = ""


QueueItem = Tuple[Envelope, Optional[bytes]]


class RelayRouter:
    """Registry of connections and the broadcast dispatch path."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT, queue_size: int = DISPATCH_QUEUE_SIZE):
        """
        Initialize the router.

        Args:
            send_timeout: Upper bound in seconds for a single recipient write
            queue_size: Capacity of the dispatch queue
        """
        self.send_timeout = send_timeout
        self._registry: Dict[Any, Binding] = {}
        self._lock = asyncio.Lock()
        self._queue: "asyncio.Queue[QueueItem]" = asyncio.Queue(maxsize=queue_size)

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, conn: Any) -> bool:
        return conn in self._registry

    def room_of(self, conn: Any) -> Optional[str]:
        """Room a connection is bound to ('' if unbound, None if unknown)."""
        binding = self._registry.get(conn)
        return binding.room if binding else None

    async def connections_in(self, room: str) -> List[Any]:
        async with self._lock:
            return [c for c, b in self._registry.items() if b.room == room]

    async def connections(self) -> List[Any]:
        async with self._lock:
            return list(self._registry)

    async def accept(self, conn: Any) -> None:
        """Register a new connection as unbound."""
        async with self._lock:
            self._registry[conn] = Binding()
        logger.debug(f"Accepted {conn!r} ({len(self._registry)} connections)")

    async def on_envelope(self, conn: Any, envelope: Envelope, frame: Optional[bytes] = None) -> None:
        """
        Bind the connection to the envelope's room and queue it for broadcast.

        A non-empty room always rebinds: the latest claim wins.

        Args:
            conn: Connection the envelope arrived on
            envelope: Decoded envelope, used for routing only
            frame: The frame as received, forwarded unchanged when given
        """
        async with self._lock:
            binding = self._registry.get(conn)
            if binding is None:
                logger.debug(f"Envelope from unregistered {conn!r} ignored")
                return
            if envelope.room and envelope.room != binding.room:
                if binding.room:
                    logger.info(f"{conn!r} moved from room '{binding.room}' to '{envelope.room}'")
                binding.room = envelope.room
            if envelope.sender:
                binding.sender = envelope.sender

        await self._queue.put((envelope, frame))

    async def broadcast(self, envelope: Envelope, frame: Optional[bytes] = None) -> int:
        """
        Deliver an envelope to every connection bound to its room.

        The sender is not excluded. Recipients that fail or exceed
        send_timeout are deregistered without affecting the others.

        Args:
            envelope: Envelope to route
            frame: Pre-packed frame to forward; packed from envelope if None

        Returns:
            Number of successful deliveries
        """
        if not envelope.room:
            return 0

        if frame is None:
            try:
                frame = Protocol.pack_frame(envelope)
            except ProtocolError as e:
                logger.warning(f"Dropping {envelope.kind!r} envelope from {envelope.sender}: {e.message}")
                return 0

        recipients = await self.connections_in(envelope.room)
        if not recipients:
            return 0

        results = await asyncio.gather(
            *(self._deliver(conn, frame) for conn in recipients)
        )

        failed = [conn for conn, ok in zip(recipients, results) if not ok]
        if failed:
            await self._drop(failed)

        return len(recipients) - len(failed)

    async def _deliver(self, conn: Any, frame: bytes) -> bool:
        try:
            await asyncio.wait_for(conn.send(frame), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Delivery to {conn!r} timed out after {self.send_timeout}s, dropping connection")
        except NetworkError as e:
            logger.info(f"Delivery to {conn!r} failed: {e.message}")
        except (ConnectionError, OSError) as e:
            logger.info(f"Delivery to {conn!r} failed: {e}")
        return False

    async def _drop(self, conns: Iterable[Any]) -> None:
        """Deregister failed recipients together, close them, then queue their leave notices."""
        conns = list(conns)
        async with self._lock:
            bindings = [self._registry.pop(conn, None) for conn in conns]

        await asyncio.gather(*(conn.close() for conn in conns))

        for binding in bindings:
            if binding is not None:
                self._announce_leave(binding)

    async def disconnect(self, conn: Any) -> bool:
        """
        Deregister a connection. Idempotent.

        If the connection had joined a room under a name, a leave notice
        for the remaining members of that room is queued.

        Returns:
            True if the connection was registered
        """
        async with self._lock:
            binding = self._registry.pop(conn, None)

        if binding is None:
            return False

        logger.debug(f"Deregistered {conn!r} ({len(self._registry)} connections)")
        self._announce_leave(binding)
        return True

    def _announce_leave(self, binding: Binding) -> None:
        if not (binding.room and binding.sender):
            return
        notice = Envelope.leave_notice(binding.room, RELAY_SENDER, binding.sender)
        try:
            # never block here: the dispatcher itself drops failed recipients
            self._queue.put_nowait((notice, None))
        except asyncio.QueueFull:
            logger.warning(f"Dispatch queue full, leave notice for {binding.sender} dropped")

    async def run_dispatcher(self) -> None:
        """Broadcast queued envelopes in arrival order until cancelled."""
        while True:
            envelope, frame = await self._queue.get()
            try:
                await self.broadcast(envelope, frame)
            except Exception as e:
                logger.error(f"Broadcast to room '{envelope.room}' failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued envelope has been broadcast."""
        await self._queue.join()
