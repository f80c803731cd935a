"""
blindrelay - Relay server using asyncio.

Accepts TCP connections, reads framed envelopes from each one in its own
task and hands them to a RelayRouter. The relay only ever sees routing
fields and opaque bytes; it holds no keys.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Set, Tuple

from .config import Config
from .constants import DEFAULT_HOST, DEFAULT_SERVER_PORT
from .envelope import Envelope
from .errors import ConfigError, ProtocolError, TransportClosed
from .protocol import Protocol, read_frame
from .relay import RelayRouter, StreamConnection
from .utils import setup_logging, validate_port

logger = logging.getLogger(__name__)


class RelayServer:
    """Content-blind room relay."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_SERVER_PORT,
                 router: Optional[RelayRouter] = None):
        """
        Initialize server.

        Args:
            host: Interface to listen on
            port: TCP port (0 picks a free port)
            router: Router to dispatch through (created if not provided)
        """
        self.host = host
        self.port = port
        self.router = router if router is not None else RelayRouter()
        self.running = False

        self._server: Optional[asyncio.Server] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._handlers: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: Config) -> "RelayServer":
        router = RelayRouter(
            send_timeout=config.get("network", "send_timeout"),
            queue_size=config.get("limits", "dispatch_queue_size"),
        )
        return cls(config.get("network", "host"), config.get("network", "port"), router)

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), available once started."""
        if self._server is None or not self._server.sockets:
            return self.host, self.port
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    async def start(self) -> None:
        """Bind the listening socket and start the dispatcher."""
        self._server = await asyncio.start_server(self._handle_connection, self.host, self.port)
        self._dispatcher = asyncio.create_task(self.router.run_dispatcher())
        self.running = True

        host, port = self.address
        logger.info(f"Relay server listening on {host}:{port}")
        logger.info("Relay holds no keys and cannot read message content")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            logger.debug("serve_forever cancelled")

    async def stop(self) -> None:
        """Stop accepting, close every connection and stop dispatching."""
        if not self.running:
            return
        self.running = False
        logger.info("Stopping relay server...")

        if self._server is not None:
            self._server.close()

        for conn in await self.router.connections():
            await conn.close()

        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)

        if self._dispatcher is not None:
            self._dispatcher.cancel()
            await asyncio.gather(self._dispatcher, return_exceptions=True)
            self._dispatcher = None

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        logger.info("Relay server stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter) -> None:
        """Read envelopes from one connection until it closes or misbehaves."""
        task = asyncio.current_task()
        self._handlers.add(task)
        conn = StreamConnection(reader, writer)
        await self.router.accept(conn)
        logger.info(f"Connection {conn.conn_id} from {conn.address}")

        try:
            while self.running:
                payload = await read_frame(reader)
                envelope = Envelope.decode(payload)
                await self.router.on_envelope(conn, envelope, Protocol.pack_payload(payload))
        except TransportClosed as e:
            logger.info(f"Connection {conn.conn_id} closed: {e.message}")
        except ProtocolError as e:
            logger.warning(f"Connection {conn.conn_id} sent an invalid frame: {e.message}")
        finally:
            self._handlers.discard(task)
            await self.router.disconnect(conn)
            await conn.close()


async def async_main(argv=None) -> None:
    """Async main entry point for the relay server."""
    import argparse

    parser = argparse.ArgumentParser(
        description="blindrelay server - content-blind room relay for end-to-end encrypted chat"
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a TOML configuration file")
    parser.add_argument("--host", type=str, default=None, help=f"Listen address (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=None,
                        help=f"Listen port (default: {DEFAULT_SERVER_PORT})")
    parser.add_argument("--write-config", type=str, default=None, metavar="PATH",
                        help="Write an example configuration file and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.write_config:
        path = Path(args.write_config).expanduser()
        try:
            Config.create_example(path)
        except ConfigError as e:
            parser.exit(1, f"{e.message}\n")
        print(f"Example configuration written to {path}")
        return

    config = Config(Path(args.config).expanduser() if args.config else None)
    if args.host:
        config.set("network", "host", args.host)
    if args.port is not None:
        if not validate_port(args.port):
            parser.error(f"invalid port: {args.port}")
        config.set("network", "port", args.port)

    setup_logging("DEBUG" if args.debug else config.get("logging", "level"),
                  config.get("logging", "file") or None)

    server = RelayServer.from_config(config)
    await server.start()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    if sys.platform != "win32":
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        await server.stop()


def main() -> None:
    """Main entry point - runs async_main."""
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
