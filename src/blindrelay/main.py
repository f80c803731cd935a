"""
blindrelay - Terminal client entry point.

Thin shell around RelayClient: renders session events with rich and
reads outgoing messages from stdin on a worker thread.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Prompt

from . import __version__
from .client import RelayClient
from .config import Config
from .constants import LOCALHOST, MAX_ROOM_LENGTH, MAX_SENDER_LENGTH
from .errors import BlindRelayError, NoSecureChannel, ProtocolError
from .session import EventType, PeerSession, SessionEvent
from .utils import setup_logging, validate_name, validate_port

console = Console(highlight=False)

EVENT_STYLES = {
    EventType.CHANNEL_ESTABLISHED: ("green", "E2E encryption active with {sender} (key {text})"),
    EventType.MESSAGE_DECRYPTED: ("cyan", "<{sender}> {text}"),
    EventType.DECRYPTION_FAILED: ("red", "Error decrypting message from {sender}: {text}"),
    EventType.PEER_KEY_INVALID: ("yellow", "Ignored invalid public key from {sender}"),
    EventType.NO_SECURE_CHANNEL: ("red", "{text}"),
    EventType.PEER_JOINED: ("bright_black", "{text}"),
    EventType.PEER_LEFT: ("red", "{text}"),
    EventType.SYSTEM_NOTICE: ("bright_black", "{text}"),
    EventType.TRANSPORT_CLOSED: ("red", "{text}"),
}


def render_event(event: SessionEvent) -> None:
    """Print one session event."""
    style, template = EVENT_STYLES[event.type]
    console.print(template.format(sender=event.sender, text=event.text), style=style, markup=False)


def _ask_name(prompt: str, max_length: int) -> str:
    while True:
        value = Prompt.ask(prompt).strip()
        if validate_name(value, max_length):
            return value
        console.print(f"Must be 1-{max_length} printable characters", style="red")


async def send_line(client: RelayClient, text: str) -> bool:
    """Send one typed line. Local failures are reported and leave the client running."""
    try:
        await client.send_text(text)
    except NoSecureChannel:
        # already rendered through the session event feed
        return False
    except ProtocolError as e:
        console.print(f"Message not sent: {e.message}", style="red")
        return False
    console.print(f"<YOU> {text}", style="green", markup=False)
    return True


async def run_client(client: RelayClient) -> None:
    """Send stdin lines until EOF or until the relay goes away."""
    await client.connect()
    console.print(">>> CONNECTED TO RELAY <<<", style="green")
    console.print("Waiting for partner to exchange keys...", style="bright_black")

    while client.connected:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        text = line.rstrip("\n")
        if not text or not client.connected:
            continue
        await send_line(client, text)

    await client.close()


def main() -> None:
    """Main entry point for the blindrelay client."""
    parser = argparse.ArgumentParser(
        description="blindrelay - end-to-end encrypted room chat over an untrusted relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  blindrelay --name alice --room r1
  blindrelay --host relay.example.org --port 8080 --pairwise
        """,
    )
    parser.add_argument("--version", action="version", version=f"blindrelay {__version__}")
    parser.add_argument("--config", type=str, default=None, help="Path to a TOML configuration file")
    parser.add_argument("--host", type=str, default=LOCALHOST, help="Relay host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Relay port (default: from config)")
    parser.add_argument("--name", type=str, default=None, help="Display name")
    parser.add_argument("--room", type=str, default=None, help="Room to join")
    parser.add_argument("--pairwise", action="store_true",
                        help="Keep a separate secret per peer instead of a single shared slot")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    config = Config(Path(args.config).expanduser() if args.config else None)
    setup_logging("DEBUG" if args.debug else "WARNING", config.get("logging", "file") or None)

    port = args.port if args.port is not None else config.get("network", "port")
    if not validate_port(port):
        parser.error(f"invalid port: {port}")

    name = args.name or _ask_name("Enter Nickname", MAX_SENDER_LENGTH)
    room = args.room or _ask_name("Enter Room (Secret Channel)", MAX_ROOM_LENGTH)

    console.print("Generating elliptic curve keys...", style="yellow")
    try:
        session = PeerSession(name, room, pairwise=args.pairwise or config.get("session", "pairwise"))
    except BlindRelayError as e:
        console.print(f"Cannot start session: {e.message}", style="red")
        sys.exit(1)
    session.add_listener(render_event)

    client = RelayClient(session, args.host, port, config.get("network", "connect_timeout"))
    console.print(f"Attempting connection to {args.host}:{port}...", style="bright_black")
    try:
        asyncio.run(run_client(client))
    except BlindRelayError as e:
        console.print(f"Connection error: {e.message}", style="red")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
