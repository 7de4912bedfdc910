"""CLI entry point for the Mycelium chat client.

Every command builds one [ChatClient][myceliumchat.client.ChatClient] from
the YAML config, runs, and closes it. Commands that need a signed-in user
restore the session persisted by ``login``.

Examples:
    ```bash
    python -m myceliumchat status
    python -m myceliumchat login alice --server matrix.org --password-env CHAT_PASSWORD
    python -m myceliumchat rooms
    python -m myceliumchat tail '!abc:matrix.org'
    python -m myceliumchat watch --config config/client.yaml --log-level DEBUG
    ```
"""

import argparse
import asyncio
import getpass
import logging
import os
import signal
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from myceliumchat.client import ChatClient, ClientConfig
from myceliumchat.core.exceptions import MyceliumChatError
from myceliumchat.core.logger import Logger, StructuredFormatter
from myceliumchat.core.metrics import start_metrics_server
from myceliumchat.models import MessageRecord, RoomRecord


DEFAULT_CONFIG = Path("config") / "client.yaml"

logger = Logger("cli")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_room(room: RoomRecord) -> None:
    flags = ("G" if room.sources.from_gateway else "-") + ("P" if room.sources.from_protocol else "-")
    topic = f"  {room.topic}" if room.topic else ""
    print(f"[{flags}] {room.room_id}  {room.display_name}  ({room.member_count}){topic}")


def _print_message(message: MessageRecord) -> None:
    print(f"{message.timestamp_ms} <{message.sender}> {message.body}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_status(client: ChatClient, args: argparse.Namespace) -> int:
    status = await client.monitor.poll()
    mode = client.selector.mode_for(status)
    print(f"overlay:  {'detected' if status.detected else 'not detected'}")
    if status.version:
        print(f"version:  {status.version}")
    if status.error:
        print(f"error:    {status.error}")
    print(f"peers:    {status.peer_count}")
    print(f"health:   {status.health.value}")
    print(f"mode:     {mode.value}")
    for peer in status.peers:
        print(f"  {peer.public_key or '?'}  {peer.endpoint}  {peer.state}")
    return 0


async def cmd_health(client: ChatClient, args: argparse.Namespace) -> int:
    alive = await client.gateway.health_check()
    print("gateway: up" if alive else "gateway: down")
    return 0 if alive else 1


async def cmd_watch(client: ChatClient, args: argparse.Namespace) -> int:
    monitor = client.monitor
    metrics_config = monitor.config.metrics
    metrics_server = await start_metrics_server(metrics_config)
    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        monitor.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with monitor:
            await monitor.run_forever()
        return 0
    finally:
        await metrics_server.stop()


async def cmd_login(client: ChatClient, args: argparse.Namespace) -> int:
    if args.password_env:
        password = os.environ.get(args.password_env)
        if not password:
            logger.error("password_env_missing", variable=args.password_env)
            return 1
    else:
        password = await asyncio.to_thread(getpass.getpass, f"Password for {args.username}: ")

    session = await client.session.login(args.username, password, server_name=args.server)
    print(f"signed in as {session.user_id} ({session.connection_mode.value} mode)")
    if client.session.degraded:
        print("warning: live sync unavailable")
    return 0


async def cmd_logout(client: ChatClient, args: argparse.Namespace) -> int:
    await client.session.restore()
    await client.session.logout()
    print("signed out")
    return 0


async def cmd_rooms(client: ChatClient, args: argparse.Namespace) -> int:
    for room in await client.rooms.refresh():
        _print_room(room)
    return 0


async def cmd_create(client: ChatClient, args: argparse.Namespace) -> int:
    result = await client.rooms.create_room(args.name, topic=args.topic, is_public=args.public)
    return _report_room_result(result.room, result.error, result.warning)


async def cmd_join(client: ChatClient, args: argparse.Namespace) -> int:
    result = await client.rooms.join_room(args.room)
    return _report_room_result(result.room, result.error, result.warning)


def _report_room_result(
    room: RoomRecord | None,
    error: MyceliumChatError | None,
    warning: MyceliumChatError | None,
) -> int:
    if error is not None or room is None:
        print(f"failed: {error}")
        return 1
    _print_room(room)
    if warning is not None:
        print(f"warning: live sync not attached: {warning}")
    return 0


async def cmd_tail(client: ChatClient, args: argparse.Namespace) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with client.select_room(args.room) as timeline:
        for message in await timeline.load_initial():
            _print_message(message)
        timeline.subscribe_live(_print_message)
        await stop.wait()
    return 0


async def cmd_send(client: ChatClient, args: argparse.Namespace) -> int:
    async with client.select_room(args.room) as timeline:
        event_id = await timeline.send(args.text)
    print(event_id)
    return 0


Command = Callable[[ChatClient, argparse.Namespace], Awaitable[int]]

# name -> (handler, needs a restored session)
COMMANDS: dict[str, tuple[Command, bool]] = {
    "status": (cmd_status, False),
    "health": (cmd_health, False),
    "watch": (cmd_watch, False),
    "login": (cmd_login, False),
    "logout": (cmd_logout, False),
    "rooms": (cmd_rooms, True),
    "create": (cmd_create, True),
    "join": (cmd_join, True),
    "tail": (cmd_tail, True),
    "send": (cmd_send, True),
}


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="myceliumchat",
        description="Mycelium/Matrix chat client",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Client config path (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Probe the overlay daemon once")
    sub.add_parser("health", help="Check gateway liveness")
    sub.add_parser("watch", help="Monitor the overlay continuously")

    login = sub.add_parser("login", help="Sign in through the gateway")
    login.add_argument("username")
    login.add_argument("--server", default="matrix.org", help="Origin server name")
    login.add_argument("--password-env", help="Read the password from this environment variable")

    sub.add_parser("logout", help="Sign out and forget the stored session")
    sub.add_parser("rooms", help="List joined rooms")

    create = sub.add_parser("create", help="Create a room")
    create.add_argument("name")
    create.add_argument("--topic")
    create.add_argument("--public", action="store_true")

    join = sub.add_parser("join", help="Join a room by id or alias")
    join.add_argument("room")

    tail = sub.add_parser("tail", help="Print a room's timeline and follow it")
    tail.add_argument("room")

    send = sub.add_parser("send", help="Send a text message")
    send.add_argument("room")
    send.add_argument("text")

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Install a ``StructuredFormatter`` on the root handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


async def main(argv: list[str] | None = None) -> int:
    """Parse args, build the client, and run one command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = ClientConfig.from_yaml(args.config)
    except MyceliumChatError as e:
        logger.error("config_invalid", path=str(args.config), error=str(e))
        return 1

    handler, needs_session = COMMANDS[args.command]
    try:
        async with ChatClient(config) as client:
            if needs_session and await client.session.restore() is None:
                print("not signed in; run 'myceliumchat login USER' first")
                return 1
            return await handler(client, args)
    except MyceliumChatError as e:
        logger.error(f"{args.command}_failed", error=str(e))
        print(f"error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
