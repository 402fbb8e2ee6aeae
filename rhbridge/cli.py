"""Command line entry point: listen for or send RadioHead datagrams."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any, NoReturn, TextIO

import msgspec
import uvloop

from . import __version__
from .client import RadioHeadClient, ReceivedMessage
from .config.logging import configure_logging
from .config.model import BridgeConfig
from .config.settings import load_bridge_config
from .const import UINT8_MAX
from .errors import BridgeError, ConfigurationError, PayloadTooLarge, SendFailed, TransportInitError

logger = logging.getLogger("rhbridge.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _address(text: str) -> int:
    try:
        value = int(text, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid address {text!r}") from exc
    if not 0 <= value <= UINT8_MAX:
        raise argparse.ArgumentTypeError(f"address must be in range 0..{UINT8_MAX}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rhbridge", description="RadioHead serial datagram bridge")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="TOML configuration file")
    parser.add_argument("--port", dest="serial_port", help="serial device path")
    parser.add_argument("--baud", dest="serial_baud", type=int, help="serial baud rate")
    parser.add_argument("--address", dest="own_address", type=_address, help="this node's address")
    parser.add_argument("--retries", type=int, help="send retries before giving up")
    parser.add_argument("--timeout", dest="ack_timeout_ms", type=int, help="acknowledgement timeout (ms)")
    parser.add_argument("--transport", dest="transport_factory", help="transport factory as module:callable")
    parser.add_argument("--debug", dest="debug_logging", action="store_true", default=None)

    commands = parser.add_subparsers(dest="command", required=True)

    listen = commands.add_parser("listen", help="print received datagrams as JSON lines")
    listen.add_argument("--promiscuous", action="store_true", default=None)

    send = commands.add_parser("send", help="send one datagram and wait for the acknowledgement")
    send.add_argument("--to", required=True, type=_address, help="destination address")
    send.add_argument("--hex", action="store_true", help="DATA is hex encoded")
    send.add_argument("data", help="payload (UTF-8 text unless --hex)")
    return parser


def config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    keys = (
        "serial_port",
        "serial_baud",
        "own_address",
        "retries",
        "ack_timeout_ms",
        "transport_factory",
        "debug_logging",
        "promiscuous",
    )
    return {key: getattr(args, key, None) for key in keys}


def message_to_json(message: ReceivedMessage) -> str:
    payload = {
        "from": message.from_address,
        "to": message.to_address,
        "id": message.message_id,
        "flags": message.flags,
        "length": message.length,
        "data": message.data.hex(),
    }
    return msgspec.json.encode(payload).decode("utf-8")


def parse_payload(data: str, *, hex_encoded: bool) -> bytes:
    if not hex_encoded:
        return data.encode("utf-8")
    try:
        return bytes.fromhex(data)
    except ValueError as exc:
        raise ConfigurationError(f"invalid hex payload: {exc}") from exc


async def _listen(client: RadioHeadClient, out: TextIO) -> int:
    loop = asyncio.get_running_loop()
    interrupted = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, interrupted.set)

    async def _print_messages() -> None:
        async for message in client.messages():
            out.write(message_to_json(message) + "\n")
            out.flush()

    try:
        async with client:
            printer = asyncio.create_task(_print_messages())
            waiter = asyncio.create_task(interrupted.wait())
            await asyncio.wait({printer, waiter}, return_when=asyncio.FIRST_COMPLETED)
            waiter.cancel()
        await printer
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    if client.fault is not None:
        logger.error("Listening ended by transport fault: %s", client.fault)
        return EXIT_FAILURE
    return EXIT_OK


async def _send(client: RadioHeadClient, to: int, payload: bytes) -> int:
    async with client:
        try:
            await client.send(to, payload)
        except (SendFailed, PayloadTooLarge) as exc:
            logger.error("Send to 0x%02X failed: %s", to, exc)
            return EXIT_FAILURE
    logger.info("Sent %d byte(s) to 0x%02X", len(payload), to)
    return EXIT_OK


async def run(args: argparse.Namespace, config: BridgeConfig, out: TextIO = sys.stdout) -> int:
    client = RadioHeadClient(config)
    if args.command == "send":
        payload = parse_payload(args.data, hex_encoded=args.hex)
        return await _send(client, args.to, payload)
    return await _listen(client, out)


def main(argv: Sequence[str] | None = None) -> NoReturn:  # pragma: no cover (Entry point wrapper)
    args = build_parser().parse_args(argv)
    try:
        config = load_bridge_config(args.config, config_overrides(args))
    except ConfigurationError as exc:
        print(f"rhbridge: {exc}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    configure_logging(config)

    try:
        sys.exit(asyncio.run(run(args, config), loop_factory=uvloop.new_event_loop))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        sys.exit(EXIT_OK)
    except ConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(EXIT_USAGE)
    except TransportInitError as exc:
        logger.critical("Could not open the radio: %s", exc)
        sys.exit(EXIT_FAILURE)
    except BridgeError as exc:
        logger.critical("Bridge error: %s", exc, exc_info=True)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
