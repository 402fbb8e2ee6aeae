"""Transport interface and serial link helpers for the RadioHead bridge."""

from .base import (
    LinkOpener,
    ReceiveResult,
    SerialPort,
    Transport,
    TransportFactory,
    load_transport_factory,
)
from .serial import SerialException, SerialLink, format_hexdump, open_serial_link

__all__ = [
    "LinkOpener",
    "ReceiveResult",
    "SerialException",
    "SerialLink",
    "SerialPort",
    "Transport",
    "TransportFactory",
    "format_hexdump",
    "load_transport_factory",
    "open_serial_link",
]
