"""Interface of the reliable-datagram transport driven by the bridge.

The transport owns addressing, acknowledgements, retransmission and wire
framing. The bridge only consumes the blocking primitives below; every call
may block the calling thread and is therefore only issued from the worker
context (or from the host context while no worker is running).
"""

from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import Protocol, cast, runtime_checkable

import msgspec

from ..errors import ConfigurationError


class ReceiveResult(msgspec.Struct, frozen=True):
    """Outcome of :meth:`Transport.receive_ack`."""

    ok: bool
    length: int = 0
    from_address: int = 0
    to_address: int = 0
    message_id: int = 0
    flags: int = 0


@runtime_checkable
class SerialPort(Protocol):
    """Minimal byte-stream surface a transport needs from the physical link."""

    def read(self, size: int = 1) -> bytes: ...

    def write(self, data: bytes | bytearray | memoryview) -> int: ...

    def close(self) -> None: ...


@runtime_checkable
class Transport(Protocol):
    """Blocking reliable-datagram engine."""

    def init(self) -> bool:
        """Initialise the manager; False means the link is unusable."""
        ...

    def available(self) -> bool:
        """Return True if a datagram is ready to be read."""
        ...

    def receive_ack(self, buffer: bytearray) -> ReceiveResult:
        """Read one datagram into *buffer*, acknowledging it if addressed to us."""
        ...

    def send_wait(self, buffer: bytearray, length: int, to: int) -> bool:
        """Send ``buffer[:length]`` to *to* and block until acked or retries run out."""
        ...

    def set_own_address(self, address: int) -> None: ...

    def set_retries(self, retries: int) -> None: ...

    def get_retries(self) -> int: ...

    def retransmission_count(self) -> int: ...

    def reset_retransmission_count(self) -> None: ...

    def set_timeout(self, timeout_ms: int) -> None: ...

    def set_promiscuous(self, promiscuous: bool) -> None: ...

    def close(self) -> None: ...


TransportFactory = Callable[[SerialPort, int], Transport]
LinkOpener = Callable[[str, int], SerialPort]


def load_transport_factory(path: str) -> TransportFactory:
    """Resolve a ``"package.module:callable"`` reference to a transport factory."""
    module_name, sep, attr_path = path.strip().partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigurationError(f"transport factory {path!r} must look like 'package.module:callable'")
    try:
        target: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"cannot import transport module {module_name!r}: {exc}") from exc
    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as exc:
            raise ConfigurationError(f"{module_name!r} has no attribute {attr_path!r}") from exc
    if not callable(target):
        raise ConfigurationError(f"transport factory {path!r} is not callable")
    return cast(TransportFactory, target)


__all__ = [
    "LinkOpener",
    "ReceiveResult",
    "SerialPort",
    "Transport",
    "TransportFactory",
    "load_transport_factory",
]
