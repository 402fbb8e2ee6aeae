"""Lifecycle and configuration façade of the RadioHead bridge.

A :class:`RadioHeadBridge` couples one blocking reliable-datagram transport
to the asyncio event loop it is started from. Host operations (``start``,
``stop``, ``send`` and the configuration passthroughs) are plain synchronous
methods that never block on the radio; receive, send and stop results come
back through callbacks invoked on the event loop.

Architecture:
    host (event loop) -> RadioHeadBridge -> ThreadPoolExecutor(1)
        run_cycle (worker thread) -> CycleOutcome
        CompletionHandler (event loop) -> callbacks, re-arm or finalize
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from .buffers import FrameBuffer
from .completion import CompletionHandler, invoke_callback
from .config.model import BridgeConfig
from .const import (
    RH_SERIAL_MAX_MESSAGE_LEN,
    UINT8_MAX,
    WORKER_MIN_SLEEP_TIME,
    WORKER_THREAD_PREFIX,
)
from .errors import (
    AlreadyActive,
    AlreadyOpen,
    AlreadyStopping,
    ConfigurationError,
    NotActive,
    NotConfigured,
    PayloadTooLarge,
    TransportFault,
    TransportInitError,
    WorkerStillActive,
)
from .stats import BridgeStats
from .transport.base import LinkOpener, SerialPort, Transport, TransportFactory, load_transport_factory
from .transport.serial import BAUDRATE_MAP, open_serial_link
from .work import CycleOutcome, ReceiveCallback, SendCallback, StopCallback, WorkItem
from .worker import run_cycle

logger = logging.getLogger("rhbridge.bridge")


def _require_uint8(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT8_MAX:
        raise ConfigurationError(f"{name} must be an integer in range 0..{UINT8_MAX}, got {value!r}")
    return value


def _require_callable(name: str, value: Any) -> None:
    if not callable(value):
        raise ConfigurationError(f"{name} must be callable")


class RadioHeadBridge:
    """Non-blocking callback interface over a blocking datagram transport."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        link_opener: LinkOpener | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self._transport_factory = transport_factory
        self._link_opener = link_opener

        self._link: SerialPort | None = None
        self._transport: Transport | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._defunct = False

        self._rx_buffer = FrameBuffer(RH_SERIAL_MAX_MESSAGE_LEN)
        self._tx_buffer = FrameBuffer(RH_SERIAL_MAX_MESSAGE_LEN)
        self._work: WorkItem | None = None
        self._worker_active = False
        self._sleep_time = self.config.worker_sleep_time
        self._this_address = self.config.own_address

        self._stats = BridgeStats()
        self._completion = CompletionHandler(self._rx_buffer, self._stats, self._release)

    # --- properties ---

    @property
    def worker_active(self) -> bool:
        return self._worker_active

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @property
    def this_address(self) -> int:
        return self._this_address

    @property
    def max_message_length(self) -> int:
        return RH_SERIAL_MAX_MESSAGE_LEN

    @property
    def stopping(self) -> bool:
        return self._work is not None and self._work.stop_requested

    def stats(self) -> BridgeStats:
        return self._stats.snapshot()

    # --- lifecycle ---

    def open(
        self,
        port: str | None = None,
        baud: int | None = None,
        own_address: int | None = None,
    ) -> None:
        """Open the serial link and initialise the transport on top of it.

        Arguments left as ``None`` come from :attr:`config`. A failed
        initialisation leaves the instance unusable.
        """
        if self._defunct:
            raise TransportInitError("transport initialisation failed earlier; create a new bridge")
        if self._transport is not None:
            raise AlreadyOpen("bridge is already open")

        port = self.config.serial_port if port is None else port
        baud = self.config.serial_baud if baud is None else baud
        own_address = _require_uint8("own_address", self.config.own_address if own_address is None else own_address)
        if not port:
            raise ConfigurationError("port must be a non-empty path")
        if baud not in BAUDRATE_MAP:
            raise ConfigurationError(f"unsupported baud rate {baud}")

        factory = self._resolve_factory()

        try:
            link = self._open_link(port, baud)
        except OSError as exc:
            self._defunct = True
            raise TransportInitError(f"cannot open serial port {port}: {exc}") from exc

        try:
            transport = factory(link, own_address)
            if not transport.init():
                raise TransportInitError(f"transport on {port} failed to initialise")
            transport.set_retries(self.config.retries)
            transport.set_timeout(self.config.ack_timeout_ms)
            transport.set_promiscuous(self.config.promiscuous)
        except Exception as exc:
            self._defunct = True
            self._close_quietly(link)
            if isinstance(exc, TransportInitError):
                raise
            raise TransportInitError(f"transport on {port} failed to initialise: {exc}") from exc

        self._link = link
        self._transport = transport
        self._this_address = own_address
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=WORKER_THREAD_PREFIX)
        logger.info("Opened %s at %d baud as address 0x%02X", port, baud, own_address)

    def start(self, on_receive: ReceiveCallback) -> None:
        """Begin polling; must be called from the event loop that gets the callbacks."""
        transport = self._require_transport()
        if self._worker_active:
            raise AlreadyActive("worker is already running")
        _require_callable("on_receive", on_receive)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise ConfigurationError("start() must be called from a running event loop") from exc

        discarded = self._drain(transport)
        if discarded:
            self._stats.record("rx_discarded_on_start", discarded)
            logger.info("Discarded %d datagram(s) buffered before start", discarded)

        work = WorkItem(on_receive, sleep_time=self._sleep_time)
        work.arm()
        self._work = work
        self._loop = loop
        self._worker_active = True
        logger.debug("Worker starting (idle interval %.3fs)", self._sleep_time)
        self._schedule(work)

    def stop(self, on_stopped: StopCallback) -> None:
        """Request a cooperative stop; ``on_stopped`` fires once the worker is gone."""
        work = self._work
        if not self._worker_active or work is None:
            raise NotActive("worker is not running")
        if work.stop_requested:
            raise AlreadyStopping("a stop request is already pending")
        _require_callable("on_stopped", on_stopped)
        work.request_stop(on_stopped)
        logger.debug("Stop requested")

    def send(self, to: int, data: bytes | bytearray | memoryview, on_send_complete: SendCallback) -> None:
        """Queue one datagram for ``to``; the result arrives via ``on_send_complete``."""
        work = self._work
        if not self._worker_active or work is None:
            raise NotActive("worker is not running")
        if work.stop_requested:
            raise NotActive("worker is stopping")
        _require_uint8("to", to)
        _require_callable("on_send_complete", on_send_complete)
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ConfigurationError(f"data must be bytes-like, got {type(data).__name__}")
        payload = bytes(data)
        if not payload:
            raise ConfigurationError("data must not be empty")

        if len(payload) > RH_SERIAL_MAX_MESSAGE_LEN:
            self._stats.record("tx_rejected")
            invoke_callback(
                "on_send_complete",
                on_send_complete,
                PayloadTooLarge(len(payload), RH_SERIAL_MAX_MESSAGE_LEN),
            )
            return

        work.submit_tx(self._tx_buffer, to, payload, on_send_complete)

    def destroy(self) -> None:
        """Close the transport and the serial link."""
        if self._worker_active:
            raise WorkerStillActive("stop the worker before destroying the bridge")

        transport, self._transport = self._transport, None
        link, self._link = self._link, None
        executor, self._executor = self._executor, None

        if transport is not None:
            try:
                transport.close()
            except Exception:
                logger.exception("Transport raised while closing")
        if link is not None:
            self._close_quietly(link)
        if executor is not None:
            executor.shutdown(wait=False)
        if transport is not None:
            logger.info("Bridge closed")

    # --- configuration passthroughs ---

    def set_address(self, address: int) -> None:
        address = _require_uint8("address", address)
        self._require_transport().set_own_address(address)
        self._this_address = address

    def set_retries(self, retries: int) -> None:
        self._require_transport().set_retries(_require_uint8("retries", retries))

    def get_retries(self) -> int:
        return self._require_transport().get_retries()

    def set_ack_timeout(self, timeout_ms: int) -> None:
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
            raise ConfigurationError(f"timeout must be a positive number of milliseconds, got {timeout_ms!r}")
        self._require_transport().set_timeout(timeout_ms)

    def get_retransmission_count(self) -> int:
        return self._require_transport().retransmission_count()

    def reset_retransmission_count(self) -> None:
        self._require_transport().reset_retransmission_count()

    def set_promiscuous(self, promiscuous: bool) -> None:
        self._require_transport().set_promiscuous(bool(promiscuous))

    def set_worker_sleep_time(self, seconds: float) -> None:
        """Change the idle poll interval; applies to the running worker too."""
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds < WORKER_MIN_SLEEP_TIME:
            raise ConfigurationError(f"sleep time must be at least {WORKER_MIN_SLEEP_TIME}s")
        self._sleep_time = float(seconds)
        if self._work is not None:
            self._work.sleep_time = self._sleep_time

    # --- internals ---

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise NotConfigured("bridge is not open")
        return self._transport

    def _resolve_factory(self) -> TransportFactory:
        if self._transport_factory is not None:
            return self._transport_factory
        if not self.config.transport_factory:
            raise ConfigurationError("no transport factory configured")
        return load_transport_factory(self.config.transport_factory)

    def _open_link(self, port: str, baud: int) -> SerialPort:
        if self._link_opener is not None:
            return self._link_opener(port, baud)
        return open_serial_link(
            port,
            baud,
            attempts=self.config.serial_open_attempts,
            exclusive=self.config.serial_exclusive,
        )

    def _drain(self, transport: Transport) -> int:
        count = 0
        try:
            while transport.available():
                transport.receive_ack(self._rx_buffer.raw)
                count += 1
        except Exception as exc:
            raise TransportFault(f"transport failed while draining: {exc}") from exc
        return count

    def _schedule(self, work: WorkItem) -> None:
        loop = self._loop
        transport = self._transport
        if loop is None or transport is None or self._executor is None:
            raise NotConfigured("bridge is not open")
        future = loop.run_in_executor(
            self._executor,
            run_cycle,
            transport,
            work,
            self._rx_buffer,
            self._tx_buffer,
        )
        future.add_done_callback(functools.partial(self._on_cycle_done, work))

    def _on_cycle_done(self, work: WorkItem, future: asyncio.Future[CycleOutcome]) -> None:
        if future.cancelled():
            outcome = work.outcome(stopped=True, fault=TransportFault("worker cycle was cancelled"))
        elif (exc := future.exception()) is not None:
            logger.error("Worker cycle crashed: %s", exc, exc_info=exc)
            fault = TransportFault(f"worker cycle crashed: {exc}")
            fault.__cause__ = exc
            outcome = work.outcome(stopped=True, fault=fault)
        else:
            outcome = future.result()

        if self._completion.handle(work, outcome):
            self._schedule(work)

    def _release(self, work: WorkItem) -> None:
        if self._work is work:
            self._work = None
            self._worker_active = False

    @staticmethod
    def _close_quietly(link: SerialPort) -> None:
        try:
            link.close()
        except OSError as exc:
            logger.debug("Ignoring error while closing link: %s", exc)


__all__ = ["RadioHeadBridge"]