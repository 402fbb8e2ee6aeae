"""Awaitable wrapper around :class:`~rhbridge.bridge.RadioHeadBridge`."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from types import TracebackType

import msgspec

from .bridge import RadioHeadBridge
from .config.model import BridgeConfig
from .errors import TransportFault
from .transport.base import LinkOpener, TransportFactory

logger = logging.getLogger("rhbridge.client")


class ReceivedMessage(msgspec.Struct, frozen=True):
    """One datagram delivered by the worker."""

    from_address: int
    to_address: int
    message_id: int
    flags: int
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


class RadioHeadClient:
    """Coroutine-friendly client: ``await send(...)`` and ``async for`` over messages.

    Usage:
        async with RadioHeadClient(config, transport_factory=factory) as client:
            await client.send(0x02, b"ping")
            async for message in client.messages():
                ...
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        bridge: RadioHeadBridge | None = None,
        transport_factory: TransportFactory | None = None,
        link_opener: LinkOpener | None = None,
        queue_limit: int = 0,
    ) -> None:
        self._bridge = bridge or RadioHeadBridge(
            config,
            transport_factory=transport_factory,
            link_opener=link_opener,
        )
        self._queue: asyncio.Queue[ReceivedMessage] = asyncio.Queue(maxsize=max(0, queue_limit))
        self._ended = asyncio.Event()
        self.receive_errors = 0
        self.dropped_messages = 0
        self.fault: TransportFault | None = None

    @property
    def bridge(self) -> RadioHeadBridge:
        return self._bridge

    @property
    def this_address(self) -> int:
        return self._bridge.this_address

    async def open(self) -> None:
        # Opening the serial link may sleep between retries.
        await asyncio.to_thread(self._bridge.open)
        self._ended.clear()
        self.fault = None
        try:
            self._bridge.start(self._on_receive)
        except Exception:
            self._bridge.destroy()
            raise

    async def close(self) -> None:
        if self._bridge.worker_active:
            await self.stop()
        self._bridge.destroy()

    async def stop(self) -> None:
        """Stop the worker and wait until it has fully released the radio."""
        stopped = asyncio.get_running_loop().create_future()

        def _on_stopped() -> None:
            if not stopped.done():
                stopped.set_result(None)

        self._bridge.stop(_on_stopped)
        await stopped
        self._end_stream()

    async def send(self, to: int, data: bytes | bytearray | memoryview) -> None:
        """Send one datagram and wait for its acknowledgement.

        Raises SendFailed when the peer never acknowledged and
        PayloadTooLarge when the datagram exceeds the link's limit.
        """
        done = asyncio.get_running_loop().create_future()

        def _on_send_complete(error: BaseException | None) -> None:
            if done.done():
                return
            if error is None:
                done.set_result(None)
            else:
                done.set_exception(error)

        self._bridge.send(to, data, _on_send_complete)
        await done

    async def messages(self) -> AsyncIterator[ReceivedMessage]:
        """Yield received datagrams until the worker stops and the queue is empty."""
        while True:
            if not self._queue.empty():
                yield self._queue.get_nowait()
                continue
            if self._ended.is_set():
                return
            message = await self._next_message()
            if message is not None:
                yield message

    async def _next_message(self) -> ReceivedMessage | None:
        getter = asyncio.ensure_future(self._queue.get())
        ended = asyncio.ensure_future(self._ended.wait())
        try:
            await asyncio.wait((getter, ended), return_when=asyncio.FIRST_COMPLETED)
        finally:
            ended.cancel()
            if not getter.done():
                getter.cancel()
        if getter.done() and not getter.cancelled():
            return getter.result()
        return None

    async def __aenter__(self) -> RadioHeadClient:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _on_receive(
        self,
        error: BaseException | None,
        length: int,
        from_address: int,
        to_address: int,
        message_id: int,
        flags: int,
        data: bytes,
    ) -> None:
        if isinstance(error, TransportFault):
            logger.error("Worker terminated by transport fault: %s", error)
            self.fault = error
            self._end_stream()
            return
        if error is not None:
            self.receive_errors += 1
            logger.debug("Skipping rejected datagram: %s", error)
            return

        message = ReceivedMessage(
            from_address=from_address,
            to_address=to_address,
            message_id=message_id,
            flags=flags,
            data=data[:length],
        )
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped_messages += 1
            logger.warning(
                "Receive queue full; dropping datagram from 0x%02X",
                from_address,
                extra={"from_address": from_address, "payload": message.data},
            )

    def _end_stream(self) -> None:
        self._ended.set()


__all__ = ["RadioHeadClient", "ReceivedMessage"]
