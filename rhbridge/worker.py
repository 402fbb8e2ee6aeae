"""Background poll/send loop executed on the bridge's worker thread.

One call to :func:`run_cycle` is one Worker Loop iteration as seen by the
host: it keeps polling (sleeping between idle polls) until it has either
received a datagram, finished one send, or observed a stop request, and then
returns a :class:`~rhbridge.work.CycleOutcome` snapshot. Receive always wins
over a pending send so that incoming traffic on the half-duplex channel is
never starved by an outgoing attempt.
"""

from __future__ import annotations

import logging

from .buffers import FrameBuffer
from .errors import ReceiveRejected, SendFailed, TransportFault
from .transport.base import Transport
from .transport.serial import format_hexdump
from .work import CycleOutcome, WorkItem

logger = logging.getLogger("rhbridge.worker")


def _receive(transport: Transport, work: WorkItem, rx_buffer: FrameBuffer) -> None:
    try:
        result = transport.receive_ack(rx_buffer.raw)
    except Exception as exc:
        logger.warning("Transport raised while receiving: %s", exc)
        rejected = ReceiveRejected(f"receive failed: {exc}")
        rejected.__cause__ = exc
        work.record_receive(0, error=rejected)
        return

    if not result.ok or result.length <= 0:
        logger.debug("Datagram rejected by transport")
        work.record_receive(0, error=ReceiveRejected("nothing received"))
        return

    length = min(result.length, rx_buffer.capacity)
    work.record_receive(
        length,
        result.from_address,
        result.to_address,
        result.message_id,
        result.flags,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "RX from 0x%02X to 0x%02X id=%d flags=0x%02X len=%d\n%s",
            result.from_address,
            result.to_address,
            result.message_id,
            result.flags,
            length,
            format_hexdump(rx_buffer.raw[:length], prefix="  "),
        )


def _send(
    transport: Transport,
    work: WorkItem,
    tx_buffer: FrameBuffer,
    to: int,
    length: int,
) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "TX to 0x%02X len=%d\n%s",
            to,
            length,
            format_hexdump(tx_buffer.raw[:length], prefix="  "),
        )
    try:
        ok = bool(transport.send_wait(tx_buffer.raw, length, to))
    except Exception as exc:
        logger.warning(
            "Transport raised while sending to 0x%02X: %s",
            to,
            exc,
            extra={"to_address": to, "cause": exc},
        )
        failed = SendFailed(f"send to 0x{to:02X} failed: {exc}")
        failed.__cause__ = exc
        work.record_send(False, failed)
        return

    if ok:
        work.record_send(True)
    else:
        logger.info(
            "No acknowledgement from 0x%02X after retries",
            to,
            extra={"to_address": to, "payload": tx_buffer.snapshot(length)},
        )
        work.record_send(False, SendFailed(f"send to 0x{to:02X} was not acknowledged"))


def run_cycle(
    transport: Transport,
    work: WorkItem,
    rx_buffer: FrameBuffer,
    tx_buffer: FrameBuffer,
) -> CycleOutcome:
    """Poll until one receive or send happened, or a stop was requested."""
    while True:
        work.clear_wakeup()

        if work.stop_requested:
            work.halt()
            return work.outcome(stopped=True)

        try:
            ready = transport.available()
        except Exception as exc:
            logger.error("Transport failed while polling: %s", exc, exc_info=True)
            fault = TransportFault(f"transport failed while polling: {exc}")
            fault.__cause__ = exc
            work.halt()
            return work.outcome(stopped=True, fault=fault)

        if ready:
            _receive(transport, work, rx_buffer)
            work.receive()
            return work.outcome()

        claimed = work.claim_tx()
        if claimed is not None:
            to, length = claimed
            _send(transport, work, tx_buffer, to, length)
            work.transmit()
            return work.outcome()

        work.idle_wait()


__all__ = ["run_cycle"]
