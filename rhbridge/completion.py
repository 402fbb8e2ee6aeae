"""Turns finished worker cycles into host callback invocations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .buffers import FrameBuffer
from .errors import SendFailed
from .stats import BridgeStats
from .work import CycleOutcome, WorkItem

logger = logging.getLogger("rhbridge.completion")


def invoke_callback(name: str, callback: Callable[..., Any], *args: Any) -> None:
    """Call a host callback; exceptions are logged and never propagate."""
    try:
        callback(*args)
    except Exception:
        logger.exception("Host callback %s raised", name)


class CompletionHandler:
    """Runs on the host event loop once per worker cycle.

    ``handle`` returns True when the worker should be re-armed for another
    cycle. When the cycle ends the Work Item, ``release`` is called before
    ``on_stopped`` so that the host may start the bridge again from inside
    its stop callback.
    """

    def __init__(
        self,
        rx_buffer: FrameBuffer,
        stats: BridgeStats,
        release: Callable[[WorkItem], None],
    ) -> None:
        self._rx_buffer = rx_buffer
        self._stats = stats
        self._release = release

    def handle(self, work: WorkItem, outcome: CycleOutcome) -> bool:
        self._stats.record("cycles")

        if outcome.rx_ready:
            self._report_receive(work, outcome)
        if outcome.tx_ready:
            self._report_send(work, outcome)
        if outcome.fault is not None:
            self._report_fault(work, outcome.fault)

        if outcome.stopped or work.stop_requested:
            self._finalize(work)
            return False

        work.report()
        work.reset_cycle()
        work.arm()
        return True

    def _report_receive(self, work: WorkItem, outcome: CycleOutcome) -> None:
        if outcome.rx_len == 0:
            self._stats.record("rx_rejected")
            invoke_callback(
                "on_receive",
                work.on_receive,
                outcome.rx_error,
                0,
                outcome.rx_from,
                outcome.rx_to,
                outcome.rx_id,
                outcome.rx_flags,
                b"",
            )
            return

        self._stats.record("rx_messages")
        invoke_callback(
            "on_receive",
            work.on_receive,
            None,
            outcome.rx_len,
            outcome.rx_from,
            outcome.rx_to,
            outcome.rx_id,
            outcome.rx_flags,
            self._rx_buffer.snapshot(outcome.rx_len),
        )

    def _report_send(self, work: WorkItem, outcome: CycleOutcome) -> None:
        callback = work.release_tx()
        if outcome.tx_ok:
            self._stats.record("tx_ok")
            error = None
        else:
            self._stats.record("tx_failed")
            error = outcome.tx_error or SendFailed("sendWait failed")
        if callback is None:
            logger.warning("Send completed without a registered callback")
            return
        invoke_callback("on_send_complete", callback, error)

    def _report_fault(self, work: WorkItem, fault: BaseException) -> None:
        self._stats.record("faults")
        if work.tx_outstanding:
            callback = work.release_tx()
            self._stats.record("tx_failed")
            if callback is not None:
                invoke_callback("on_send_complete", callback, fault)
        invoke_callback("on_receive", work.on_receive, fault, 0, 0, 0, 0, 0, b"")

    def _finalize(self, work: WorkItem) -> None:
        if work.fsm_state in (WorkItem.STATE_RECEIVED, WorkItem.STATE_SENT):
            work.report()
        if work.fsm_state in (WorkItem.STATE_POLLING, WorkItem.STATE_REPORTING):
            work.halt()

        if work.tx_outstanding:
            # Accepted before the stop request but never handed to the transport.
            callback = work.release_tx()
            self._stats.record("tx_failed")
            if callback is not None:
                invoke_callback(
                    "on_send_complete",
                    callback,
                    SendFailed("bridge stopped before the datagram was sent"),
                )

        work.finish()
        on_stopped = work.on_stopped
        work.on_stopped = None
        self._release(work)

        if on_stopped is not None:
            invoke_callback("on_stopped", on_stopped)
        logger.info("Worker stopped")


__all__ = ["CompletionHandler", "invoke_callback"]
