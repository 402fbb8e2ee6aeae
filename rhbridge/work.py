"""Per-cycle work record shared between the host loop and the worker thread."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import msgspec
from transitions import Machine

from .buffers import FrameBuffer
from .const import WORKER_DEFAULT_SLEEP_TIME
from .errors import SendInProgress

ReceiveCallback = Callable[[BaseException | None, int, int, int, int, int, bytes], Any]
SendCallback = Callable[[BaseException | None], Any]
StopCallback = Callable[[], Any]


class CycleOutcome(msgspec.Struct, frozen=True):
    """Immutable snapshot handed from the worker to the completion handler."""

    stopped: bool = False
    rx_ready: bool = False
    rx_len: int = 0
    rx_from: int = 0
    rx_to: int = 0
    rx_id: int = 0
    rx_flags: int = 0
    rx_error: BaseException | None = None
    tx_ready: bool = False
    tx_ok: bool = False
    tx_error: BaseException | None = None
    fault: BaseException | None = None


class WorkItem:
    """Mutable state of one Start/Stop cycle.

    Fields written by the worker (``rx_*``, ``tx_ok``, the ready flags) are
    only read by the host after the cycle's executor future resolved; the TX
    slot is the one piece both sides touch concurrently and it is guarded by
    ``_tx_lock``.
    """

    if TYPE_CHECKING:
        fsm_state: str
        arm: Callable[[], bool]
        receive: Callable[[], bool]
        transmit: Callable[[], bool]
        report: Callable[[], bool]
        halt: Callable[[], bool]
        finish: Callable[[], bool]

    STATE_IDLE = "idle"
    STATE_POLLING = "polling"
    STATE_RECEIVED = "received"
    STATE_SENT = "sent"
    STATE_REPORTING = "reporting"
    STATE_STOPPING = "stopping"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        on_receive: ReceiveCallback,
        *,
        sleep_time: float = WORKER_DEFAULT_SLEEP_TIME,
    ) -> None:
        self.on_receive = on_receive
        self.on_send_complete: SendCallback | None = None
        self.on_stopped: StopCallback | None = None
        self.sleep_time = sleep_time

        self.rx_ready = False
        self.rx_len = 0
        self.rx_from = 0
        self.rx_to = 0
        self.rx_id = 0
        self.rx_flags = 0
        self.rx_error: BaseException | None = None

        self.tx_ready = False
        self.tx_len = 0
        self.tx_to = 0
        self.tx_ok = False
        self.tx_error: BaseException | None = None

        self._tx_lock = threading.Lock()
        self._tx_outstanding = False
        self._stop_event = threading.Event()
        self._wakeup = threading.Event()

        self.state_machine = Machine(
            model=self,
            states=[
                self.STATE_IDLE,
                self.STATE_POLLING,
                self.STATE_RECEIVED,
                self.STATE_SENT,
                self.STATE_REPORTING,
                self.STATE_STOPPING,
                self.STATE_STOPPED,
            ],
            initial=self.STATE_IDLE,
            model_attribute="fsm_state",
            auto_transitions=False,
        )
        self.state_machine.add_transition("arm", [self.STATE_IDLE, self.STATE_REPORTING], self.STATE_POLLING)
        self.state_machine.add_transition("receive", self.STATE_POLLING, self.STATE_RECEIVED)
        self.state_machine.add_transition("transmit", self.STATE_POLLING, self.STATE_SENT)
        self.state_machine.add_transition("report", [self.STATE_RECEIVED, self.STATE_SENT], self.STATE_REPORTING)
        self.state_machine.add_transition("halt", [self.STATE_POLLING, self.STATE_REPORTING], self.STATE_STOPPING)
        self.state_machine.add_transition("finish", self.STATE_STOPPING, self.STATE_STOPPED)

    # --- stop / wakeup ---

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self, on_stopped: StopCallback) -> None:
        self.on_stopped = on_stopped
        self._stop_event.set()
        self._wakeup.set()

    def clear_wakeup(self) -> None:
        self._wakeup.clear()

    def idle_wait(self) -> None:
        """Sleep for the idle interval, returning early on send or stop."""
        self._wakeup.wait(self.sleep_time)

    # --- TX slot ---

    @property
    def tx_outstanding(self) -> bool:
        with self._tx_lock:
            return self._tx_outstanding

    def submit_tx(
        self,
        tx_buffer: FrameBuffer,
        to: int,
        payload: bytes,
        on_send_complete: SendCallback,
    ) -> None:
        """Publish one datagram to the worker; at most one may be outstanding."""
        with self._tx_lock:
            if self._tx_outstanding:
                raise SendInProgress("a previous send has not completed yet")
            length = tx_buffer.load(payload)
            self.tx_to = to
            self.on_send_complete = on_send_complete
            self._tx_outstanding = True
            self.tx_len = length
        self._wakeup.set()

    def claim_tx(self) -> tuple[int, int] | None:
        """Take the pending datagram as ``(to, length)``, or None if there is none."""
        with self._tx_lock:
            if self.tx_len <= 0:
                return None
            claimed = (self.tx_to, self.tx_len)
            self.tx_len = 0
            return claimed

    def release_tx(self) -> SendCallback | None:
        """Free the TX slot and hand back its one-shot callback."""
        with self._tx_lock:
            callback = self.on_send_complete
            self.on_send_complete = None
            self._tx_outstanding = False
            self.tx_len = 0
            return callback

    # --- results ---

    def record_receive(
        self,
        length: int,
        from_address: int = 0,
        to_address: int = 0,
        message_id: int = 0,
        flags: int = 0,
        error: BaseException | None = None,
    ) -> None:
        self.rx_len = length
        self.rx_from = from_address
        self.rx_to = to_address
        self.rx_id = message_id
        self.rx_flags = flags
        self.rx_error = error
        self.rx_ready = True

    def record_send(self, ok: bool, error: BaseException | None = None) -> None:
        self.tx_ok = ok
        self.tx_error = error
        self.tx_ready = True

    def outcome(self, *, stopped: bool = False, fault: BaseException | None = None) -> CycleOutcome:
        return CycleOutcome(
            stopped=stopped,
            rx_ready=self.rx_ready,
            rx_len=self.rx_len,
            rx_from=self.rx_from,
            rx_to=self.rx_to,
            rx_id=self.rx_id,
            rx_flags=self.rx_flags,
            rx_error=self.rx_error,
            tx_ready=self.tx_ready,
            tx_ok=self.tx_ok,
            tx_error=self.tx_error,
            fault=fault,
        )

    def reset_cycle(self) -> None:
        self.rx_ready = False
        self.rx_len = 0
        self.rx_error = None
        self.tx_ready = False
        self.tx_ok = False
        self.tx_error = None


__all__ = [
    "CycleOutcome",
    "ReceiveCallback",
    "SendCallback",
    "StopCallback",
    "WorkItem",
]
