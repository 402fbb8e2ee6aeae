"""Counters describing what a bridge instance has done so far."""

from __future__ import annotations

import time
from typing import Any

import msgspec
from msgspec import structs


class BridgeStats(msgspec.Struct):
    """Event counters; only ever mutated on the host event loop."""

    cycles: int = 0
    rx_messages: int = 0
    rx_rejected: int = 0
    rx_discarded_on_start: int = 0
    tx_ok: int = 0
    tx_failed: int = 0
    tx_rejected: int = 0
    faults: int = 0
    last_event_unix: float = 0.0

    def record(self, event: str, count: int = 1) -> None:
        setattr(self, event, getattr(self, event) + count)
        self.last_event_unix = time.time()

    def snapshot(self) -> BridgeStats:
        return structs.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


__all__ = ["BridgeStats"]
