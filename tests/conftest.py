"""Pytest configuration for rhbridge tests."""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from rhbridge.bridge import RadioHeadBridge  # noqa: E402
from rhbridge.config.model import BridgeConfig  # noqa: E402

from tests.mocks import CallbackRecorder, FakeLink, FakeTransport, stop_bridge  # noqa: E402


@pytest.fixture(autouse=True)
def reset_logging_handlers() -> Iterator[None]:
    """Close and remove all root handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def _isolated_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RHBRIDGE_CONFIG", raising=False)
    monkeypatch.delenv("RHBRIDGE_LOG_STREAM", raising=False)


@pytest.fixture()
def bridge_config() -> BridgeConfig:
    return BridgeConfig(serial_port="/dev/ttyTEST0", serial_baud=9600, worker_sleep_time=0.005)


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture()
def bridge(bridge_config: BridgeConfig, fake_transport: FakeTransport) -> Iterator[RadioHeadBridge]:
    instance = RadioHeadBridge(
        bridge_config,
        transport_factory=fake_transport.factory,
        link_opener=FakeLink.opener,
    )
    yield instance
    if not instance.worker_active:
        instance.destroy()


@pytest_asyncio.fixture()
async def running_bridge(
    bridge: RadioHeadBridge,
    fake_transport: FakeTransport,
    recorder: CallbackRecorder,
) -> AsyncIterator[RadioHeadBridge]:
    bridge.open()
    bridge.start(recorder.on_receive)
    try:
        yield bridge
    finally:
        # Never leave a worker parked on a gate or polling after the loop closes.
        for gate in (fake_transport.poll_gate, fake_transport.send_gate):
            if gate is not None:
                gate.set()
        await stop_bridge(bridge)
