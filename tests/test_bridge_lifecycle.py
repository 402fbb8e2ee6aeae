"""Lifecycle and configuration tests for RadioHeadBridge."""

from __future__ import annotations

import threading

import pytest
from rhbridge.bridge import RadioHeadBridge
from rhbridge.config.model import BridgeConfig
from rhbridge.errors import (
    AlreadyActive,
    AlreadyOpen,
    AlreadyStopping,
    ConfigurationError,
    NotActive,
    NotConfigured,
    TransportFault,
    TransportInitError,
    WorkerStillActive,
)

from tests.mocks import CallbackRecorder, FakeLink, FakeTransport, stop_bridge, wait_until


def _failing_opener(port: str, baudrate: int) -> FakeLink:
    raise OSError(2, "No such file or directory")


def test_open_applies_configuration(bridge: RadioHeadBridge, fake_transport: FakeTransport) -> None:
    bridge.config.retries = 5
    bridge.config.ack_timeout_ms = 350
    bridge.config.promiscuous = True

    bridge.open("/dev/ttyS1", 115200, 0x2A)

    assert bridge.is_open
    assert bridge.this_address == 0x2A
    assert fake_transport.own_address == 0x2A
    assert fake_transport.link.port == "/dev/ttyS1"
    assert fake_transport.link.baudrate == 115200
    assert fake_transport.calls[0] == "init"
    assert (fake_transport.retries, fake_transport.timeout_ms, fake_transport.promiscuous) == (5, 350, True)
    assert bridge.max_message_length == 60


def test_open_defaults_come_from_config(bridge: RadioHeadBridge, fake_transport: FakeTransport) -> None:
    bridge.open()

    assert fake_transport.link.port == "/dev/ttyTEST0"
    assert fake_transport.own_address == bridge.config.own_address


def test_second_open_raises_already_open(bridge: RadioHeadBridge) -> None:
    bridge.open()
    with pytest.raises(AlreadyOpen):
        bridge.open()


def test_reopen_after_destroy(bridge: RadioHeadBridge, fake_transport: FakeTransport) -> None:
    bridge.open()
    first_link = fake_transport.link
    bridge.destroy()

    assert first_link.closed and fake_transport.closed
    bridge.open()
    assert bridge.is_open


@pytest.mark.parametrize(
    ("port", "baud", "address"),
    [
        ("/dev/ttyS0", 12345, 0x01),
        ("/dev/ttyS0", 9600, 256),
        ("/dev/ttyS0", 9600, -1),
        ("", 9600, 0x01),
    ],
)
def test_open_rejects_bad_arguments(bridge: RadioHeadBridge, port: str, baud: int, address: int) -> None:
    with pytest.raises(ConfigurationError):
        bridge.open(port, baud, address)
    assert not bridge.is_open


def test_failed_init_makes_instance_unusable(bridge_config: BridgeConfig) -> None:
    transport = FakeTransport(init_result=False)
    links: list[FakeLink] = []

    def _opener(port: str, baud: int) -> FakeLink:
        links.append(FakeLink(port, baud))
        return links[-1]

    bridge = RadioHeadBridge(bridge_config, transport_factory=transport.factory, link_opener=_opener)

    with pytest.raises(TransportInitError):
        bridge.open()
    assert links[0].closed
    assert not bridge.is_open

    with pytest.raises(TransportInitError):
        bridge.open()
    with pytest.raises(NotConfigured):
        bridge.get_retries()


def test_unopenable_link_raises_transport_init_error(bridge_config: BridgeConfig) -> None:
    bridge = RadioHeadBridge(
        bridge_config,
        transport_factory=FakeTransport().factory,
        link_opener=_failing_opener,
    )

    with pytest.raises(TransportInitError) as excinfo:
        bridge.open()
    assert isinstance(excinfo.value.__cause__, OSError)


def test_factory_exception_raises_transport_init_error(bridge_config: BridgeConfig) -> None:
    def _factory(link: object, address: int) -> FakeTransport:
        raise RuntimeError("driver exploded")

    bridge = RadioHeadBridge(bridge_config, transport_factory=_factory, link_opener=FakeLink.opener)

    with pytest.raises(TransportInitError):
        bridge.open()


def test_missing_factory_is_a_configuration_error(bridge_config: BridgeConfig) -> None:
    bridge = RadioHeadBridge(bridge_config, link_opener=FakeLink.opener)

    with pytest.raises(ConfigurationError):
        bridge.open()


def test_factory_resolved_from_config_path() -> None:
    config = BridgeConfig(serial_port="/dev/ttyTEST0", transport_factory="tests.mocks:make_fake_transport")
    bridge = RadioHeadBridge(config, link_opener=FakeLink.opener)

    bridge.open()
    assert bridge.is_open
    bridge.destroy()


def test_passthroughs_require_open(bridge: RadioHeadBridge) -> None:
    calls = [
        lambda: bridge.set_address(0x02),
        lambda: bridge.set_retries(1),
        bridge.get_retries,
        lambda: bridge.set_ack_timeout(100),
        bridge.get_retransmission_count,
        bridge.reset_retransmission_count,
        lambda: bridge.set_promiscuous(True),
    ]
    for call in calls:
        with pytest.raises(NotConfigured):
            call()


def test_passthroughs_reach_transport(bridge: RadioHeadBridge, fake_transport: FakeTransport) -> None:
    bridge.open()

    bridge.set_address(0x10)
    bridge.set_retries(7)
    bridge.set_ack_timeout(500)
    bridge.set_promiscuous(True)
    fake_transport.retransmissions = 4

    assert fake_transport.own_address == 0x10
    assert bridge.this_address == 0x10
    assert bridge.get_retries() == 7
    assert fake_transport.timeout_ms == 500
    assert fake_transport.promiscuous is True
    assert bridge.get_retransmission_count() == 4
    bridge.reset_retransmission_count()
    assert bridge.get_retransmission_count() == 0


def test_passthroughs_validate_ranges(bridge: RadioHeadBridge) -> None:
    bridge.open()
    with pytest.raises(ConfigurationError):
        bridge.set_address(0x100)
    with pytest.raises(ConfigurationError):
        bridge.set_retries(-1)
    with pytest.raises(ConfigurationError):
        bridge.set_ack_timeout(0)
    with pytest.raises(ConfigurationError):
        bridge.set_worker_sleep_time(0)


def test_destroy_on_unopened_instance_is_noop(bridge: RadioHeadBridge) -> None:
    bridge.destroy()
    bridge.destroy()
    assert not bridge.is_open


@pytest.mark.asyncio
async def test_start_before_open_raises_not_configured(bridge: RadioHeadBridge, recorder: CallbackRecorder) -> None:
    with pytest.raises(NotConfigured):
        bridge.start(recorder.on_receive)


def test_start_requires_running_loop(bridge: RadioHeadBridge, recorder: CallbackRecorder) -> None:
    bridge.open()
    with pytest.raises(ConfigurationError):
        bridge.start(recorder.on_receive)
    assert not bridge.worker_active


@pytest.mark.asyncio
async def test_second_start_raises_already_active(running_bridge: RadioHeadBridge, recorder: CallbackRecorder) -> None:
    with pytest.raises(AlreadyActive):
        running_bridge.start(recorder.on_receive)
    assert running_bridge.worker_active


@pytest.mark.asyncio
async def test_stop_and_send_require_active_worker(bridge: RadioHeadBridge, recorder: CallbackRecorder) -> None:
    bridge.open()
    with pytest.raises(NotActive):
        bridge.stop(recorder.on_stopped)
    with pytest.raises(NotActive):
        bridge.send(0x02, b"hi", recorder.on_send)
    assert recorder.events == []


@pytest.mark.asyncio
async def test_second_stop_raises_already_stopping(
    running_bridge: RadioHeadBridge,
    fake_transport: FakeTransport,
    recorder: CallbackRecorder,
) -> None:
    fake_transport.send_gate = threading.Event()
    running_bridge.send(0x02, b"slow", recorder.on_send)
    await wait_until(fake_transport.send_entered.is_set)

    running_bridge.stop(recorder.on_stopped)
    with pytest.raises(AlreadyStopping):
        running_bridge.stop(recorder.on_stopped)
    with pytest.raises(NotActive):
        running_bridge.send(0x02, b"more", recorder.on_send)

    fake_transport.send_gate.set()
    await wait_until(lambda: not running_bridge.worker_active)
    assert recorder.kinds() == ["send", "stopped"]


@pytest.mark.asyncio
async def test_destroy_refused_while_worker_active(running_bridge: RadioHeadBridge) -> None:
    with pytest.raises(WorkerStillActive):
        running_bridge.destroy()
    assert running_bridge.is_open


@pytest.mark.asyncio
async def test_restart_after_stop_uses_fresh_work_item(
    running_bridge: RadioHeadBridge,
    fake_transport: FakeTransport,
    recorder: CallbackRecorder,
) -> None:
    running_bridge.stop(recorder.on_stopped)
    await wait_until(lambda: not running_bridge.worker_active)

    second = CallbackRecorder()
    running_bridge.start(second.on_receive)
    fake_transport.queue_datagram(b"again")
    await wait_until(lambda: bool(second.events))

    assert second.events[0][7] == b"again"
    assert recorder.of_kind("receive") == []


@pytest.mark.asyncio
async def test_start_from_inside_on_stopped(
    running_bridge: RadioHeadBridge,
    recorder: CallbackRecorder,
) -> None:
    restarted: list[bool] = []

    def _on_stopped() -> None:
        assert not running_bridge.worker_active
        running_bridge.start(recorder.on_receive)
        restarted.append(running_bridge.worker_active)

    running_bridge.stop(_on_stopped)
    await wait_until(lambda: bool(restarted))

    assert restarted == [True]


@pytest.mark.asyncio
async def test_transport_fault_shuts_worker_down(
    running_bridge: RadioHeadBridge,
    fake_transport: FakeTransport,
    recorder: CallbackRecorder,
) -> None:
    fake_transport.available_error = OSError("device unplugged")
    await wait_until(lambda: not running_bridge.worker_active)

    (event,) = recorder.of_kind("receive")
    assert isinstance(event[1], TransportFault)
    assert event[2] == 0 and event[7] == b""
    assert running_bridge.stats().faults == 1

    fake_transport.available_error = None
    running_bridge.start(recorder.on_receive)
    assert running_bridge.worker_active
    await stop_bridge(running_bridge)


@pytest.mark.asyncio
async def test_fault_while_stop_pending_still_fires_on_stopped(
    running_bridge: RadioHeadBridge,
    fake_transport: FakeTransport,
    recorder: CallbackRecorder,
) -> None:
    fake_transport.poll_gate = threading.Event()
    await wait_until(fake_transport.poll_waiting.is_set)

    fake_transport.available_error = OSError("gone")
    running_bridge.stop(recorder.on_stopped)
    fake_transport.poll_gate.set()
    await wait_until(lambda: not running_bridge.worker_active)

    assert recorder.kinds() == ["receive", "stopped"]


@pytest.mark.asyncio
async def test_drain_failure_raises_transport_fault(
    bridge: RadioHeadBridge,
    fake_transport: FakeTransport,
    recorder: CallbackRecorder,
) -> None:
    bridge.open()
    fake_transport.available_error = OSError("bad link")

    with pytest.raises(TransportFault):
        bridge.start(recorder.on_receive)
    assert not bridge.worker_active


@pytest.mark.asyncio
async def test_bridges_run_side_by_side_without_sharing_state() -> None:
    transports = (FakeTransport(), FakeTransport())
    recorders = (CallbackRecorder(), CallbackRecorder())
    bridges = [
        RadioHeadBridge(
            BridgeConfig(serial_port=f"/dev/ttyTEST{index}", own_address=0x01 + index, worker_sleep_time=0.005),
            transport_factory=transport.factory,
            link_opener=FakeLink.opener,
        )
        for index, transport in enumerate(transports)
    ]
    for bridge, recorder in zip(bridges, recorders):
        bridge.open()
        bridge.start(recorder.on_receive)

    try:
        transports[0].queue_datagram(b"for-first", from_address=0x10)
        transports[1].queue_datagram(b"for-second", from_address=0x20)
        bridges[0].send(0x30, b"from-first", recorders[0].on_send)
        bridges[1].send(0x40, b"from-second", recorders[1].on_send)
        await wait_until(lambda: all(len(recorder.events) == 2 for recorder in recorders))
    finally:
        for bridge in bridges:
            await stop_bridge(bridge)
            bridge.destroy()

    assert [event[7] for event in recorders[0].of_kind("receive")] == [b"for-first"]
    assert [event[7] for event in recorders[1].of_kind("receive")] == [b"for-second"]
    assert recorders[0].of_kind("send") == [("send", None)]
    assert recorders[1].of_kind("send") == [("send", None)]
    assert transports[0].sent == [(0x30, b"from-first")]
    assert transports[1].sent == [(0x40, b"from-second")]
    assert [transport.own_address for transport in transports] == [0x01, 0x02]
    assert [transport.link.port for transport in transports] == ["/dev/ttyTEST0", "/dev/ttyTEST1"]
    assert all(transport.closed and transport.link.closed for transport in transports)
    assert [bridge.stats().rx_messages for bridge in bridges] == [1, 1]
    assert [bridge.stats().tx_ok for bridge in bridges] == [1, 1]
