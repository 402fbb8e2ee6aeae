"""Data model for RadioHead bridge configuration."""

from __future__ import annotations

from dataclasses import dataclass

from ..const import (
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_OWN_ADDRESS,
    DEFAULT_PROMISCUOUS,
    DEFAULT_SERIAL_BAUD,
    DEFAULT_SERIAL_EXCLUSIVE,
    DEFAULT_SERIAL_OPEN_ATTEMPTS,
    DEFAULT_SERIAL_PORT,
    DEFAULT_TRANSPORT_FACTORY,
    RH_DEFAULT_RETRIES,
    RH_DEFAULT_TIMEOUT,
    UINT8_MAX,
    WORKER_DEFAULT_SLEEP_TIME,
    WORKER_MIN_SLEEP_TIME,
)
from ..errors import ConfigurationError
from ..transport.serial import BAUDRATE_MAP


@dataclass(slots=True)
class BridgeConfig:
    """Strongly typed configuration for one bridge instance."""

    serial_port: str = DEFAULT_SERIAL_PORT
    serial_baud: int = DEFAULT_SERIAL_BAUD
    own_address: int = DEFAULT_OWN_ADDRESS
    retries: int = RH_DEFAULT_RETRIES
    ack_timeout_ms: int = RH_DEFAULT_TIMEOUT
    promiscuous: bool = DEFAULT_PROMISCUOUS
    worker_sleep_time: float = WORKER_DEFAULT_SLEEP_TIME
    serial_open_attempts: int = DEFAULT_SERIAL_OPEN_ATTEMPTS
    serial_exclusive: bool = DEFAULT_SERIAL_EXCLUSIVE
    transport_factory: str = DEFAULT_TRANSPORT_FACTORY
    debug_logging: bool = DEFAULT_DEBUG_LOGGING

    def __post_init__(self) -> None:
        if not self.serial_port or not self.serial_port.strip():
            raise ConfigurationError("serial_port must be a non-empty path")
        if self.serial_baud not in BAUDRATE_MAP:
            raise ConfigurationError(f"serial_baud {self.serial_baud} is not supported")
        self.own_address = self._require_uint8("own_address", self.own_address)
        self.retries = self._require_uint8("retries", self.retries)
        if self.ack_timeout_ms <= 0:
            raise ConfigurationError("ack_timeout_ms must be a positive integer")
        if self.worker_sleep_time < WORKER_MIN_SLEEP_TIME:
            raise ConfigurationError(f"worker_sleep_time must be at least {WORKER_MIN_SLEEP_TIME}s")
        self.worker_sleep_time = float(self.worker_sleep_time)
        self.serial_open_attempts = max(1, int(self.serial_open_attempts))
        self.transport_factory = self.transport_factory.strip()

    @staticmethod
    def _require_uint8(name: str, value: int) -> int:
        if not 0 <= int(value) <= UINT8_MAX:
            raise ConfigurationError(f"{name} must be in range 0..{UINT8_MAX}")
        return int(value)
