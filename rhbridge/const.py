"""Constants shared across the RadioHead bridge."""

from __future__ import annotations

from typing import Final

# Addressing and header flags
RH_BROADCAST_ADDRESS: Final[int] = 0xFF
RH_FLAGS_RESERVED: Final[int] = 0xF0
RH_FLAGS_APPLICATION_SPECIFIC: Final[int] = 0x0F
RH_FLAGS_NONE: Final[int] = 0x00
RH_FLAGS_ACK: Final[int] = 0x80

# Serial driver framing limits
RH_SERIAL_MAX_PAYLOAD_LEN: Final[int] = 64
RH_SERIAL_HEADER_LEN: Final[int] = 4
RH_SERIAL_MAX_MESSAGE_LEN: Final[int] = RH_SERIAL_MAX_PAYLOAD_LEN - RH_SERIAL_HEADER_LEN

# Reliable datagram defaults
RH_DEFAULT_TIMEOUT: Final[int] = 200  # milliseconds
RH_DEFAULT_RETRIES: Final[int] = 3

UINT8_MAX: Final[int] = 0xFF

# Worker
WORKER_DEFAULT_SLEEP_TIME: Final[float] = 0.05
WORKER_MIN_SLEEP_TIME: Final[float] = 0.001
WORKER_THREAD_PREFIX: Final[str] = "rhbridge-worker"

# Configuration defaults
DEFAULT_SERIAL_PORT: Final[str] = "/dev/ttyUSB0"
DEFAULT_SERIAL_BAUD: Final[int] = 9600
DEFAULT_OWN_ADDRESS: Final[int] = 0x01
DEFAULT_PROMISCUOUS: Final[bool] = False
DEFAULT_SERIAL_OPEN_ATTEMPTS: Final[int] = 3
DEFAULT_SERIAL_OPEN_BACKOFF: Final[float] = 0.2
DEFAULT_SERIAL_OPEN_MAX_BACKOFF: Final[float] = 2.0
DEFAULT_SERIAL_EXCLUSIVE: Final[bool] = True
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_TRANSPORT_FACTORY: Final[str] = ""
DEFAULT_CONFIG_PATH: Final[str] = "/etc/rhbridge/rhbridge.toml"
