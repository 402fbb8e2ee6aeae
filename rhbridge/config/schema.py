"""Marshmallow schema for BridgeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import Schema, ValidationError, fields, post_load, pre_load, validate, validates

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
from ..transport.serial import BAUDRATE_MAP
from .model import BridgeConfig


class BridgeConfigSchema(Schema):
    """Declarative validation schema for bridge configuration."""

    # Serial link
    serial_port = fields.Str(load_default=DEFAULT_SERIAL_PORT, validate=validate.Length(min=1))
    serial_baud = fields.Int(load_default=DEFAULT_SERIAL_BAUD)
    serial_open_attempts = fields.Int(load_default=DEFAULT_SERIAL_OPEN_ATTEMPTS, validate=validate.Range(min=1))
    serial_exclusive = fields.Bool(load_default=DEFAULT_SERIAL_EXCLUSIVE)

    # Datagram transport
    own_address = fields.Int(load_default=DEFAULT_OWN_ADDRESS, validate=validate.Range(min=0, max=UINT8_MAX))
    retries = fields.Int(load_default=RH_DEFAULT_RETRIES, validate=validate.Range(min=0, max=UINT8_MAX))
    ack_timeout_ms = fields.Int(load_default=RH_DEFAULT_TIMEOUT, validate=validate.Range(min=1))
    promiscuous = fields.Bool(load_default=DEFAULT_PROMISCUOUS)
    transport_factory = fields.Str(load_default=DEFAULT_TRANSPORT_FACTORY)

    # Worker
    worker_sleep_time = fields.Float(
        load_default=WORKER_DEFAULT_SLEEP_TIME,
        validate=validate.Range(min=WORKER_MIN_SLEEP_TIME),
    )

    # System
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)

    @validates("serial_baud")
    def validate_baud(self, value: int, **kwargs: Any) -> None:
        if value not in BAUDRATE_MAP:
            supported = ", ".join(str(rate) for rate in sorted(BAUDRATE_MAP))
            raise ValidationError(f"Unsupported baud rate {value}; expected one of {supported}")

    @validates("transport_factory")
    def validate_factory_path(self, value: str, **kwargs: Any) -> None:
        if value and ":" not in value:
            raise ValidationError("transport_factory must look like 'package.module:callable'")

    @pre_load
    def parse_address(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        # Addresses are commonly written in hex ("0x01") in config files.
        value = data.get("own_address")
        if isinstance(value, str):
            try:
                data = dict(data)
                data["own_address"] = int(value, 0)
            except ValueError:
                pass
        return data

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> BridgeConfig:
        return BridgeConfig(**data)
