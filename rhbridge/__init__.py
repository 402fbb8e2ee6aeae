"""Asynchronous bridge over a blocking RadioHead reliable-datagram transport."""

from .bridge import RadioHeadBridge
from .client import RadioHeadClient, ReceivedMessage
from .config.model import BridgeConfig
from .errors import (
    AlreadyActive,
    AlreadyOpen,
    AlreadyStopping,
    BridgeError,
    ConfigurationError,
    LifecycleError,
    NotActive,
    NotConfigured,
    PayloadTooLarge,
    ReceiveRejected,
    SendFailed,
    SendInProgress,
    TransportFault,
    TransportInitError,
    WorkerStillActive,
)
from .stats import BridgeStats
from .transport.base import ReceiveResult, Transport

__version__ = "1.0.0"

__all__ = [
    "AlreadyActive",
    "AlreadyOpen",
    "AlreadyStopping",
    "BridgeConfig",
    "BridgeError",
    "BridgeStats",
    "ConfigurationError",
    "LifecycleError",
    "NotActive",
    "NotConfigured",
    "PayloadTooLarge",
    "RadioHeadBridge",
    "RadioHeadClient",
    "ReceiveRejected",
    "ReceiveResult",
    "ReceivedMessage",
    "SendFailed",
    "SendInProgress",
    "Transport",
    "TransportFault",
    "TransportInitError",
    "WorkerStillActive",
    "__version__",
]
