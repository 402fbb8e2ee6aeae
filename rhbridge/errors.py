"""Exception taxonomy for the RadioHead bridge.

Errors detected at the call boundary are raised synchronously. Outcomes of
background work (receive/send) are never raised; they are handed to the host
callbacks as the ``error`` argument instead.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every error produced by the bridge."""


class ConfigurationError(BridgeError, ValueError):
    """Invalid argument, range or configuration value."""


class PayloadTooLarge(ConfigurationError):
    """Datagram exceeds the maximum message length of the link."""

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(f"payload too large ({length} > {limit} bytes)")
        self.length = length
        self.limit = limit


class TransportInitError(BridgeError):
    """The transport (or the serial link beneath it) failed to initialise."""


class ReceiveRejected(BridgeError):
    """A datagram was signalled available but failed transport validation."""


class SendFailed(BridgeError):
    """Send-with-acknowledgement did not succeed after the transport's retries."""


class TransportFault(BridgeError):
    """The transport failed while polling; the worker has been shut down."""


class LifecycleError(BridgeError):
    """Operation is not valid in the bridge's current lifecycle state."""


class NotConfigured(LifecycleError):
    """The bridge has not been opened yet."""


class AlreadyOpen(LifecycleError):
    """``open`` called twice without ``destroy`` in between."""


class AlreadyActive(LifecycleError):
    """``start`` called while the worker is running."""


class NotActive(LifecycleError):
    """Operation requires a running worker."""


class AlreadyStopping(LifecycleError):
    """``stop`` called while a previous stop is still pending."""


class WorkerStillActive(LifecycleError):
    """Teardown attempted while the worker is running."""


class SendInProgress(LifecycleError):
    """A previous send has not been reported yet."""


__all__ = [
    "AlreadyActive",
    "AlreadyOpen",
    "AlreadyStopping",
    "BridgeError",
    "ConfigurationError",
    "LifecycleError",
    "NotActive",
    "NotConfigured",
    "PayloadTooLarge",
    "ReceiveRejected",
    "SendFailed",
    "SendInProgress",
    "TransportFault",
    "TransportInitError",
    "WorkerStillActive",
]
