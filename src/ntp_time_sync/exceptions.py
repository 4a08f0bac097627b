"""
Error taxonomy for ntp-time-sync.

Per-exchange errors (transport, timeout, validation) are recovered at the
round level: the reply is dropped and the round continues with the remaining
servers. Only ExhaustionError and ConfigurationError reach callers.
"""


class NtpTimeSyncError(Exception):
    """Base class for all ntp-time-sync errors."""


class ConfigurationError(NtpTimeSyncError, ValueError):
    """Unknown option key or out-of-range option value."""


class TransportError(NtpTimeSyncError):
    """Send or receive failure on a single exchange."""


class ExchangeTimeoutError(NtpTimeSyncError, TimeoutError):
    """No reply arrived within the configured reply timeout."""


class ValidationError(NtpTimeSyncError):
    """A reply was received but is not acceptable for synchronization."""


class FormatError(ValidationError):
    """Malformed reply, unsupported version or future origin timestamp."""


class StratumError(ValidationError):
    """Remote clock is unsynchronized or its stratum is too high."""


class DistanceError(ValidationError):
    """Root distance of the remote clock is too large."""


class ExhaustionError(NtpTimeSyncError):
    """Every exchange of every retried round failed."""

    def __init__(self, retries: int):
        self.retries = retries
        super().__init__(
            f"Connection error: Unable to get any NTP response after {retries} retries"
        )
