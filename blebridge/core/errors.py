# blebridge/core/errors.py
from __future__ import annotations


class BridgeError(Exception):
    """
    Base class for all expected operational errors in blebridge.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, logs, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (no broker or sink access yet)
# ---------------------------------------------------------------------------

class ConfigError(BridgeError):
    """
    Configuration is missing, malformed or inconsistent.

    Examples:
      - config file not found / invalid YAML
      - malformed device address in the allow-list
      - unknown sink kind
      - negative retry backoff
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Device broker errors (fatal to the monitor)
# ---------------------------------------------------------------------------

class BrokerError(BridgeError):
    """
    The device broker failed during monitor startup.

    The monitor cannot usefully run without discovery, so these propagate
    to the process supervisor.
    """
    code = "broker_error"


class EnumerationError(BrokerError):
    """
    Known devices could not be listed or watched during startup.
    """
    code = "enumeration_error"


class DiscoveryError(BrokerError):
    """
    Live discovery could not be started.

    Examples:
      - adapter powered off
      - adapter missing (wrong hci name)
      - bus permission denied
    """
    code = "discovery_error"


# ---------------------------------------------------------------------------
# Decode errors (never leave the decoder)
# ---------------------------------------------------------------------------

class ReadingDecodeError(BridgeError):
    """
    An advertisement payload had an unexpected shape or length.
    """
    code = "reading_decode_error"


# ---------------------------------------------------------------------------
# Sink errors
# ---------------------------------------------------------------------------

class SinkError(BridgeError):
    """
    Base class for delivery failures reported by a sink.
    """
    code = "sink_error"


class SinkUnavailableError(SinkError):
    """
    Transient delivery failure; the same reading should be retried.

    Examples:
      - database connection refused / dropped
      - HTTP connect timeout
      - collector answered 5xx or 429
    """
    code = "sink_unavailable"


class SinkRejectedError(SinkError):
    """
    Non-transient delivery failure; retrying the same reading cannot help.

    Examples:
      - constraint violation / bad column type
      - collector answered 4xx
    """
    code = "sink_rejected"
