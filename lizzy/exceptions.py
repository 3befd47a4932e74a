"""Custom exception hierarchy for lizzy.

Transient problems (bad payloads, failed player calls) are logged where they
happen; only the fatal errors below are allowed to stop the main loop.
"""


class LizzyError(Exception):
    """Base exception for all lizzy errors."""

    pass


class ConfigurationError(LizzyError):
    """Invalid configuration, reported at startup."""

    pass


class SignalPayloadError(LizzyError):
    """A bus signal carried a payload that could not be decoded."""

    pass


class BusConnectionError(LizzyError):
    """The session bus connection is gone."""

    pass


class OutputError(LizzyError):
    """The status file could not be written."""

    pass
