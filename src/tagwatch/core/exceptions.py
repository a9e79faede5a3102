"""
Exception hierarchy for tagwatch.

Drivers raise these internally; the subscription registry and the clients
convert them into ``OperationResult`` values so nothing escapes to callers.
"""


class TagwatchError(Exception):
    """Root of the tagwatch exception hierarchy."""


class DriverError(TagwatchError):
    """A transport driver reported a failure (timeout, refusal, bad response)."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class FormatError(TagwatchError):
    """A raw value does not fit the declared type hint."""


class ConfigurationError(TagwatchError):
    """Invalid or unreadable client configuration."""
