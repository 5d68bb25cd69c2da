"""
Error classes for bundle_fanout.
"""


class FanoutError(Exception):
    """Base error for bundle fan-out operations."""


class ClientInitError(FanoutError):
    """A builder client could not be constructed."""

    def __init__(self, builder_id, reason):
        super().__init__(f"Could not initialise builder '{builder_id}': {reason}")
        self.builder_id = builder_id
        self.reason = reason


class TransportFault(FanoutError):
    """Network or envelope level failure talking to a relay."""


class BundleValidationError(FanoutError):
    """The bundle handed to the submitter is malformed."""


class ConfigError(FanoutError):
    """Configuration error."""
