"""
Bridgewatch Exceptions

Exceptions that abort an operation outright. Missing or inconsistent chain
data is never raised; it is returned as a value (see ``rollup.types.Lookup``).
"""


class BridgewatchException(Exception):
    """Base exception for bridgewatch."""
    pass


class ConfigurationError(BridgewatchException):
    """A required policy constant or configuration value is missing or invalid."""
    pass


class InvalidArgumentError(BridgewatchException, ValueError):
    """Malformed argument rejected before querying the store."""
    pass


class InvalidRangeError(InvalidArgumentError):
    """Block range with first > last or negative bounds."""
    pass


class StoreNotOpenError(BridgewatchException):
    """The store connection has not been opened or was already closed."""
    pass
