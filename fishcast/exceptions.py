"""
Exceptions raised by the scoring and alert core.
"""


class FishcastError(Exception):
    """Base exception for fishcast errors."""

    pass


class InvalidInputError(FishcastError, ValueError):
    """A profile or sample violates an invariant and was rejected."""

    pass


class UpstreamUnavailableError(FishcastError):
    """Weather or tide data could not be fetched (failure or timeout)."""

    pass
