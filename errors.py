"""Errors raised by the rating core."""


class Unauthenticated(Exception):
    """No user identity is available for an operation that mutates state."""


class TransientIOError(Exception):
    """A read or write against MongoDB failed (connectivity, availability, timeouts)."""
