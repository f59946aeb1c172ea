"""Errors raised by the time tracking service."""


class ConcurrencyConflictError(Exception):
    """A concurrent write for the same user won the race."""
