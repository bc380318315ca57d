from __future__ import annotations


class ChurchMapError(Exception):
    """
    Base class for the service's domain errors.

    Route handlers translate these into HTTP outcomes; none of them should
    escape a request as an unhandled exception.
    """


class NotReady(ChurchMapError):
    """A dependency (tile store, corpus, context) is not initialized yet."""


class TileNotFound(ChurchMapError):
    """Well-formed tile coordinate that the container does not cover."""

    def __init__(self, z: int, x: int, y: int, reason: str = "missing"):
        super().__init__(f"No tile at {z}/{x}/{y} ({reason})")
        self.z = z
        self.x = x
        self.y = y
        self.reason = reason


class BadInput(ChurchMapError, ValueError):
    """Unparseable request parameter. Query params fall back to defaults instead."""


class IOFailure(ChurchMapError):
    """
    Start-up I/O failure (chunk read/write, container open, required source).

    Raised `from` the underlying OSError/ValueError when there is one.
    """
