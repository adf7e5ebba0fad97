"""Exceptions raised by the calculation engine."""


class EngineStoppedError(RuntimeError):
    """Raised when work is requested from an engine that has been shut down."""
