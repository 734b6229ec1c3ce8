"""Thread-based worker pools: fixed, counting, elastic, result-returning and queued."""

__version__ = "0.1.0"