"""
spotcheck - resilience and trust layer for a location-based challenge game client.

Subpackages:
- spotcheck.core: typed errors, classification, storage, logging, settings
- spotcheck.execution: circuit breakers and retry scheduling
- spotcheck.resilience: offline cache, offline queue, degradation, ErrorHandler facade
- spotcheck.geo: geodesy, location verification, fraud heuristics
- spotcheck.cli: ``spotcheck`` command-line interface
"""

__version__ = "0.1.0"

from spotcheck.core.container import SpotcheckContainer
from spotcheck.core.errors import CircuitOpenError, ErrorKind, Severity, TypedError

__all__ = [
    "CircuitOpenError",
    "ErrorKind",
    "Severity",
    "SpotcheckContainer",
    "TypedError",
    "__version__",
]
