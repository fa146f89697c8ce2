"""Resolve partial, noisy customer identifiers to a single shipment."""

__version__ = "0.1.0"

from .config import Settings
from .engine import ResolutionEngine, build_engine
from .errors import ConfigurationError, MalformedUpstreamPayload, TransientUpstreamError
from .models import (
    IdentifierSet,
    OrderRecord,
    ResolutionPath,
    ResolutionResult,
    ResolutionStatus,
    TrackingEvent,
    TrackingRecord,
)

__all__ = [
    "ConfigurationError",
    "IdentifierSet",
    "MalformedUpstreamPayload",
    "OrderRecord",
    "ResolutionEngine",
    "ResolutionPath",
    "ResolutionResult",
    "ResolutionStatus",
    "Settings",
    "TrackingEvent",
    "TrackingRecord",
    "TransientUpstreamError",
    "build_engine",
]
