"""Service wiring and startup."""

from .readiness import (
    InitializationState,
    ReadinessManager,
    ServiceReadinessStatus,
    ServiceStatus,
)
from .archive import DocumentArchive

__all__ = [
    "DocumentArchive",
    "InitializationState",
    "ReadinessManager",
    "ServiceReadinessStatus",
    "ServiceStatus",
]
