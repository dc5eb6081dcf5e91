"""
Módulo de pipeline.

Orquesta búsqueda, dedup, calificación y guardado por criterio.
"""

from faro.pipeline.context import RunContext, CriteriaRunStats
from faro.pipeline.events import EventStep, ProgressEvent
from faro.pipeline.orchestrator import (
    SearchOrchestrator,
    SearchRequest,
    SearchRunResult,
)

__all__ = [
    "RunContext",
    "CriteriaRunStats",
    "EventStep",
    "ProgressEvent",
    "SearchOrchestrator",
    "SearchRequest",
    "SearchRunResult",
]
