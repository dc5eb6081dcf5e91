"""
Contexto de una pasada de búsqueda.

Se construye al inicio de la pasada y se pasa explícitamente a cada paso
por criterio. Nunca se comparte entre pasadas.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from faro.models import CandidateListing


@dataclass
class CriteriaRunStats:
    """Estadísticas de un criterio dentro de la pasada."""

    criteria_id: str
    criteria_name: str
    found: int = 0
    fetched: int = 0
    deduped: int = 0
    qualified: int = 0
    saved: int = 0
    failed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "criteria_id": self.criteria_id,
            "criteria_name": self.criteria_name,
            "found": self.found,
            "fetched": self.fetched,
            "deduped": self.deduped,
            "qualified": self.qualified,
            "saved": self.saved,
            "failed": self.failed,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class RunContext:
    """
    Estado de la pasada: ids ya vistos, estadísticas, criterios procesados
    y advertencias.
    """

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    seen_listing_ids: set[str] = field(default_factory=set)
    criteria_stats: list[CriteriaRunStats] = field(default_factory=list)
    processed_criteria_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def filter_new(self, listings: Iterable[CandidateListing]) -> list[CandidateListing]:
        """
        Devuelve solo los listings no vistos en la pasada y los registra.

        El primer criterio que encuentra un listing se lo queda; los
        criterios siguientes no lo vuelven a calificar.
        """
        new = []
        for listing in listings:
            if listing.id in self.seen_listing_ids:
                continue
            self.seen_listing_ids.add(listing.id)
            new.append(listing)
        return new

    def start_criteria(self, criteria_id: str, criteria_name: str) -> CriteriaRunStats:
        stats = CriteriaRunStats(criteria_id=criteria_id, criteria_name=criteria_name)
        self.criteria_stats.append(stats)
        return stats

    def mark_processed(self, criteria_id: str) -> None:
        if criteria_id not in self.processed_criteria_ids:
            self.processed_criteria_ids.append(criteria_id)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    @property
    def total_matches(self) -> int:
        return sum(s.qualified for s in self.criteria_stats)

    @property
    def new_matches(self) -> int:
        return sum(s.saved for s in self.criteria_stats)
