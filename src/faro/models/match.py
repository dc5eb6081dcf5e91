"""
Match persistido entre un criterio y un listing.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from faro.models.listing import CandidateListing
from faro.models.qualification import QualificationResult


class MatchRecord(BaseModel):
    """
    Fila de la tabla 'matches'.

    Clave de conflicto: (criteria_id, listing_id). Una recalificación en una
    pasada posterior pisa score y notas en lugar de duplicar la fila.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = Field(None, description="UUID generado por Supabase")
    criteria_id: str
    listing_id: str
    listing_data: dict[str, Any] = Field(
        default_factory=dict, description="Documento del índice, verbatim"
    )
    relevance_score: int = Field(..., ge=0, le=100)
    qualification_notes: str = ""
    is_notified: bool = False

    @classmethod
    def from_qualification(
        cls,
        criteria_id: str,
        listing: CandidateListing,
        qualification: QualificationResult,
    ) -> "MatchRecord":
        return cls(
            criteria_id=criteria_id,
            listing_id=listing.id,
            listing_data=listing.document,
            relevance_score=qualification.score,
            qualification_notes=qualification.explanation,
        )

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para upsert en Supabase."""
        return self.model_dump(exclude={"id"})
