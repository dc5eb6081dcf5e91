"""
Resultados de calificación del modelo.
"""

import math
from typing import Optional

from pydantic import BaseModel, Field

MISSING_FROM_BATCH = "Missing from batch response"
QUALIFICATION_FAILED = "Failed to qualify due to an error"


def clamp_score(score: float) -> int:
    """Redondea (mitades hacia arriba) y acota un score al rango [0, 100]."""
    return int(max(0, min(100, math.floor(score + 0.5))))


class BuyerRequirements(BaseModel):
    """Proyección textual de lo que busca el comprador."""

    name: str = ""
    property_types: Optional[list[str]] = None
    communities: Optional[list[str]] = None
    developers: Optional[list[str]] = None
    bedrooms: Optional[list[int]] = None
    bathrooms: Optional[list[int]] = None
    min_price_aed: Optional[float] = None
    max_price_aed: Optional[float] = None
    min_area_sqft: Optional[float] = None
    max_area_sqft: Optional[float] = None
    keywords: Optional[str] = None
    additional_notes: Optional[str] = None


class QualificationResult(BaseModel):
    """
    Calificación de un listing.

    Se produce exactamente una por cada candidato que llega a calificación,
    incluso cuando el modelo falla (resultado centinela con `failed=True`).
    """

    listing_id: str
    score: int = Field(..., ge=0, le=100)
    is_match: bool
    explanation: str = ""
    highlights: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    failed: bool = False

    @classmethod
    def scored(
        cls,
        listing_id: str,
        score: float,
        threshold: int,
        explanation: str = "",
        highlights: Optional[list[str]] = None,
        concerns: Optional[list[str]] = None,
    ) -> "QualificationResult":
        clamped = clamp_score(score)
        return cls(
            listing_id=listing_id,
            score=clamped,
            is_match=clamped >= threshold,
            explanation=explanation,
            highlights=highlights or [],
            concerns=concerns or [],
        )

    @classmethod
    def sentinel(cls, listing_id: str, reason: str) -> "QualificationResult":
        """Resultado fallido: score 0, nunca es match."""
        return cls(
            listing_id=listing_id,
            score=0,
            is_match=False,
            explanation=reason,
            concerns=["Qualification failed"],
            failed=True,
        )
