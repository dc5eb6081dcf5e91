"""
Modelos de datos del sistema.

- SearchCriteria: especificación guardada del comprador
- CandidateListing: hit del índice, transitorio
- QualificationResult: veredicto del modelo por listing
- MatchRecord: match persistido
"""

from faro.models.criteria import Buyer, SearchCriteria
from faro.models.listing import CandidateListing
from faro.models.qualification import (
    BuyerRequirements,
    QualificationResult,
    clamp_score,
)
from faro.models.match import MatchRecord

__all__ = [
    # Criterios
    "Buyer",
    "SearchCriteria",
    # Listings
    "CandidateListing",
    # Calificación
    "BuyerRequirements",
    "QualificationResult",
    "clamp_score",
    # Persistencia
    "MatchRecord",
]
