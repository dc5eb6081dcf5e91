"""
Listing candidato devuelto por el índice.

El documento se conserva tal cual llega de Typesense: se persiste
verbatim en el match y nunca se modifica.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CandidateListing(BaseModel):
    """Hit del índice, previo a la calificación con IA."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="ID del documento en Typesense")
    document: dict[str, Any] = Field(
        default_factory=dict, description="Documento completo (opaco)"
    )
    highlights: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_hit(cls, hit: dict) -> "CandidateListing":
        """Construye el candidato desde un hit crudo de multi_search."""
        document = hit.get("document") or {}
        return cls(
            id=str(document.get("id", "")),
            document=document,
            highlights=hit.get("highlights") or [],
        )

    @property
    def data(self) -> dict[str, Any]:
        return self.document.get("data") or {}

    def field(self, name: str, default: Optional[Any] = None) -> Any:
        """Acceso a un campo de `data`, tratando vacíos como ausentes."""
        value = self.data.get(name)
        if value is None or value == "":
            return default
        return value

    @property
    def location(self) -> Optional[str]:
        return self.field("community") or self.field("location_raw")
