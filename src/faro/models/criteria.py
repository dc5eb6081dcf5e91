"""
Modelo de Criterio de Búsqueda

Define la especificación de búsqueda guardada por un comprador.

Convención de presencia: todo filtro es opcional. `None` significa
"sin restricción"; un `True`/`False` explícito es una restricción dura.
Las listas vacías se normalizan a `None` para que nunca se confundan
con un filtro que no matchea nada.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Buyer(BaseModel):
    """Proyección del comprador dueño del criterio."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(None, description="UUID generado por Supabase")
    name: str = Field(default="", description="Nombre del comprador")
    system_prompt: Optional[str] = Field(
        None, description="Template de prompt propio del comprador"
    )


class SearchCriteria(BaseModel):
    """
    Criterio de búsqueda de un comprador.

    Se mapea a la tabla 'buyer_criteria' en Supabase. Este sistema solo lo
    lee, salvo `last_run_at` que avanza al terminar cada pasada.
    """

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    # Identificadores
    id: str = Field(..., description="UUID del criterio")
    buyer_id: Optional[str] = Field(None, description="FK al Buyer")
    name: str = Field(default="", description="Ej: '2BR en Dubai Marina'")
    is_active: bool = Field(default=True)

    # Tipo de búsqueda
    kind: Optional[str] = Field(None, description="listing o client_request")
    transaction_type: Optional[str] = Field(None, description="sale o rent")

    # Filtros de lista
    property_types: Optional[list[str]] = None
    communities: Optional[list[str]] = None
    developers: Optional[list[str]] = None
    bedrooms: Optional[list[int]] = Field(None, description="0=Studio, 6=6+")
    bathrooms: Optional[list[int]] = None
    furnishing: Optional[list[str]] = None
    mortgage_or_cash: Optional[list[str]] = None

    # Ubicación precisa (códigos PSL de propsearch.ae)
    psl_codes: Optional[list[str]] = None

    # Rangos
    min_price_aed: Optional[float] = None
    max_price_aed: Optional[float] = None
    min_area_sqft: Optional[float] = None
    max_area_sqft: Optional[float] = None

    # Texto libre
    keywords: Optional[str] = None

    # Filtros booleanos (None = no importa)
    is_off_plan: Optional[bool] = None
    is_distressed_deal: Optional[bool] = None
    is_urgent: Optional[bool] = None
    is_direct: Optional[bool] = None
    has_maid_bedroom: Optional[bool] = None
    is_agent_covered: Optional[bool] = None
    is_commission_split: Optional[bool] = None
    is_mortgage_approved: Optional[bool] = None
    is_community_agnostic: Optional[bool] = None

    # Ventana configurada en el criterio
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    # Notas de calificación para el modelo
    ai_prompt: Optional[str] = None

    # Checkpoint de la última corrida
    last_run_at: Optional[datetime] = None

    buyer: Optional[Buyer] = None

    @field_validator(
        "property_types",
        "communities",
        "developers",
        "bedrooms",
        "bathrooms",
        "furnishing",
        "mortgage_or_cash",
        "psl_codes",
        mode="before",
    )
    @classmethod
    def _empty_list_to_none(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)) and len(value) == 0:
            return None
        return value

    @field_validator("keywords", "ai_prompt", mode="before")
    @classmethod
    def _blank_text_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_db_row(cls, row: dict) -> "SearchCriteria":
        """Construye el criterio desde una fila de Supabase (con join a buyers)."""
        data = dict(row)
        buyer = data.pop("buyer", None) or data.pop("buyers", None)
        if isinstance(buyer, list):
            buyer = buyer[0] if buyer else None
        criteria = cls.model_validate(data)
        if buyer:
            criteria.buyer = Buyer.model_validate(buyer)
        return criteria

    @property
    def display_name(self) -> str:
        return self.name or self.id
