"""
Eventos de progreso de una pasada.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventStep(str, Enum):
    """Pasos emitidos por el orquestador, en el orden de la pasada."""

    SEARCHING = "searching"
    FOUND = "found"
    DEDUPED = "deduped"
    QUALIFYING_BATCH = "qualifying_batch"
    QUALIFIED = "qualified"
    SAVING = "saving"
    SAVED = "saved"
    COMPLETE = "complete"
    ERROR = "error"

    # Solo en modo debug
    DEBUG_QUERY = "debug_query"
    DEBUG_PROMPT_SOURCE = "debug_prompt_source"
    DEBUG_PROMPT = "debug_prompt"
    DEBUG_RESPONSE = "debug_response"
    DEBUG_SUMMARY = "debug_qualification_summary"


@dataclass
class ProgressEvent:
    """Un evento del stream: el paso y sus datos."""

    step: EventStep
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_debug(self) -> bool:
        return self.step.value.startswith("debug_")

    def to_dict(self) -> dict[str, Any]:
        return {"step": self.step.value, **self.data}

    def to_sse(self) -> str:
        """Serializa como mensaje Server-Sent Events."""
        payload = json.dumps(self.to_dict(), ensure_ascii=False, default=str)
        return f"data: {payload}\n\n"
