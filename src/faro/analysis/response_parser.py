"""
Parseo de la respuesta de calificación por batch.

El modelo a veces devuelve el array envuelto en un bloque de código, dentro
de un objeto {"results": [...]}, o truncado por límite de tokens. Cuando el
JSON completo no parsea se rescatan los objetos sueltos que sí lo hacen.
"""

import json
import math
from typing import Any, Optional

import structlog

from faro.exceptions import QualificationError
from faro.models import (
    CandidateListing,
    QualificationResult,
)
from faro.models.qualification import MISSING_FROM_BATCH

logger = structlog.get_logger()

_DECODER = json.JSONDecoder()


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1].strip()
            if text.lower().startswith("json"):
                text = text[4:].strip()
    return text


def _unwrap(data: Any) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("results", "listings", "evaluations"):
            if isinstance(data.get(key), list):
                return data[key]
        if "index" in data:
            return [data]
    raise QualificationError("La respuesta no contiene un array de resultados")


def _salvage_objects(text: str) -> list[dict]:
    """
    Decodifica cada objeto JSON completo que empiece en una llave.

    Se conservan los que tienen "index"; un objeto truncado no decodifica
    y se saltea.
    """
    objects = []
    position = text.find("{")
    while position != -1:
        try:
            value, end = _DECODER.raw_decode(text, position)
        except json.JSONDecodeError:
            position = text.find("{", position + 1)
            continue
        if isinstance(value, dict) and "index" in value:
            objects.append(value)
            position = text.find("{", end)
        else:
            position = text.find("{", position + 1)
    return objects


def parse_batch_response(text: str) -> list[dict]:
    """
    Extrae la lista de objetos de resultado de la respuesta cruda.

    Raises:
        QualificationError: Si no se puede rescatar ningún objeto
    """
    cleaned = _strip_code_fence(text or "")
    if not cleaned:
        raise QualificationError("Respuesta vacía del modelo")

    try:
        items = _unwrap(json.loads(cleaned))
        return [item for item in items if isinstance(item, dict)]
    except (json.JSONDecodeError, QualificationError):
        pass

    # Array truncado o texto extra alrededor del JSON
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if 0 <= start < end:
        try:
            items = _unwrap(json.loads(cleaned[start:end + 1]))
            return [item for item in items if isinstance(item, dict)]
        except (json.JSONDecodeError, QualificationError):
            pass

    salvaged = _salvage_objects(cleaned)
    if not salvaged:
        raise QualificationError("No se pudo parsear la respuesta del modelo")

    logger.warning("Respuesta parseada parcialmente", rescued=len(salvaged))
    return salvaged


def _coerce_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _coerce_score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return float(value)


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


def reconcile(
    listings: list[CandidateListing],
    items: list[dict],
    threshold: int,
) -> list[QualificationResult]:
    """
    Alinea los objetos parseados con los listings del batch.

    Devuelve exactamente un resultado por listing, en el orden de entrada.
    Índices fuera de rango o scores inválidos se ignoran; el primer objeto
    válido por índice gana. Los listings sin objeto reciben un centinela.
    """
    by_position: dict[int, QualificationResult] = {}

    for item in items:
        index = _coerce_index(item.get("index"))
        if index is None or not 1 <= index <= len(listings):
            logger.debug("Índice fuera de rango ignorado", index=item.get("index"))
            continue
        if index in by_position:
            continue

        score = _coerce_score(item.get("score"))
        if score is None:
            logger.debug("Score inválido ignorado", index=index)
            continue

        listing = listings[index - 1]
        by_position[index] = QualificationResult.scored(
            listing_id=listing.id,
            score=score,
            threshold=threshold,
            explanation=str(item.get("explanation") or ""),
            highlights=_string_list(item.get("highlights")),
            concerns=_string_list(item.get("concerns")),
        )

    results = []
    for position, listing in enumerate(listings, start=1):
        result = by_position.get(position)
        if result is None:
            result = QualificationResult.sentinel(listing.id, MISSING_FROM_BATCH)
        results.append(result)

    missing = len(listings) - len(by_position)
    if missing:
        logger.warning(
            "Listings ausentes en la respuesta del batch",
            missing=missing,
            batch_size=len(listings),
        )
    return results
