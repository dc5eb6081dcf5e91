"""
Constructor de queries para Typesense.

SEGURIDAD: todo valor que termina en `filter_by` pasa por un sanitizador
de lista blanca. Nunca se aceptan fragmentos de filtro crudos.

Nota: `_eval` en `sort_by` es la sintaxis de expresiones de orden de
Typesense (se evalúa del lado del servidor), no un eval de Python.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from faro.config import DEFAULT_MAX_PRICE_AED
from faro.exceptions import ValidationError
from faro.models import SearchCriteria
from faro.search.time_window import TimeWindow

logger = structlog.get_logger()

_TOKEN_DISALLOWED = re.compile(r"[^a-zA-Z0-9_:\-]")
_ALNUM_DISALLOWED = re.compile(r"[^a-zA-Z0-9]")

COLLECTION = "unit"

QUERY_BY = ",".join(
    [
        "data.message_body_clean",
        "data.kind",
        "data.property_type",
        "data.transaction_type",
        "data.location_raw",
        "data.community",
        "data.developer",
        "data.other_details",
    ]
)
QUERY_BY_WEIGHTS = "5,5,4,4,3,3,2,1"

HIGHLIGHT_FIELDS = ",".join(
    [
        "data.location_raw",
        "data.community",
        "data.developer",
        "data.message_body_clean",
        "data.other_details",
    ]
)

FACET_BY = ",".join(
    [
        "data.kind",
        "data.property_type",
        "data.transaction_type",
        "data.community",
        "data.developer",
        "data.bedrooms",
        "data.bathrooms",
        "data.furnishing",
        "data.is_direct",
        "data.is_urgent",
        "data.is_off_plan",
        "data.mortgage_or_cash",
        "data.price_aed",
        "data.area_sqft",
    ]
)

# Grupo de timestamp, luego prioridad de fuente (app/xml sobre chats), luego timestamp
MAIN_SORT_BY = (
    "source_timestamp_group:desc,"
    "_eval([ (source:=[app,xml]):2, (source:=[whatsapp,telegram]):1 ]):desc,"
    "source_timestamp:desc"
)

# Flags booleanos del criterio -> campo en el índice
BOOLEAN_FIELDS = {
    "is_off_plan": "data.is_off_plan",
    "is_distressed_deal": "data.is_distressed_deal",
    "is_direct": "data.is_direct",
    "has_maid_bedroom": "data.has_maid_bedroom",
    "is_agent_covered": "data.is_agent_covered",
    "is_commission_split": "data.is_commission_split",
    "is_mortgage_approved": "data.is_mortgage_approved",
    "is_community_agnostic": "data.is_community_agnostic",
}


# =============================================================================
# SANITIZADORES - obligatorios para cualquier valor insertado en filter_by
# =============================================================================


def sanitize_token(value: str, field_name: Optional[str] = None) -> str:
    """
    Sanitiza un token: solo deja a-zA-Z0-9_:-

    Raises:
        ValidationError: Si no es string o queda vacío
    """
    if not isinstance(value, str):
        raise ValidationError("El token debe ser un string", field=field_name)
    sanitized = _TOKEN_DISALLOWED.sub("", value)
    if not sanitized:
        raise ValidationError("El token quedó vacío tras sanitizar", field=field_name)
    return sanitized


def sanitize_enum_list(values: Iterable[str], field_name: Optional[str] = None) -> list[str]:
    """
    Sanitiza una lista de valores, descartando los que quedan vacíos.

    Raises:
        ValidationError: Si la lista tenía elementos y ninguno sobrevivió
    """
    values = list(values)
    sanitized = []
    for value in values:
        try:
            sanitized.append(sanitize_token(value, field_name))
        except ValidationError:
            logger.warning("Valor descartado al sanitizar", field=field_name)

    if values and not sanitized:
        raise ValidationError(
            "Todos los valores de la lista son inválidos", field=field_name
        )
    return sanitized


def sanitize_number(value: float, field_name: Optional[str] = None) -> float:
    """
    Asegura que el valor sea un número finito.

    Raises:
        ValidationError: Si es bool, no numérico, NaN o infinito
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Se esperaba un número", field=field_name)
    if not math.isfinite(value):
        raise ValidationError("El número debe ser finito", field=field_name)
    return value


def sanitize_psl_code(code: str) -> str:
    """Los códigos PSL (ej: PSLGKY6W3Y) son solo alfanuméricos."""
    if not isinstance(code, str):
        raise ValidationError("El código PSL debe ser un string", field="psl_codes")
    sanitized = _ALNUM_DISALLOWED.sub("", code)
    if not sanitized:
        raise ValidationError("El código PSL quedó vacío", field="psl_codes")
    return sanitized


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_typesense_list(values: list) -> str:
    """Formatea una lista ya sanitizada como [a,b,c]."""
    if not values:
        raise ValidationError("La lista no puede estar vacía")
    return "[" + ",".join(
        _format_number(v) if isinstance(v, (int, float)) else v for v in values
    ) + "]"


# =============================================================================
# FILTER BUILDER
# =============================================================================


def _list_clause(field_path: str, values: Optional[list[str]], field_name: str) -> Optional[str]:
    if not values:
        return None
    sanitized = sanitize_enum_list(values, field_name)
    return f"{field_path}:={to_typesense_list(sanitized)}"


def _numeric_list_clause(field_path: str, values: Optional[list], field_name: str) -> Optional[str]:
    if not values:
        return None
    sanitized = [sanitize_number(v, field_name) for v in values]
    return f"{field_path}:={to_typesense_list(sanitized)}"


def _location_clause(psl_codes: list[str]) -> Optional[str]:
    clauses = []
    for code in psl_codes:
        try:
            sanitized = sanitize_psl_code(code)
        except ValidationError:
            logger.warning("Código PSL inválido descartado")
            continue
        clauses.append(f"location_data.{{address_psl_code:*{sanitized}*}}")

    if not clauses:
        return None
    return "(" + " || ".join(clauses) + ")"


def _keyword_clause(keywords: Optional[str]) -> Optional[str]:
    if not keywords or keywords.strip() == "*":
        return None
    keyword = _ALNUM_DISALLOWED.sub("", keywords)
    if not keyword:
        return None
    return f"(data.message_body_clean:*{keyword}*)"


def build_filter_by(
    criteria: SearchCriteria,
    user_id: str,
    window: Optional[TimeWindow] = None,
    require_agent_contact: bool = True,
) -> str:
    """
    Construye el `filter_by` (cláusulas unidas por AND) para un criterio.

    Siempre inyecta: excluir archivados, excluir listings del propio usuario,
    y el techo de precio por defecto cuando no hay cota superior explícita.

    Raises:
        ValidationError: Si un valor requerido no se puede sanitizar
    """
    clauses: list[str] = []

    kind = criteria.kind or "listing"
    clauses.append(f"data.kind:={sanitize_token(kind, 'kind')}")

    transaction_type = criteria.transaction_type or "sale"
    clauses.append(
        f"data.transaction_type:={sanitize_token(transaction_type, 'transaction_type')}"
    )

    clauses.append("archived:=false")

    if require_agent_contact:
        clauses.append("(has_agent_phone:=true || has_agent_username:=true)")

    # Precio
    if criteria.max_price_aed is not None:
        max_price = sanitize_number(criteria.max_price_aed, "max_price_aed")
        clauses.append(f"data.price_aed:<={_format_number(max_price)}")
    elif kind == "listing":
        clauses.append(f"data.price_aed:<={DEFAULT_MAX_PRICE_AED}")
    if criteria.min_price_aed is not None:
        min_price = sanitize_number(criteria.min_price_aed, "min_price_aed")
        clauses.append(f"data.price_aed:>={_format_number(min_price)}")

    # Superficie
    if criteria.max_area_sqft is not None:
        max_area = sanitize_number(criteria.max_area_sqft, "max_area_sqft")
        clauses.append(f"data.area_sqft:<={_format_number(max_area)}")
    if criteria.min_area_sqft is not None:
        min_area = sanitize_number(criteria.min_area_sqft, "min_area_sqft")
        clauses.append(f"data.area_sqft:>={_format_number(min_area)}")

    optional_clauses = [
        _list_clause("data.property_type", criteria.property_types, "property_types"),
        # Las comunidades solo se usan si no hay códigos PSL: el campo suele venir vacío
        None if criteria.psl_codes else _list_clause(
            "data.community", criteria.communities, "communities"
        ),
        _list_clause("data.developer", criteria.developers, "developers"),
        _location_clause(criteria.psl_codes) if criteria.psl_codes else None,
        _numeric_list_clause("data.bedrooms", criteria.bedrooms, "bedrooms"),
        _numeric_list_clause("data.bathrooms", criteria.bathrooms, "bathrooms"),
        _list_clause("data.furnishing", criteria.furnishing, "furnishing"),
        _list_clause("data.mortgage_or_cash", criteria.mortgage_or_cash, "mortgage_or_cash"),
    ]
    clauses.extend(c for c in optional_clauses if c)

    for attr, field_path in BOOLEAN_FIELDS.items():
        value = getattr(criteria, attr)
        if value is not None:
            clauses.append(f"{field_path}:={'true' if value else 'false'}")

    keyword = _keyword_clause(criteria.keywords)
    if keyword:
        clauses.append(keyword)

    if window is not None:
        if window.date_from is not None:
            date_from = sanitize_number(window.date_from, "date_from")
            clauses.append(f"source_timestamp:>={_format_number(date_from)}")
        if window.date_to is not None:
            date_to = sanitize_number(window.date_to, "date_to")
            clauses.append(f"source_timestamp:<={_format_number(date_to)}")

    if criteria.is_urgent is True:
        clauses.append("data.is_urgent:=true")
    elif criteria.is_urgent is False:
        clauses.append("data.is_urgent:=false")

    clauses.append(f"user_id:!={sanitize_token(user_id, 'user_id')}")

    return " && ".join(clauses)


# =============================================================================
# SEARCH BUILDERS
# =============================================================================


@dataclass
class SearchQuery:
    """Una búsqueda dentro de un multi_search."""

    filter_by: str
    sort_by: str
    per_page: int
    page: int = 1
    q: str = "*"
    collection: str = COLLECTION
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        # Las keywords van en filter_by, por eso q es siempre '*'
        body = {
            "collection": self.collection,
            "q": self.q,
            "query_by": QUERY_BY,
            "query_by_weights": QUERY_BY_WEIGHTS,
            "highlight_full_fields": HIGHLIGHT_FIELDS,
            "facet_by": FACET_BY,
            "num_typos": 2,
            "typo_tokens_threshold": 1,
            "drop_tokens_threshold": 1,
            "enable_overrides": True,
            "snippet_threshold": 30,
            "limit_hits": 1000,
            "page": self.page,
            "per_page": self.per_page,
            "sort_by": self.sort_by,
            "filter_by": self.filter_by,
        }
        body.update(self.extra)
        return body


def build_search(
    criteria: SearchCriteria,
    user_id: str,
    window: Optional[TimeWindow] = None,
    per_page: int = 50,
    page: int = 1,
) -> SearchQuery:
    """Búsqueda principal: resultados paginados con orden por fuente y fecha."""
    return SearchQuery(
        filter_by=build_filter_by(criteria, user_id, window),
        sort_by=MAIN_SORT_BY,
        per_page=per_page,
        page=page,
    )
