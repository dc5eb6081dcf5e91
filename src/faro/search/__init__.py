"""
Módulo de búsqueda.

Traduce criterios a queries seguras de Typesense, resuelve la ventana
temporal y ejecuta la búsqueda.
"""

from faro.search.time_window import (
    TimeRange,
    TimeWindow,
    resolve_time_window,
    DEFAULT_LOOKBACK_DAYS,
)
from faro.search.query_builder import (
    SearchQuery,
    build_filter_by,
    build_search,
    sanitize_token,
    sanitize_enum_list,
    sanitize_number,
    sanitize_psl_code,
)
from faro.search.client import TypesenseClient, SearchResult

__all__ = [
    # Ventana temporal
    "TimeRange",
    "TimeWindow",
    "resolve_time_window",
    "DEFAULT_LOOKBACK_DAYS",
    # Queries
    "SearchQuery",
    "build_filter_by",
    "build_search",
    "sanitize_token",
    "sanitize_enum_list",
    "sanitize_number",
    "sanitize_psl_code",
    # Cliente
    "TypesenseClient",
    "SearchResult",
]
