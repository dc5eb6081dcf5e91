"""
Módulo de base de datos.

Provee acceso a Supabase y repositorios de criterios, matches y settings.
"""

from faro.database.supabase_client import get_supabase_client, SupabaseClient
from faro.database.repositories import (
    CriteriaRepository,
    MatchRepository,
    SettingsRepository,
)

__all__ = [
    "get_supabase_client",
    "SupabaseClient",
    "CriteriaRepository",
    "MatchRepository",
    "SettingsRepository",
]
