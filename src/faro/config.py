"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py -> faro/ -> src/ -> raíz del proyecto (donde está el .env)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Configuración principal de la aplicación."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase
    supabase_url: Optional[str] = Field(None, description="URL del proyecto Supabase")
    supabase_key: Optional[str] = Field(None, description="Anon key de Supabase")
    supabase_service_key: Optional[str] = Field(
        None, description="Service role key para operaciones admin"
    )

    # Typesense
    typesense_api_url: str = Field(
        "https://s.getrematched.com", description="URL base del cluster Typesense"
    )
    typesense_scoped_key: Optional[str] = Field(
        None, description="Scoped search key (con filtros embebidos)"
    )
    typesense_timeout_seconds: float = Field(
        30.0, gt=0, description="Timeout total de la request de búsqueda"
    )
    app_user_id: str = Field(
        "user_default", description="Usuario dueño de la app, se excluyen sus propios listings"
    )

    # LLM Provider
    llm_provider: str = Field(
        "gemini",
        description="Proveedor de LLM a usar: 'gemini' o 'groq'"
    )

    # Gemini
    gemini_api_key: Optional[str] = Field(None, description="API key de Google Gemini")
    gemini_model: str = Field("gemini-2.5-flash", description="Modelo de Gemini a usar")

    # Groq
    groq_api_key: Optional[str] = Field(None, description="API key de Groq")
    groq_model: str = Field(
        "llama-3.3-70b-versatile",
        description="Modelo de Groq a usar (llama-3.1-8b-instant, llama-3.3-70b-versatile)"
    )

    # Calificación
    qualification_threshold: int = Field(
        60, ge=0, le=100, description="Score mínimo (inclusive) para considerar match"
    )
    qualification_batch_size: int = Field(
        25, ge=1, le=50, description="Listings por request al modelo"
    )
    qualification_batch_delay: float = Field(
        0.5, ge=0, description="Pausa entre batches consecutivos (segundos)"
    )
    qualification_max_tokens: int = Field(
        8192, description="Máximo de tokens de salida por batch"
    )

    # Búsqueda
    search_per_page: int = Field(
        100, ge=1, le=250, description="Resultados por criterio"
    )
    default_lookback_days: int = Field(
        7, ge=1, description="Ventana por defecto cuando el criterio nunca corrió"
    )

    # Servidor HTTP
    server_host: str = Field("0.0.0.0", description="Host de escucha")
    server_port: int = Field(8080, description="Puerto de escucha")
    heartbeat_interval_seconds: float = Field(
        15.0, gt=0, description="Intervalo del keepalive SSE"
    )
    cron_secret: Optional[str] = Field(
        None, description="Secreto que habilita la pasada diaria sobre todos los criterios"
    )

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()


# Constantes del sistema

# Techo de precio por defecto para listings. Typesense evalúa `<=` como
# verdadero sobre precios nulos, así que sin este techo entran listings sin precio.
DEFAULT_MAX_PRICE_AED = 200_000_000

LISTING_KINDS = ["listing", "client_request"]

TRANSACTION_TYPES = ["sale", "rent"]

PROPERTY_TYPES = [
    "apartment",
    "villa",
    "townhouse",
    "penthouse",
    "office",
    "land",
    "retail",
    "other",
]

FURNISHING_TYPES = ["furnished", "unfurnished", "semi-furnished"]
