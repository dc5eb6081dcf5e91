"""
Repositorios para operaciones en Supabase.

Cada repositorio maneja una tabla específica. Las lecturas se reintentan
con tenacity; las escrituras no, y sus fallos se levantan como
PersistenceError para que el orquestador los registre como advertencias.
"""

from datetime import datetime, timezone
from typing import Optional

import pydantic
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from faro.database.supabase_client import get_supabase_client, SupabaseClient
from faro.exceptions import CheckpointError, PersistenceError
from faro.models import MatchRecord, SearchCriteria

logger = structlog.get_logger()


def _format_timestamp(value: datetime) -> str:
    """ISO 8601 en UTC con sufijo Z (sin '+', seguro dentro de filtros `or`)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or get_supabase_client()

    @property
    def client(self) -> SupabaseClient:
        return self._client


class CriteriaRepository(BaseRepository):
    """Repositorio de criterios de búsqueda (buyer_criteria)."""

    TABLE = "buyer_criteria"
    SELECT = "*, buyer:buyers(*)"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _fetch_active(
        self,
        criteria_id: Optional[str] = None,
        buyer_id: Optional[str] = None,
    ) -> list[dict]:
        query = self.client.table(self.TABLE).select(self.SELECT).eq("is_active", True)
        if criteria_id:
            query = query.eq("id", criteria_id)
        elif buyer_id:
            query = query.eq("buyer_id", buyer_id)
        return query.execute().data or []

    def get_active(
        self,
        criteria_id: Optional[str] = None,
        buyer_id: Optional[str] = None,
    ) -> tuple[list[SearchCriteria], list[str]]:
        """
        Obtiene los criterios activos de un alcance, con el comprador embebido.

        Sin `criteria_id` ni `buyer_id` devuelve todos los criterios activos
        (pasada diaria). Una fila que no valida se omite y se reporta; no
        impide procesar las demás.

        Args:
            criteria_id: Un criterio puntual
            buyer_id: Todos los criterios activos del comprador

        Returns:
            (criterios válidos en el orden del store, advertencias por filas omitidas)

        Raises:
            PersistenceError: Si no se puede leer la lista tras los reintentos
        """
        try:
            rows = self._fetch_active(criteria_id=criteria_id, buyer_id=buyer_id)
        except Exception as e:
            logger.error(
                "Error leyendo criterios",
                criteria_id=criteria_id,
                buyer_id=buyer_id,
                error=str(e),
            )
            raise PersistenceError(f"Failed to fetch criteria: {e}") from e

        criteria: list[SearchCriteria] = []
        skipped: list[str] = []
        for row in rows:
            try:
                criteria.append(SearchCriteria.from_db_row(row))
            except pydantic.ValidationError as e:
                fields = ", ".join(
                    ".".join(str(part) for part in err["loc"]) for err in e.errors()
                )
                name = row.get("name") or row.get("id") or "unknown"
                logger.warning(
                    "Criterio con datos inválidos, se omite",
                    criteria_id=row.get("id"),
                    fields=fields,
                )
                skipped.append(f"Invalid criteria {name}: invalid value for {fields}")

        logger.info(
            "Criterios activos obtenidos",
            count=len(criteria),
            skipped=len(skipped),
            criteria_id=criteria_id,
            buyer_id=buyer_id,
        )
        return criteria, skipped

    def advance_checkpoints(self, criteria_ids: list[str], run_started_at: datetime) -> int:
        """
        Avanza `last_run_at` de varios criterios en un único update.

        Solo mueve el checkpoint hacia adelante: las filas con un valor
        posterior a `run_started_at` no se tocan.

        Returns:
            Cantidad de filas actualizadas

        Raises:
            CheckpointError: Si el update falla
        """
        if not criteria_ids:
            return 0

        timestamp = _format_timestamp(run_started_at)
        try:
            response = (
                self.client.table(self.TABLE)
                .update({"last_run_at": timestamp})
                .in_("id", list(criteria_ids))
                .or_(f"last_run_at.is.null,last_run_at.lt.{timestamp}")
                .execute()
            )
        except Exception as e:
            logger.error(
                "Error avanzando checkpoints",
                count=len(criteria_ids),
                error=str(e),
            )
            raise CheckpointError(f"update of buyer_criteria failed: {e}") from e

        updated = len(response.data or [])
        logger.info(
            "Checkpoints avanzados",
            requested=len(criteria_ids),
            updated=updated,
            last_run_at=timestamp,
        )
        return updated


class MatchRepository(BaseRepository):
    """Repositorio de matches criterio-listing."""

    TABLE = "matches"
    CONFLICT_KEY = "criteria_id,listing_id"

    def upsert_matches(self, records: list[MatchRecord]) -> int:
        """
        Inserta o actualiza matches por (criteria_id, listing_id).

        Un match existente recibe el score y las notas nuevas. El flag
        `is_notified` se reinicia para que el notificador lo vuelva a ver.

        Returns:
            Cantidad de filas guardadas

        Raises:
            PersistenceError: Si el upsert falla
        """
        if not records:
            return 0

        rows = [record.to_db_dict() for record in records]
        try:
            response = (
                self.client.table(self.TABLE)
                .upsert(rows, on_conflict=self.CONFLICT_KEY, ignore_duplicates=False)
                .execute()
            )
        except Exception as e:
            logger.error(
                "Error guardando matches",
                criteria_id=records[0].criteria_id,
                count=len(rows),
                error=str(e),
            )
            raise PersistenceError(f"upsert into matches failed: {e}") from e

        saved = len(response.data) if response.data is not None else len(rows)
        logger.info("Matches guardados", criteria_id=records[0].criteria_id, saved=saved)
        return saved


class SettingsRepository(BaseRepository):
    """Repositorio de configuración global de la app (app_settings)."""

    TABLE = "app_settings"
    DEFAULT_PROMPT_KEY = "default_system_prompt"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _get_value(self, key: str) -> Optional[dict]:
        response = (
            self.client.table(self.TABLE)
            .select("value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        return response.data[0].get("value") if response.data else None

    def get_default_prompt(self) -> Optional[str]:
        """
        Template de prompt por defecto configurado en la app.

        Un fallo de lectura no es fatal: se loguea y se usa el template
        incorporado.
        """
        try:
            value = self._get_value(self.DEFAULT_PROMPT_KEY)
        except Exception as e:
            logger.warning("No se pudo leer el prompt por defecto", error=str(e))
            return None

        if isinstance(value, dict):
            template = value.get("template")
            return template if isinstance(template, str) and template.strip() else None
        return None
