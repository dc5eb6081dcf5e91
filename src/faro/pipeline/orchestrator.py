"""
Orquestador de la pasada de búsqueda.

Flujo por criterio (estrictamente secuencial):
1. Resolver la ventana temporal y traducir el criterio a query
2. Buscar candidatos en Typesense
3. Descartar los ya vistos en la pasada
4. Calificar por batch con el LLM
5. Guardar los matches (upsert por criterio + listing)

Al final (o al cancelar) se avanza el checkpoint de los criterios
procesados en un único update.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Optional

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from faro.analysis import (
    BatchQualifier,
    get_llm_provider,
    is_template,
    requirements_from_criteria,
)
from faro.config import Settings, get_settings
from faro.database import CriteriaRepository, MatchRepository, SettingsRepository
from faro.exceptions import (
    CheckpointError,
    ConfigurationError,
    PersistenceError,
    RetrievalError,
    ValidationError,
)
from faro.models import MatchRecord, SearchCriteria
from faro.pipeline.context import RunContext
from faro.pipeline.events import EventStep, ProgressEvent
from faro.search import TimeRange, TypesenseClient, build_search, resolve_time_window

logger = structlog.get_logger()


class SearchRequest(BaseModel):
    """
    Parámetros de una pasada.

    El alcance es exactamente uno: un criterio puntual, todos los criterios
    activos de un comprador, o todos los criterios activos (pasada diaria).
    Las fechas aceptan ISO 8601 o segundos Unix.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    # Se aceptan también los nombres camelCase del frontend
    criteria_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("criteria_id", "criteriaId")
    )
    buyer_id: Optional[str] = Field(None, validation_alias=AliasChoices("buyer_id", "buyerId"))
    all_active: bool = Field(False, validation_alias=AliasChoices("all_active", "allActive"))
    full_rescan: bool = Field(False, validation_alias=AliasChoices("full_rescan", "fullRescan"))
    date_from: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("date_from", "dateFrom")
    )
    date_to: Optional[datetime] = Field(None, validation_alias=AliasChoices("date_to", "dateTo"))
    qualification_prompt: Optional[str] = Field(
        None, validation_alias=AliasChoices("qualification_prompt", "qualificationPrompt")
    )
    debug: bool = Field(False, validation_alias=AliasChoices("debug", "debugMode"))

    @field_validator("criteria_id", "buyer_id", "qualification_prompt", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_scope(self) -> "SearchRequest":
        scopes = [bool(self.criteria_id), bool(self.buyer_id), self.all_active]
        if sum(scopes) != 1:
            raise ValueError(
                "Exactly one scope is required: criteria_id, buyer_id or all_active"
            )
        return self

    @property
    def custom_range(self) -> Optional[TimeRange]:
        if self.date_from is None and self.date_to is None:
            return None
        return TimeRange(date_from=self.date_from, date_to=self.date_to)


@dataclass
class SearchRunResult:
    """Agregado de la pasada. Se devuelve siempre, aun con fallos parciales."""

    total_searches: int = 0
    total_matches: int = 0
    new_matches: int = 0
    errors: list[str] = field(default_factory=list)
    criteria_results: list[dict] = field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False
    fatal_error: Optional[str] = None

    def absorb(self, context: RunContext, started: float) -> None:
        self.total_searches = len(context.criteria_stats)
        self.total_matches = context.total_matches
        self.new_matches = context.new_matches
        self.errors = list(context.errors)
        self.criteria_results = [s.to_dict() for s in context.criteria_stats]
        self.duration_ms = int((time.monotonic() - started) * 1000)

    def to_dict(self) -> dict:
        data = {
            "total_searches": self.total_searches,
            "total_matches": self.total_matches,
            "new_matches": self.new_matches,
            "errors": self.errors,
            "criteria_results": self.criteria_results,
            "duration_ms": self.duration_ms,
        }
        if self.cancelled:
            data["cancelled"] = True
        if self.fatal_error:
            data["fatal_error"] = self.fatal_error
        return data


class SearchOrchestrator:
    """
    Ejecuta pasadas de búsqueda y calificación.

    Las dependencias se pueden inyectar (tests); las que faltan se crean
    desde la configuración al iniciar la pasada.

    Uso:
        orchestrator = SearchOrchestrator()
        async for event in orchestrator.stream(SearchRequest(buyer_id=...)):
            ...
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        criteria_repo: Optional[CriteriaRepository] = None,
        match_repo: Optional[MatchRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
        search_client: Optional[TypesenseClient] = None,
        qualifier: Optional[BatchQualifier] = None,
    ):
        self.settings = settings or get_settings()
        self.criteria_repo = criteria_repo
        self.match_repo = match_repo
        self.settings_repo = settings_repo
        self.search_client = search_client
        self.qualifier = qualifier
        self._owned_client: Optional[TypesenseClient] = None

    def _ensure_dependencies(self) -> None:
        """
        Crea las dependencias faltantes.

        Raises:
            ConfigurationError: Si faltan credenciales requeridas
        """
        settings = self.settings
        if self.search_client is None:
            self._owned_client = TypesenseClient(
                api_url=settings.typesense_api_url,
                api_key=settings.typesense_scoped_key,
                timeout_seconds=settings.typesense_timeout_seconds,
            )
            self.search_client = self._owned_client
        if self.qualifier is None:
            self.qualifier = BatchQualifier(
                provider=self._build_provider(),
                threshold=settings.qualification_threshold,
                batch_size=settings.qualification_batch_size,
                batch_delay=settings.qualification_batch_delay,
                max_tokens=settings.qualification_max_tokens,
            )
        if self.criteria_repo is None:
            self.criteria_repo = CriteriaRepository()
        if self.match_repo is None:
            self.match_repo = MatchRepository(self.criteria_repo.client)
        if self.settings_repo is None:
            self.settings_repo = SettingsRepository(self.criteria_repo.client)

    def _build_provider(self):
        settings = self.settings
        name = settings.llm_provider.lower()
        if name == "groq":
            return get_llm_provider(name, settings.groq_api_key, settings.groq_model)
        return get_llm_provider(name, settings.gemini_api_key, settings.gemini_model)

    async def _close_owned(self) -> None:
        if self._owned_client is not None:
            await self._owned_client.close()
            self.search_client = None
            self._owned_client = None

    async def stream(
        self,
        request: SearchRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Ejecuta la pasada emitiendo eventos de progreso.

        Termina con `complete` (agregado) o `error` (fallo fatal). Si
        `cancel_event` se activa no se emite `complete`.
        """
        async for event in self._run_pass(request, cancel_event or asyncio.Event(), SearchRunResult()):
            yield event

    async def run(self, request: SearchRequest) -> SearchRunResult:
        """Ejecuta la pasada completa y devuelve solo el agregado."""
        result = SearchRunResult()
        async for _ in self._run_pass(request, asyncio.Event(), result):
            pass
        return result

    async def _run_pass(
        self,
        request: SearchRequest,
        cancel_event: asyncio.Event,
        result: SearchRunResult,
    ) -> AsyncIterator[ProgressEvent]:
        started = time.monotonic()
        context = RunContext()
        log = logger.bind(
            criteria_id=request.criteria_id,
            buyer_id=request.buyer_id,
            all_active=request.all_active,
        )

        try:
            self._ensure_dependencies()
        except ConfigurationError as e:
            log.error("Configuración incompleta", error=str(e))
            result.fatal_error = str(e)
            result.errors.append(str(e))
            yield ProgressEvent(EventStep.ERROR, {"message": str(e)})
            return

        try:
            try:
                criteria_list, skipped = self.criteria_repo.get_active(
                    criteria_id=request.criteria_id,
                    buyer_id=request.buyer_id,
                )
            except Exception as e:
                message = str(e)
                if not isinstance(e, PersistenceError):
                    message = f"Failed to fetch criteria: {e}"
                log.error("No se pudieron leer los criterios", error=message)
                result.fatal_error = message
                result.errors.append(message)
                yield ProgressEvent(EventStep.ERROR, {"message": message})
                return

            for warning in skipped:
                context.add_error(warning)

            default_template = None
            if not is_template(request.qualification_prompt):
                default_template = self.settings_repo.get_default_prompt()

            log.info(
                "Iniciando pasada",
                criteria=len(criteria_list),
                full_rescan=request.full_rescan,
            )

            for criteria in criteria_list:
                if cancel_event.is_set():
                    break
                try:
                    async for event in self.process_criteria(
                        criteria, context, request, default_template, cancel_event
                    ):
                        yield event
                except Exception as e:
                    log.error(
                        "Error inesperado procesando criterio",
                        criteria=criteria.display_name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    context.add_error(f"Error processing criteria {criteria.display_name}: {e}")

            self._advance_checkpoints(context)

            result.absorb(context, started)
            if cancel_event.is_set():
                result.cancelled = True
                log.info(
                    "Pasada cancelada",
                    processed=len(context.processed_criteria_ids),
                    duration_ms=result.duration_ms,
                )
                return

            log.info(
                "Pasada completada",
                searches=result.total_searches,
                matches=result.total_matches,
                saved=result.new_matches,
                errors=len(result.errors),
                duration_ms=result.duration_ms,
            )
            yield ProgressEvent(EventStep.COMPLETE, {"results": result.to_dict()})
        finally:
            await self._close_owned()

    def _advance_checkpoints(self, context: RunContext) -> None:
        if not context.processed_criteria_ids:
            return
        try:
            self.criteria_repo.advance_checkpoints(
                context.processed_criteria_ids, context.started_at
            )
        except CheckpointError as e:
            logger.warning("No se pudo avanzar el checkpoint", error=str(e))
            context.add_error(f"Failed to update last_run_at: {e}")

    def _resolve_prompt(
        self,
        criteria: SearchCriteria,
        override: Optional[str],
        default_template: Optional[str],
    ) -> tuple[Optional[str], Optional[str], str]:
        """
        Elige template y notas de calificación.

        Prioridad del template: override con placeholders > prompt del
        comprador > default de la app > default incorporado. Un override
        sin placeholders reemplaza las notas del criterio.

        Returns:
            (template, notas, fuente)
        """
        notes = None
        if override and is_template(override):
            return override, None, "override"
        if override:
            notes = override

        buyer_prompt = criteria.buyer.system_prompt if criteria.buyer else None
        if buyer_prompt and buyer_prompt.strip():
            return buyer_prompt, notes, "buyer"
        if default_template:
            return default_template, notes, "app_settings"
        return None, notes, "default"

    async def process_criteria(
        self,
        criteria: SearchCriteria,
        context: RunContext,
        request: SearchRequest,
        default_template: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Procesa un criterio y emite sus eventos.

        Los fallos locales (criterio inválido, búsqueda, guardado) se
        registran en el contexto y no cortan la pasada. El criterio queda
        marcado como procesado solo si termina: con matches guardados, sin
        hits o sin matches.
        """
        cancel_event = cancel_event or asyncio.Event()
        name = criteria.display_name
        stats = context.start_criteria(criteria.id, name)
        log = logger.bind(criteria_id=criteria.id, criteria=name)

        yield ProgressEvent(EventStep.SEARCHING, {"criteria_name": name})

        # Paso 1: Ventana y query
        try:
            window = resolve_time_window(
                criteria,
                full_rescan=request.full_rescan,
                custom_range=request.custom_range,
                now=context.started_at,
                default_lookback_days=self.settings.default_lookback_days,
            )
            query = build_search(
                criteria,
                self.settings.app_user_id,
                window,
                per_page=self.settings.search_per_page,
            )
        except ValidationError as e:
            log.warning("Criterio inválido", field=e.field, error=str(e))
            stats.error = str(e)
            context.add_error(f"Invalid criteria {name}: {e}")
            return

        if request.debug:
            yield ProgressEvent(EventStep.DEBUG_QUERY, {
                "criteria_name": name,
                "window": {
                    "date_from": window.date_from,
                    "date_to": window.date_to,
                    "source": window.source,
                },
                "query": query.to_dict(),
            })

        # Paso 2: Búsqueda
        try:
            search_result = await self.search_client.search(query)
        except RetrievalError as e:
            log.warning("Búsqueda fallida", status_code=e.status_code, error=str(e))
            stats.error = str(e)
            context.add_error(f"Search failed for {name}: {e}")
            return

        hits = search_result.hits
        stats.found = search_result.found
        stats.fetched = len(hits)

        found_data = {"criteria_name": name, "count": len(hits), "total": search_result.found}
        if request.debug:
            found_data["listings"] = [
                {"id": h.id, "data": h.data, "highlights": h.highlights} for h in hits
            ]
        yield ProgressEvent(EventStep.FOUND, found_data)

        # Paso 3: Dedup entre criterios de la pasada
        candidates = context.filter_new(hits)
        removed = len(hits) - len(candidates)
        stats.deduped = removed
        if removed:
            yield ProgressEvent(EventStep.DEDUPED, {
                "criteria_name": name,
                "removed": removed,
                "remaining": len(candidates),
            })

        if not candidates:
            log.info("Sin candidatos nuevos", found=search_result.found)
            context.mark_processed(criteria.id)
            return

        # Paso 4: Calificación por batch
        template, notes, prompt_source = self._resolve_prompt(
            criteria, request.qualification_prompt, default_template
        )
        requirements = requirements_from_criteria(criteria, notes)

        if request.debug:
            yield ProgressEvent(EventStep.DEBUG_PROMPT_SOURCE, {
                "criteria_name": name,
                "prompt_source": prompt_source,
                "prompt_length": len(template) if template else 0,
            })

        batches = self.qualifier.chunk(candidates)
        total = len(candidates)
        matches = []
        position = 0

        for number, batch in enumerate(batches, start=1):
            if cancel_event.is_set():
                log.info("Cancelado antes del batch", batch_number=number)
                return

            yield ProgressEvent(EventStep.QUALIFYING_BATCH, {
                "criteria_name": name,
                "batch_number": number,
                "total_batches": len(batches),
                "batch_start": position + 1,
                "batch_end": position + len(batch),
                "total": total,
            })

            outcome = await self.qualifier.qualify_batch(batch, requirements, template)

            # Resultados de un batch en vuelo se descartan si se canceló
            if cancel_event.is_set():
                log.info("Cancelado durante el batch", batch_number=number)
                return

            if outcome.error:
                context.add_error(
                    f"Qualification batch {number} failed for {name}: {outcome.error}"
                )

            if request.debug:
                yield ProgressEvent(EventStep.DEBUG_PROMPT, {
                    "criteria_name": name,
                    "batch_number": number,
                    "prompt": outcome.prompt,
                })
                yield ProgressEvent(EventStep.DEBUG_RESPONSE, {
                    "criteria_name": name,
                    "batch_number": number,
                    "raw_response": outcome.raw_response,
                    "error": outcome.error,
                })

            for listing, qualification in zip(batch, outcome.results):
                position += 1
                if qualification.failed:
                    stats.failed += 1
                if qualification.is_match:
                    matches.append((listing, qualification))

                qualified_data = {
                    "criteria_name": name,
                    "current": position,
                    "total": total,
                    "listing_id": listing.id,
                    "score": qualification.score,
                    "is_match": qualification.is_match,
                }
                if qualification.failed:
                    qualified_data["failed"] = True
                if request.debug:
                    qualified_data.update({
                        "explanation": qualification.explanation,
                        "highlights": qualification.highlights,
                        "concerns": qualification.concerns,
                    })
                yield ProgressEvent(EventStep.QUALIFIED, qualified_data)

            if number < len(batches) and self.qualifier.batch_delay > 0:
                await asyncio.sleep(self.qualifier.batch_delay)

        stats.qualified = len(matches)

        if request.debug:
            yield ProgressEvent(EventStep.DEBUG_SUMMARY, {
                "criteria_name": name,
                "total_processed": total,
                "matches": len(matches),
                "failed": stats.failed,
                "threshold": self.qualifier.threshold,
            })

        if not matches:
            log.info("Sin matches sobre el umbral", candidates=total)
            context.mark_processed(criteria.id)
            return

        # Paso 5: Guardado
        yield ProgressEvent(EventStep.SAVING, {"criteria_name": name, "match_count": len(matches)})

        records = [
            MatchRecord.from_qualification(criteria.id, listing, qualification)
            for listing, qualification in matches
        ]
        try:
            saved = self.match_repo.upsert_matches(records)
        except PersistenceError as e:
            stats.error = str(e)
            context.add_error(f"Failed to save matches for {name}: {e}")
            return

        stats.saved = saved
        yield ProgressEvent(EventStep.SAVED, {"criteria_name": name, "saved_count": saved})

        context.mark_processed(criteria.id)
        log.info(
            "Criterio procesado",
            found=stats.found,
            candidates=total,
            matches=stats.qualified,
            saved=saved,
        )
