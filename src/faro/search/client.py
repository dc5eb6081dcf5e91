"""
Cliente de Typesense.

Ejecuta multi_search contra el índice de inventario. Nunca loguea la API
key ni el filtro completo: los errores solo llevan status y un mensaje corto.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import aiohttp
import structlog

from faro.config import get_settings
from faro.exceptions import ConfigurationError, RetrievalError
from faro.models import CandidateListing
from faro.search.query_builder import SearchQuery

logger = structlog.get_logger()


@dataclass
class SearchResult:
    """Resultado de una búsqueda: hits de la página y total encontrado."""

    hits: list[CandidateListing] = field(default_factory=list)
    found: int = 0

    @classmethod
    def from_response(cls, data: dict) -> "SearchResult":
        result = (data.get("results") or [{}])[0] or {}
        if "error" in result:
            raise RetrievalError(
                "Typesense devolvió un error para la búsqueda",
                status_code=result.get("code"),
            )
        hits = [
            CandidateListing.from_hit(hit)
            for hit in result.get("hits") or []
            if (hit.get("document") or {}).get("id") is not None
        ]
        return cls(hits=hits, found=int(result.get("found") or 0))


class TypesenseClient:
    """
    Cliente async de multi_search.

    Uso:
        async with TypesenseClient() as client:
            result = await client.search(query)
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        settings = get_settings()
        self.api_url = (api_url or settings.typesense_api_url).rstrip("/")
        self._api_key = api_key or settings.typesense_scoped_key
        self._timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or settings.typesense_timeout_seconds
        )
        self._session = session
        self._owns_session = session is None

        if not self._api_key:
            raise ConfigurationError("TYPESENSE_SCOPED_KEY no configurada")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def multi_search(self, body: dict) -> dict:
        """
        Ejecuta un multi_search crudo.

        Raises:
            RetrievalError: Si la respuesta no es 2xx o falla el transporte
        """
        url = f"{self.api_url}/multi_search"
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-TYPESENSE-API-KEY": self._api_key,
        }

        try:
            async with self._get_session().post(url, json=body, headers=headers) as response:
                if response.status >= 400:
                    logger.error(
                        "Typesense respondió con error",
                        status=response.status,
                        reason=response.reason,
                    )
                    raise RetrievalError(
                        f"Typesense request failed: {response.status} {response.reason}",
                        status_code=response.status,
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error("Error de transporte con Typesense", error_type=type(e).__name__)
            raise RetrievalError(
                f"Typesense transport error: {type(e).__name__}"
            ) from e
        except asyncio.TimeoutError as e:
            logger.error("Timeout consultando Typesense")
            raise RetrievalError("Typesense request timed out") from e
        except ValueError as e:
            logger.error("Respuesta de Typesense no es JSON válido")
            raise RetrievalError("Typesense returned an invalid JSON body") from e

    async def search(self, query: SearchQuery) -> SearchResult:
        """Ejecuta una búsqueda simple y normaliza los hits."""
        data = await self.multi_search({"searches": [query.to_dict()]})
        result = SearchResult.from_response(data)
        logger.debug("Búsqueda ejecutada", hits=len(result.hits), found=result.found)
        return result
