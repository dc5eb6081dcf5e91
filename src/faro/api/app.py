"""
API HTTP (aiohttp).

Endpoints:
- POST /search          pasada completa, devuelve el agregado en JSON
- POST /search/stream   misma pasada con progreso por Server-Sent Events
- GET  /cron            pasada diaria sobre todos los criterios activos (con secreto)
- GET  /health
"""

import asyncio
import contextlib
import json
from typing import Callable, Optional

import pydantic
import structlog
from aiohttp import web

from faro.config import get_settings
from faro.pipeline import EventStep, ProgressEvent, SearchOrchestrator, SearchRequest

logger = structlog.get_logger()

KEEPALIVE = ": keepalive\n\n"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

ORCHESTRATOR_FACTORY = web.AppKey("orchestrator_factory", Callable[[], SearchOrchestrator])
HEARTBEAT_INTERVAL = web.AppKey("heartbeat_interval", float)
PASS_LOCK = web.AppKey("pass_lock", asyncio.Lock)
CRON_SECRET = web.AppKey("cron_secret", str)


async def _parse_request(request: web.Request) -> SearchRequest:
    """Lee y valida el body. Un body inválido responde 400."""
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Invalid JSON body"}), content_type="application/json"
        )
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Body must be a JSON object"}), content_type="application/json"
        )

    try:
        search_request = SearchRequest.model_validate(body)
    except pydantic.ValidationError as e:
        message = "; ".join(err["msg"] for err in e.errors())
        logger.warning("Request de búsqueda inválido", error=message)
        raise web.HTTPBadRequest(
            text=json.dumps({"error": message}),
            content_type="application/json",
        )

    # La pasada sobre todos los criterios solo se dispara por /cron
    if search_request.all_active:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "all_active is only available through /cron"}),
            content_type="application/json",
        )
    return search_request


def _busy_response() -> web.Response:
    return web.json_response({"error": "search_in_progress"}, status=409)


async def health(_: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def search(request: web.Request) -> web.Response:
    """Ejecuta la pasada y devuelve siempre el agregado."""
    search_request = await _parse_request(request)

    lock = request.app[PASS_LOCK]
    if lock.locked():
        return _busy_response()

    async with lock:
        orchestrator = request.app[ORCHESTRATOR_FACTORY]()
        result = await orchestrator.run(search_request)

    status = 500 if result.fatal_error else 200
    return web.json_response(result.to_dict(), status=status)


async def daily_search(request: web.Request) -> web.Response:
    """
    Pasada diaria sobre todos los criterios activos.

    Requiere el secreto en el header `X-Cron-Secret` o en `?secret=`.
    """
    secret = request.headers.get("X-Cron-Secret") or request.query.get("secret")
    expected = request.app[CRON_SECRET]
    if not expected or secret != expected:
        logger.warning("Disparo de pasada diaria no autorizado")
        return web.json_response({"error": "Unauthorized"}, status=401)

    lock = request.app[PASS_LOCK]
    if lock.locked():
        return _busy_response()

    async with lock:
        logger.info("Pasada diaria disparada")
        orchestrator = request.app[ORCHESTRATOR_FACTORY]()
        result = await orchestrator.run(SearchRequest(all_active=True))

    status = 500 if result.fatal_error else 200
    return web.json_response(result.to_dict(), status=status)


async def _heartbeat(send, interval: float, stop: asyncio.Event) -> None:
    while not stop.is_set():
        await asyncio.sleep(interval)
        await send(KEEPALIVE)


async def search_stream(request: web.Request) -> web.StreamResponse:
    """
    Ejecuta la pasada emitiendo eventos SSE.

    Si el cliente se desconecta se activa la cancelación: la pasada termina
    el paso en curso, avanza los checkpoints y no emite `complete`.
    """
    search_request = await _parse_request(request)

    lock = request.app[PASS_LOCK]
    if lock.locked():
        return _busy_response()

    async with lock:
        response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        await response.prepare(request)

        cancel_event = asyncio.Event()
        write_lock = asyncio.Lock()

        async def send(chunk: str) -> None:
            if cancel_event.is_set():
                return
            async with write_lock:
                try:
                    await response.write(chunk.encode("utf-8"))
                except ConnectionResetError:
                    logger.info("Cliente desconectado, cancelando pasada")
                    cancel_event.set()

        heartbeat = asyncio.create_task(
            _heartbeat(send, request.app[HEARTBEAT_INTERVAL], cancel_event)
        )

        try:
            orchestrator = request.app[ORCHESTRATOR_FACTORY]()
            async for event in orchestrator.stream(search_request, cancel_event):
                await send(event.to_sse())
        except Exception as e:
            logger.error("Error en el stream de búsqueda", error=str(e))
            await send(ProgressEvent(EventStep.ERROR, {"message": str(e)}).to_sse())
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

        if not cancel_event.is_set():
            with contextlib.suppress(ConnectionResetError):
                await response.write_eof()

    return response


def create_app(
    orchestrator_factory: Optional[Callable[[], SearchOrchestrator]] = None,
    heartbeat_interval: Optional[float] = None,
    cron_secret: Optional[str] = None,
) -> web.Application:
    """
    Construye la aplicación.

    Args:
        orchestrator_factory: Crea un orquestador por request (default: SearchOrchestrator)
        heartbeat_interval: Segundos entre keepalives SSE (default: settings)
        cron_secret: Secreto de /cron (default: settings; sin secreto /cron responde 401)
    """
    settings = get_settings()

    app = web.Application()
    app[ORCHESTRATOR_FACTORY] = orchestrator_factory or SearchOrchestrator
    app[HEARTBEAT_INTERVAL] = heartbeat_interval or settings.heartbeat_interval_seconds
    app[PASS_LOCK] = asyncio.Lock()
    app[CRON_SECRET] = cron_secret or settings.cron_secret or ""

    app.router.add_get("/health", health)
    app.router.add_get("/cron", daily_search)
    app.router.add_post("/search", search)
    app.router.add_post("/search/stream", search_stream)
    return app
