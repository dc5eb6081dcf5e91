"""
Script para ejecutar una pasada de búsqueda desde la terminal.

Imprime los eventos de progreso a medida que ocurren y termina con el
agregado de la pasada.

Uso:
    python -m faro.scripts.run_search --buyer-id <uuid>
    python -m faro.scripts.run_search --criteria-id <uuid> --full-rescan
    python -m faro.scripts.run_search --buyer-id <uuid> --since 2025-01-01 --until 2025-02-01
    python -m faro.scripts.run_search --all-active
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import pydantic
import structlog

from faro.logging_config import configure_logging
from faro.pipeline import EventStep, SearchOrchestrator, SearchRequest

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pasada de búsqueda y calificación")

    scope = parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--criteria-id", type=str, help="Un criterio puntual")
    scope.add_argument("--buyer-id", type=str, help="Todos los criterios activos del comprador")
    scope.add_argument(
        "--all-active",
        action="store_true",
        help="Todos los criterios activos (pasada diaria)",
    )

    parser.add_argument(
        "--full-rescan",
        action="store_true",
        help="Ignorar checkpoint y ventana del criterio",
    )
    parser.add_argument("--since", type=str, default=None, help="Inicio de ventana (ISO o Unix)")
    parser.add_argument("--until", type=str, default=None, help="Fin de ventana (ISO o Unix)")
    parser.add_argument(
        "--prompt-file",
        type=Path,
        default=None,
        help="Archivo con template o notas de calificación",
    )
    parser.add_argument("--debug", action="store_true", help="Incluir prompts y respuestas crudas")
    return parser


def request_from_args(args: argparse.Namespace) -> SearchRequest:
    prompt = args.prompt_file.read_text(encoding="utf-8") if args.prompt_file else None
    return SearchRequest(
        criteria_id=args.criteria_id,
        buyer_id=args.buyer_id,
        all_active=args.all_active,
        full_rescan=args.full_rescan,
        date_from=args.since,
        date_to=args.until,
        qualification_prompt=prompt,
        debug=args.debug,
    )


async def run_search(request: SearchRequest) -> int:
    """Ejecuta la pasada imprimiendo eventos. Devuelve el exit code."""
    orchestrator = SearchOrchestrator()
    exit_code = 1

    async for event in orchestrator.stream(request):
        if event.step == EventStep.COMPLETE:
            results = event.data["results"]
            print(json.dumps(results, indent=2, ensure_ascii=False))
            exit_code = 0 if not results["errors"] else 1
        elif event.step == EventStep.ERROR:
            logger.error("Pasada abortada", message=event.data.get("message"))
            exit_code = 1
        elif event.is_debug:
            print(json.dumps(event.to_dict(), indent=2, ensure_ascii=False, default=str))
        else:
            logger.info(event.step.value, **event.data)

    return exit_code


def main():
    """Entry point del script."""
    configure_logging()
    args = build_parser().parse_args()

    try:
        request = request_from_args(args)
    except (pydantic.ValidationError, OSError) as e:
        logger.error("Parámetros inválidos", error=str(e))
        sys.exit(2)

    logger.info("Iniciando pasada de búsqueda...")

    try:
        sys.exit(asyncio.run(run_search(request)))
    except KeyboardInterrupt:
        logger.info("Búsqueda interrumpida por usuario")
        sys.exit(130)
    except Exception as e:
        logger.error("Error fatal en búsqueda", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
