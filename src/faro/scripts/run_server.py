"""
Script para levantar la API HTTP de búsqueda.

Uso:
    python -m faro.scripts.run_server
"""

import os
import sys

import structlog
from aiohttp import web

from faro.api import create_app
from faro.config import get_settings
from faro.logging_config import configure_logging

logger = structlog.get_logger()


def main():
    """Entry point del servidor."""
    configure_logging()
    settings = get_settings()

    host = settings.server_host
    port = int(os.getenv("PORT", settings.server_port))

    logger.info("Iniciando servidor de búsqueda", host=host, port=port)

    try:
        web.run_app(create_app(), host=host, port=port, print=None)
    except KeyboardInterrupt:
        logger.info("Servidor detenido por usuario")
        sys.exit(0)
    except Exception as e:
        logger.error("Error fatal en servidor", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
