"""
Excepciones del sistema.

Cada etapa del pipeline levanta su propio tipo para que el orquestador
decida si el fallo es local (criterio / batch) o fatal para la pasada.
"""

from typing import Optional


class FaroError(Exception):
    """Excepción base de faro."""


class ConfigurationError(FaroError):
    """Faltan credenciales o configuración requerida. Fatal para la pasada."""


class ValidationError(FaroError):
    """Un campo del criterio no se puede sanitizar de forma segura."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RetrievalError(FaroError):
    """
    Fallo consultando el índice.

    El mensaje nunca incluye la API key ni el filtro completo.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QualificationError(FaroError):
    """Fallo llamando al modelo o parseando su respuesta."""


class PersistenceError(FaroError):
    """Fallo leyendo o escribiendo en el store."""


class CheckpointError(PersistenceError):
    """Fallo avanzando el checkpoint `last_run_at`."""
