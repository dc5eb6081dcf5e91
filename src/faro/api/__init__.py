"""API HTTP de búsqueda."""

from faro.api.app import create_app

__all__ = ["create_app"]
