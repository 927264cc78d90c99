"""
Backend — Acceso al Core Backend de la inmobiliaria.

`create_backend(settings)` decide UNA vez qué implementación usar
(live o simulada) a partir de la configuración.
"""

import logging

from backend.base import BackendError, BackendGateway
from backend.live import LiveBackend
from backend.simulated import SimulatedBackend

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "development-key-temp-mock"

__all__ = [
    "BackendError",
    "BackendGateway",
    "LiveBackend",
    "SimulatedBackend",
    "create_backend",
    "resolve_backend_mode",
]


def resolve_backend_mode(settings) -> str:
    """Devuelve 'live' o 'mock' según BACKEND_MODE y las credenciales."""
    mode = settings.BACKEND_MODE
    if mode in ("live", "mock"):
        return mode

    # auto: sin URL o sin API key (o con la key de desarrollo) → mock
    if (
        not settings.CORE_BACKEND_URL
        or not settings.CORE_BACKEND_API_KEY
        or settings.CORE_BACKEND_API_KEY == PLACEHOLDER_API_KEY
    ):
        return "mock"
    return "live"


def create_backend(settings) -> BackendGateway:
    """Construye el gateway configurado."""
    mode = resolve_backend_mode(settings)
    if mode == "live":
        if not settings.CORE_BACKEND_URL or not settings.CORE_BACKEND_API_KEY:
            raise ValueError(
                "BACKEND_MODE=live requiere CORE_BACKEND_URL y CORE_BACKEND_API_KEY"
            )
        return LiveBackend(
            base_url=settings.CORE_BACKEND_URL,
            api_key=settings.CORE_BACKEND_API_KEY,
            timeout=settings.CORE_BACKEND_TIMEOUT,
        )

    logger.info("Core Backend en modo simulado")
    return SimulatedBackend()
