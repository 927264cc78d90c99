"""
Configuración centralizada de Habitar Asistente.

Usa Pydantic BaseSettings para:
- Validar las variables de entorno al startup
- Proveer tipos seguros y defaults documentados
- Leer .env sin load_dotenv() disperso en los módulos
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# Raíz del proyecto (donde vive .env)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Configuración tipada y validada del asistente."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",  # Ignorar env vars no declaradas
    )

    # LLM / Groq
    GROQ_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TEMPERATURE: float = 0.4
    LLM_MAX_TOKENS: int = 1024

    # Core backend (live | mock | auto)
    BACKEND_MODE: Literal["live", "mock", "auto"] = "auto"
    CORE_BACKEND_URL: Optional[str] = None
    CORE_BACKEND_API_KEY: Optional[str] = None
    CORE_BACKEND_TIMEOUT: float = 10.0

    # Agente
    MAX_TOOL_ROUNDS: int = 5
    HISTORY_LIMIT: int = 10

    # WhatsApp
    WHATSAPP_TOKEN: Optional[str] = None
    WHATSAPP_PHONE_NUMBER_ID: Optional[str] = None
    WHATSAPP_VERIFY_TOKEN: str = "habitar_webhook_2026"

    # Endpoints de operador (x-api-key); sin clave quedan deshabilitados
    ADMIN_API_KEY: Optional[str] = None

    # Database
    DATABASE_PATH: str = "database/sqlite/habitar.db"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    @property
    def db_full_path(self) -> Path:
        """Ruta absoluta a la base de datos."""
        db = Path(self.DATABASE_PATH)
        if db.is_absolute():
            return db
        return PROJECT_ROOT / db


@lru_cache
def get_settings() -> Settings:
    """Singleton de configuración (cacheado)."""
    return Settings()
