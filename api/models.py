"""
Pydantic models para validación de requests/responses.

Define schemas tipados para todos los endpoints de la API.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# Error Response (RFC 7807 simplificado)


class ErrorResponse(BaseModel):
    """
    Modelo de error estructurado inspirado en RFC 7807.

    Se usa en todos los errores para garantizar un formato consistente
    y predecible para los consumidores de la API.
    """

    type: str = Field(
        ..., description="Categoría del error (ej: 'validation_error', 'unauthorized')"
    )
    title: str = Field(..., description="Título breve del error")
    status: int = Field(..., description="Código HTTP del error")
    detail: str = Field(..., description="Descripción legible del error")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "type": "unauthorized",
                    "title": "No autorizado",
                    "status": 401,
                    "detail": "x-api-key inválida o ausente.",
                }
            ]
        }
    }


# Mensajes entrantes


class InboundMessageRequest(BaseModel):
    """Mensaje entrante directo (integraciones y pruebas)."""

    caller_id: str = Field(
        ...,
        description="Dirección del remitente (ej: '5492804503151@s.whatsapp.net')",
        min_length=1,
    )
    text: Optional[str] = Field(default=None, max_length=4096)
    media_ref: Optional[str] = Field(
        default=None, description="Referencia al archivo adjunto, si lo hay"
    )
    content_type: str = Field(default="text", description="text, image, audio, document...")
    sender_display_name: Optional[str] = Field(default=None, max_length=120)

    @model_validator(mode="after")
    def _text_or_media(self):
        if not (self.text and self.text.strip()) and not self.media_ref:
            raise ValueError("Se requiere 'text' o 'media_ref'")
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "caller_id": "5492804503151@s.whatsapp.net",
                    "text": "Hola, ¿cuánto debo?",
                    "sender_display_name": "Juan",
                }
            ]
        }
    }


class InboundMessageResponse(BaseModel):
    """Resultado del procesamiento de un mensaje entrante."""

    caller_id: str
    replied: bool = Field(..., description="False si el bot no respondió (modo HUMAN o apagado)")
    response: Optional[str] = Field(None, description="Texto enviado al usuario")


# Operador


class ConversationOut(BaseModel):
    caller_id: str
    mode: Literal["BOT", "HUMAN"]
    bot_active: bool
    linked_customer_id: Optional[str] = None
    display_name: Optional[str] = None


class ConversationPatch(BaseModel):
    """Cambio de modo hecho por un operador."""

    mode: Optional[Literal["BOT", "HUMAN"]] = None
    bot_active: Optional[bool] = None

    @model_validator(mode="after")
    def _not_empty(self):
        if self.mode is None and self.bot_active is None:
            raise ValueError("Indicar 'mode' y/o 'bot_active'")
        return self


class MessageOut(BaseModel):
    id: int
    caller_id: str
    from_bot: bool
    content_type: str
    text_content: Optional[str] = None
    media_ref: Optional[str] = None
    timestamp: str


class MessageList(BaseModel):
    caller_id: str
    messages: List[MessageOut]


class HealthResponse(BaseModel):
    """Response del health check"""

    status: str = Field(..., description="Estado del servicio")
    version: str = Field(..., description="Versión de la API")
    components: Dict[str, str] = Field(..., description="Estado de componentes")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "version": "1.0.0",
                    "components": {
                        "database": "ok",
                        "backend": "mock",
                        "groq_api": "ok",
                    },
                }
            ]
        }
    }
