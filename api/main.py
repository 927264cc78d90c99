"""
FastAPI Application - API REST del asistente de Habitar Propiedades
- Settings centralizado (Pydantic BaseSettings via config.py)
- Dependency Injection con Depends()
- HTTP Status Codes correctos + Error Handler global
- SQLite vía asyncio.to_thread (dentro de los servicios)

Endpoints:
- GET   /                                → Raíz informativa
- GET   /health                          → Health check
- GET   /webhook                         → Verificación de WhatsApp
- POST  /webhook                         → Mensajes entrantes de WhatsApp
- POST  /messages/inbound                → Mensaje entrante directo (devuelve la respuesta)
- GET   /conversations                   → Listado (operador)
- GET   /conversations/{caller_id}/messages → Historial (operador)
- PATCH /conversations/{caller_id}       → Cambio de modo / bot_active (operador)
"""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from api.config import Settings, get_settings
from api.models import (
    ConversationOut,
    ConversationPatch,
    ErrorResponse,
    HealthResponse,
    InboundMessageRequest,
    InboundMessageResponse,
    MessageList,
    MessageOut,
)
from assistant.agent import Agent
from assistant.context import ContextBuilder
from assistant.conversation import Conversation, ConversationManager, ConversationMode
from assistant.db_service import DBService
from assistant.llm import GroqChatModel
from assistant.orchestrator import InboundMessage, MessageOrchestrator
from assistant.tools import build_default_registry
from backend import BackendGateway, create_backend

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

MEDIA_TYPES = ("image", "audio", "video", "document", "sticker")


# Deduplicación de mensajes: evita procesar dos veces los reintentos de WhatsApp
_MAX_SEEN = 500
_SEEN_TTL = 300  # 5 minutos
_seen_messages: "OrderedDict[str, float]" = OrderedDict()


def _is_duplicate_message(msg_id: str) -> bool:
    """True si este message id ya se procesó recientemente."""
    now = time.monotonic()
    while _seen_messages:
        oldest_key, oldest_time = next(iter(_seen_messages.items()))
        if now - oldest_time > _SEEN_TTL:
            _seen_messages.pop(oldest_key)
        else:
            break
    if msg_id in _seen_messages:
        return True
    _seen_messages[msg_id] = now
    while len(_seen_messages) > _MAX_SEEN:
        _seen_messages.popitem(last=False)
    return False


# Dependency Injection
# Singletons inyectables via Depends(); en tests se reemplazan con
# app.dependency_overrides

_db: Optional[DBService] = None
_backend: Optional[BackendGateway] = None
_conversations: Optional[ConversationManager] = None
_orchestrator: Optional[MessageOrchestrator] = None


def get_db(settings: Settings = Depends(get_settings)) -> DBService:
    global _db
    if _db is None:
        _db = DBService(settings.db_full_path)
        _db.init_schema()
        logger.info(f"Base de datos lista en {settings.db_full_path}")
    return _db


def get_backend(settings: Settings = Depends(get_settings)) -> BackendGateway:
    global _backend
    if _backend is None:
        _backend = create_backend(settings)
        logger.info(f"Core Backend: {getattr(_backend, 'mode', 'custom')}")
    return _backend


def get_conversation_manager(db: DBService = Depends(get_db)) -> ConversationManager:
    global _conversations
    if _conversations is None:
        _conversations = ConversationManager(db)
    return _conversations


def _build_orchestrator(settings: Settings) -> MessageOrchestrator:
    """Arma la cadena completa: DB → backend → herramientas → agente → orchestrator."""
    db = get_db(settings)
    backend = get_backend(settings)
    registry = build_default_registry(backend)
    model = GroqChatModel(
        api_key=settings.GROQ_API_KEY,
        model=settings.LLM_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
    )
    agent = Agent(
        model=model,
        registry=registry,
        context_builder=ContextBuilder(
            db, history_limit=settings.HISTORY_LIMIT, tool_names=registry.names
        ),
        max_rounds=settings.MAX_TOOL_ROUNDS,
    )

    async def _send(caller_id: str, text: str) -> None:
        await send_whatsapp_message(caller_id, text, settings)

    return MessageOrchestrator(
        db=db,
        conversations=get_conversation_manager(db),
        agent=agent,
        backend=backend,
        send_outbound=_send,
    )


def get_orchestrator(settings: Settings = Depends(get_settings)) -> MessageOrchestrator:
    """
    Dependency que provee el MessageOrchestrator.

    Sin GROQ_API_KEY no se puede construir: responde 503 en vez de
    tumbar la aplicación entera.
    """
    global _orchestrator
    if _orchestrator is None:
        try:
            logger.info("Inicializando MessageOrchestrator...")
            _orchestrator = _build_orchestrator(settings)
            logger.info("MessageOrchestrator inicializado correctamente")
        except ValueError as e:
            logger.error(f"No se pudo inicializar el orchestrator: {e}")
            raise HTTPException(status_code=503, detail=str(e))
    return _orchestrator


def require_admin_key(
    x_api_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guarda de los endpoints de operador (header x-api-key)."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=503, detail="Endpoints de operador deshabilitados")
    if x_api_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="x-api-key inválida o ausente")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: pre-carga los servicios al startup y cierra el backend al final."""
    logger.info("Habitar API iniciando...")
    try:
        get_orchestrator(get_settings())
        logger.info("Servicios pre-cargados")
    except Exception as e:
        logger.error(f"Error inicializando servicios: {e}")

    yield

    if _backend is not None:
        await _backend.aclose()
    logger.info("Habitar API cerrando...")


# FastAPI App

app = FastAPI(
    title="Habitar Asistente API",
    description="Asistente conversacional de WhatsApp para Habitar Propiedades",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    responses={
        422: {"model": ErrorResponse, "description": "Error de validación"},
        500: {"model": ErrorResponse, "description": "Error interno"},
    },
)

# CORS middleware (para el panel de operadores en desarrollo)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global Error Handlers


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Errores de validación Pydantic → 422 con formato ErrorResponse."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            type="validation_error",
            title="Datos de entrada inválidos",
            status=422,
            detail=str(exc.errors()),
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException → ErrorResponse con el status original."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            type="http_error",
            title=exc.detail if isinstance(exc.detail, str) else "Error",
            status=exc.status_code,
            detail=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Excepción no manejada → 500 genérico, sin detalles internos."""
    logger.error(f"Error no manejado en {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            type="internal_error",
            title="Error Interno",
            status=500,
            detail="Error interno del servidor. Intenta nuevamente más tarde.",
        ).model_dump(),
    )


# Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Endpoint raíz"""
    return {
        "message": "Habitar Asistente API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint.

    Verifica el estado de:
    - Base de datos
    - Core Backend (modo live / mock)
    - Groq API (via API key)
    """
    components = {}
    overall_status = "healthy"

    db_path = _db.db_path if _db is not None else settings.db_full_path
    if await asyncio.to_thread(lambda: db_path.exists()):
        components["database"] = "ok"
    else:
        components["database"] = "missing"
        overall_status = "degraded"

    components["backend"] = getattr(_backend, "mode", None) or "not_initialized"

    if settings.GROQ_API_KEY:
        components["groq_api"] = "ok"
    else:
        components["groq_api"] = "no_api_key"
        overall_status = "degraded"

    components["whatsapp"] = (
        "ok" if settings.WHATSAPP_TOKEN and settings.WHATSAPP_PHONE_NUMBER_ID else "not_configured"
    )

    return HealthResponse(status=overall_status, version=API_VERSION, components=components)


# WhatsApp (Meta Cloud API)


@app.get("/webhook", tags=["Webhook"])
async def verify_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
):
    """
    Verificación del webhook de WhatsApp (Meta).

    Meta envía un GET con hub.mode=subscribe, hub.verify_token y
    hub.challenge; se valida el token y se devuelve el challenge en texto plano.
    """
    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token")
    challenge = request.query_params.get("hub.challenge")

    logger.info(
        f"Webhook verification request: mode={mode}, token={'***' if token else 'None'}"
    )

    if mode == "subscribe" and token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info("Webhook verificado correctamente")
        return PlainTextResponse(content=challenge or "", status_code=200)

    logger.warning(f"Webhook verification failed. mode={mode}")
    raise HTTPException(status_code=403, detail="Verification failed")


async def send_whatsapp_message(to: str, message: str, settings: Settings) -> bool:
    """Envía un mensaje de texto usando la Cloud API de Meta."""
    phone_number_id = settings.WHATSAPP_PHONE_NUMBER_ID
    whatsapp_token = settings.WHATSAPP_TOKEN

    if not phone_number_id or not whatsapp_token:
        logger.debug("WhatsApp no configurado; respuesta no enviada")
        return False

    # El caller id puede venir como JID ('549...@s.whatsapp.net')
    to = to.split("@", 1)[0]

    # WhatsApp envía móviles argentinos como 549XXXXXXXXXX pero Meta suele
    # registrarlos sin el 9: se prueba primero ese formato y después el original
    normalized_to = to
    if to.startswith("549") and len(to) == 13:
        normalized_to = "54" + to[3:]

    url = f"https://graph.facebook.com/v22.0/{phone_number_id}/messages"
    headers = {
        "Authorization": f"Bearer {whatsapp_token}",
        "Content-Type": "application/json",
    }
    payload = {
        "messaging_product": "whatsapp",
        "to": normalized_to,
        "type": "text",
        "text": {"body": message},
    }

    async with httpx.AsyncClient(timeout=15.0) as client:
        try:
            response = await client.post(url, json=payload, headers=headers)
            if response.status_code == 200:
                logger.info(f"Mensaje enviado a {normalized_to}")
                return True
            logger.warning(
                f"Error con {normalized_to}: {response.status_code} - {response.text}"
            )
            if normalized_to != to:
                payload["to"] = to
                retry = await client.post(url, json=payload, headers=headers)
                if retry.status_code == 200:
                    logger.info(f"Mensaje enviado a {to} (formato original)")
                    return True
                logger.error(f"Error enviando mensaje: {retry.status_code} - {retry.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Excepción enviando mensaje WhatsApp: {e}")
            return False


def extract_inbound(message: Dict[str, Any], contacts: List[Dict[str, Any]]) -> Optional[InboundMessage]:
    """Convierte un mensaje del payload de Meta en InboundMessage (None si no se soporta)."""
    msg_type = message.get("type")
    sender = message.get("from")
    if not sender:
        return None

    display_name = None
    for contact in contacts:
        if contact.get("wa_id") == sender:
            display_name = (contact.get("profile") or {}).get("name")
            break

    timestamp = None
    if message.get("timestamp"):
        try:
            timestamp = datetime.fromtimestamp(int(message["timestamp"]), tz=timezone.utc).isoformat()
        except (TypeError, ValueError):
            timestamp = None

    if msg_type == "text":
        return InboundMessage(
            caller_id=sender,
            text=(message.get("text") or {}).get("body", ""),
            sender_display_name=display_name,
            timestamp=timestamp,
        )
    if msg_type in MEDIA_TYPES:
        media = message.get(msg_type) or {}
        return InboundMessage(
            caller_id=sender,
            text=media.get("caption"),
            media_ref=media.get("id"),
            content_type=msg_type,
            sender_display_name=display_name,
            timestamp=timestamp,
        )
    return None


@app.post("/webhook", tags=["Webhook"])
async def handle_webhook(
    request: Request,
    orchestrator: MessageOrchestrator = Depends(get_orchestrator),
):
    """
    Recibe eventos de WhatsApp desde Meta y los pasa al orchestrator,
    que decide si el bot responde (modo BOT) o solo guarda (modo HUMAN).
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body JSON inválido")

    if body.get("object") != "whatsapp_business_account":
        logger.info("Evento ignorado (no es whatsapp_business_account)")
        return {"status": "ignored"}

    processed = 0
    for entry in body.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            if "messages" not in value:
                continue  # status updates, etc.

            contacts = value.get("contacts", [])
            for message in value["messages"]:
                msg_id = message.get("id", "")
                if msg_id and _is_duplicate_message(msg_id):
                    logger.info(f"Mensaje duplicado ignorado: {msg_id}")
                    continue

                inbound = extract_inbound(message, contacts)
                if inbound is None:
                    logger.info(f"Mensaje ignorado: tipo={message.get('type')}")
                    continue

                await orchestrator.handle_inbound(inbound)
                processed += 1

    return {"status": "ok", "processed": processed}


# Entrada directa


@app.post(
    "/messages/inbound",
    response_model=InboundMessageResponse,
    responses={503: {"model": ErrorResponse, "description": "Asistente no disponible"}},
    tags=["Messages"],
)
async def inbound_message(
    request: InboundMessageRequest,
    orchestrator: MessageOrchestrator = Depends(get_orchestrator),
):
    """Procesa un mensaje entrante y devuelve la respuesta del asistente."""
    response = await orchestrator.handle_inbound(
        InboundMessage(
            caller_id=request.caller_id,
            text=request.text,
            media_ref=request.media_ref,
            content_type=request.content_type,
            sender_display_name=request.sender_display_name,
        )
    )
    return InboundMessageResponse(
        caller_id=request.caller_id.strip(),
        replied=response is not None,
        response=response,
    )


# Operador


def _conversation_out(conversation: Conversation) -> ConversationOut:
    return ConversationOut(
        caller_id=conversation.caller_id,
        mode=conversation.mode.value,
        bot_active=conversation.bot_active,
        linked_customer_id=conversation.linked_customer_id,
        display_name=conversation.display_name,
    )


@app.get(
    "/conversations",
    response_model=List[ConversationOut],
    dependencies=[Depends(require_admin_key)],
    tags=["Operator"],
)
async def list_conversations(
    conversations: ConversationManager = Depends(get_conversation_manager),
):
    return [_conversation_out(c) for c in await conversations.list_all()]


@app.get(
    "/conversations/{caller_id}/messages",
    response_model=MessageList,
    dependencies=[Depends(require_admin_key)],
    tags=["Operator"],
)
async def conversation_messages(
    caller_id: str,
    db: DBService = Depends(get_db),
    conversations: ConversationManager = Depends(get_conversation_manager),
):
    if await conversations.get(caller_id) is None:
        raise HTTPException(status_code=404, detail=f"Conversación '{caller_id}' no encontrada")
    rows = await asyncio.to_thread(db.get_messages, caller_id)
    return MessageList(
        caller_id=caller_id,
        messages=[MessageOut(**{**row, "from_bot": bool(row["from_bot"])}) for row in rows],
    )


@app.patch(
    "/conversations/{caller_id}",
    response_model=ConversationOut,
    dependencies=[Depends(require_admin_key)],
    tags=["Operator"],
)
async def update_conversation(
    caller_id: str,
    patch: ConversationPatch,
    conversations: ConversationManager = Depends(get_conversation_manager),
):
    """Toma de control humana / devolución al bot."""
    conversation = await conversations.get(caller_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversación '{caller_id}' no encontrada")

    async with conversations.lock(caller_id):
        if patch.mode is not None:
            conversation = await conversations.set_mode(caller_id, ConversationMode(patch.mode))
        if patch.bot_active is not None:
            conversation = await conversations.set_bot_active(caller_id, patch.bot_active)
    return _conversation_out(conversation)


# Error Handler 404


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handler para 404"""
    detail = getattr(exc, "detail", None)
    if not isinstance(detail, str) or detail == "Not Found":
        detail = None
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(
            type="not_found",
            title="No Encontrado",
            status=404,
            detail=detail or f"El endpoint '{request.url.path}' no existe.",
        ).model_dump(),
    )


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level="info",
    )
