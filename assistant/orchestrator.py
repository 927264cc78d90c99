"""
Orchestrator — Punto de entrada de mensajes entrantes.

Flujo (serializado por caller id):
1. Normalizar caller id
2. Obtener o crear la conversación ({BOT activo, invitado})
3. Auto-vinculación (solo en el primer contacto): buscar el cliente en el Core por caller id
4. Gate: si el modo es HUMAN o el bot está apagado → guardar y no responder
5. Media sin texto → acuse de recibo fijo
6. Texto → Agent.run(); si hubo verificación exitosa, persistir el vínculo
7. Guardar entrada/salida y devolver la respuesta
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from assistant.agent import Agent, AgentReply
from assistant.conversation import Conversation, ConversationManager
from assistant.db_service import DBService
from backend.base import BackendError, BackendGateway

logger = logging.getLogger(__name__)

MEDIA_ACKNOWLEDGMENT = (
    "Recibí tu archivo 📎. Por ahora no puedo analizar imágenes ni audios; "
    "¿podrías contarme por escrito en qué te ayudo?"
)

SendOutbound = Callable[[str, str], Awaitable[None]]


def normalize_caller_id(raw: str) -> str:
    """El caller id es opaco (ej: '5492804503151@s.whatsapp.net'); solo se recorta."""
    return (raw or "").strip()


@dataclass
class InboundMessage:
    caller_id: str
    text: Optional[str] = None
    media_ref: Optional[str] = None
    content_type: str = "text"
    sender_display_name: Optional[str] = None
    timestamp: Optional[str] = None


class MessageOrchestrator:
    """Conecta transporte, estado de conversación y agente."""

    def __init__(
        self,
        db: DBService,
        conversations: ConversationManager,
        agent: Agent,
        backend: BackendGateway,
        send_outbound: Optional[SendOutbound] = None,
    ):
        self._db = db
        self._conv = conversations
        self._agent = agent
        self._backend = backend
        self._send_outbound = send_outbound

    def set_send_outbound(self, sender: SendOutbound) -> None:
        self._send_outbound = sender

    # Entry point

    async def handle_inbound(self, message: InboundMessage) -> Optional[str]:
        """
        Procesa un mensaje entrante. Devuelve el texto enviado, o None si el
        bot no debe responder en esta conversación.
        """
        caller_id = normalize_caller_id(message.caller_id)
        if not caller_id:
            raise ValueError("caller_id vacío")

        text = (message.text or "").strip()
        received_at = message.timestamp or datetime.now(timezone.utc).isoformat()
        content_type = message.content_type or "text"

        async with self._conv.lock(caller_id):
            conversation, created = await self._conv.get_or_create(caller_id)
            if created:
                conversation = await self._auto_link(conversation, message.sender_display_name)

            if not conversation.should_respond:
                await self._store(caller_id, False, text or None, content_type, message.media_ref, received_at)
                logger.info(
                    f"[{caller_id}] Bot inactivo (mode={conversation.mode.value}, "
                    f"bot_active={conversation.bot_active}); mensaje guardado sin respuesta"
                )
                return None

            if not text:
                await self._store(caller_id, False, None, content_type, message.media_ref, received_at)
                response_text = MEDIA_ACKNOWLEDGMENT
            else:
                logger.info(f"[{caller_id}] Mensaje: {text[:60]}")
                reply = await self._agent.run(
                    caller_id,
                    text,
                    is_linked=conversation.is_linked,
                    display_name=conversation.display_name,
                    linked_customer_id=conversation.linked_customer_id,
                )
                # El historial se lee antes de guardar el mensaje actual
                await self._store(caller_id, False, text, content_type, message.media_ref, received_at)
                await self._apply_verification(conversation, reply)
                response_text = reply.text

            await self._store(caller_id, True, response_text, "text", None, None)

        if self._send_outbound is not None:
            try:
                await self._send_outbound(caller_id, response_text)
            except Exception as e:
                logger.error(f"[{caller_id}] Error enviando respuesta: {e}", exc_info=True)
        return response_text

    # Internals

    async def _store(self, caller_id, from_bot, text, content_type, media_ref, timestamp) -> None:
        await asyncio.to_thread(
            self._db.append_message,
            caller_id,
            from_bot,
            text,
            content_type,
            media_ref,
            timestamp,
        )

    async def _auto_link(
        self, conversation: Conversation, sender_display_name: Optional[str] = None
    ) -> Conversation:
        """Primer contacto: invitado → vinculado si el Core reconoce el caller id."""
        caller_id = conversation.caller_id
        try:
            customer = await self._backend.get_customer_by_caller_id(caller_id)
        except BackendError as e:
            logger.warning(f"[{caller_id}] Auto-vinculación fallida: {e.message}")
            customer = None

        if not customer or not customer.get("id"):
            if sender_display_name:
                return await self._conv.set_display_name(caller_id, sender_display_name)
            return conversation

        logger.info(f"[{caller_id}] Auto-vinculado con {customer.get('name') or customer['id']}")
        return await self._conv.link_customer(
            caller_id, str(customer["id"]), customer.get("name") or sender_display_name
        )

    async def _apply_verification(self, conversation: Conversation, reply: AgentReply) -> None:
        """Persiste el cliente verificado por el handshake de OTP."""
        verified = reply.verified_customer
        if verified is None or verified.customer_id == conversation.linked_customer_id:
            return

        caller_id = conversation.caller_id
        await self._conv.link_customer(caller_id, verified.customer_id, verified.display_name)
        try:
            await self._backend.link_caller_to_customer(verified.customer_id, caller_id)
        except BackendError as e:
            logger.warning(f"[{caller_id}] No se pudo vincular en el Core: {e.message}")
