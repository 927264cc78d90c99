"""
Conversation Manager — Máquina de estados por caller id.

Cada conversación combina dos ejes:
- modo: BOT (responde el asistente) / HUMAN (toma control un operador)
- identidad: invitado / vinculado a un cliente del Core

El loop del agente corre SOLO si mode == BOT y bot_active.
Los cambios de modo los hace un operador; acá solo se respetan.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from assistant.db_service import DBService

logger = logging.getLogger(__name__)


class ConversationMode(str, Enum):
    BOT = "BOT"
    HUMAN = "HUMAN"


@dataclass
class Conversation:
    caller_id: str
    mode: ConversationMode = ConversationMode.BOT
    bot_active: bool = True
    linked_customer_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_linked(self) -> bool:
        return bool(self.linked_customer_id)

    @property
    def should_respond(self) -> bool:
        return self.mode == ConversationMode.BOT and self.bot_active

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Conversation":
        return cls(
            caller_id=row["caller_id"],
            mode=ConversationMode(row["mode"]),
            bot_active=bool(row["bot_active"]),
            linked_customer_id=row.get("linked_customer_id"),
            display_name=row.get("display_name"),
        )


class ConversationManager:
    """Gestiona el estado de conversación y serializa el trabajo por caller id."""

    def __init__(self, db: DBService):
        self._db = db
        # La entrada desaparece cuando nadie retiene ni espera el lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock(self, caller_id: str) -> asyncio.Lock:
        """Lock por conversación: un solo mensaje en proceso a la vez por caller id."""
        lock = self._locks.get(caller_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[caller_id] = lock
        return lock

    async def get(self, caller_id: str) -> Optional[Conversation]:
        row = await asyncio.to_thread(self._db.get_conversation, caller_id)
        return Conversation.from_row(row) if row else None

    async def get_or_create(self, caller_id: str) -> Tuple[Conversation, bool]:
        """Devuelve (conversación, creada). Nueva → {BOT activo, invitado}."""
        row = await asyncio.to_thread(self._db.get_conversation, caller_id)
        created = row is None
        if created:
            row = await asyncio.to_thread(self._db.upsert_conversation, caller_id)
            logger.info(f"[{caller_id}] Nueva conversación (BOT, invitado)")
        return Conversation.from_row(row), created

    async def list_all(self) -> List[Conversation]:
        rows = await asyncio.to_thread(self._db.list_conversations)
        return [Conversation.from_row(r) for r in rows]

    async def link_customer(
        self, caller_id: str, customer_id: str, display_name: Optional[str] = None
    ) -> Conversation:
        """invitado → vinculado. Idempotente."""
        patch: Dict[str, Any] = {"linked_customer_id": customer_id}
        if display_name:
            patch["display_name"] = display_name
        row = await asyncio.to_thread(self._db.upsert_conversation, caller_id, **patch)
        logger.info(f"[{caller_id}] Conversación vinculada al cliente {customer_id}")
        return Conversation.from_row(row)

    async def set_mode(self, caller_id: str, mode: ConversationMode) -> Conversation:
        mode = ConversationMode(mode)
        row = await asyncio.to_thread(self._db.upsert_conversation, caller_id, mode=mode.value)
        logger.info(f"[{caller_id}] mode → {mode.value}")
        return Conversation.from_row(row)

    async def set_bot_active(self, caller_id: str, active: bool) -> Conversation:
        row = await asyncio.to_thread(self._db.upsert_conversation, caller_id, bot_active=active)
        logger.info(f"[{caller_id}] bot_active → {active}")
        return Conversation.from_row(row)

    async def set_display_name(self, caller_id: str, display_name: str) -> Conversation:
        row = await asyncio.to_thread(self._db.upsert_conversation, caller_id, display_name=display_name)
        return Conversation.from_row(row)
