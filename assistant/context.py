"""
Context Builder — Historial reciente + directiva de sistema.

Trae los últimos N mensajes (más recientes primero), los invierte a orden
cronológico y los etiqueta por rol. Los mensajes sin texto renderizable
(media sin descripción ni caption) se omiten en lugar de generar turnos vacíos.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from assistant.db_service import DBService
from assistant.prompts import TOOL_USAGE_GUIDE, get_system_prompt, greeting_instruction

logger = logging.getLogger(__name__)

CALLER_ROLE = "caller"
ASSISTANT_ROLE = "assistant"

DEFAULT_HISTORY_LIMIT = 10


@dataclass
class ConversationContext:
    system_directive: str
    transcript: List[Dict[str, str]] = field(default_factory=list)


def render_transcript(messages_newest_first: List[Dict]) -> List[Dict[str, str]]:
    """Convierte filas de `messages` (DESC) en turnos (role, content) cronológicos."""
    transcript = []
    for msg in reversed(messages_newest_first):
        text = (msg.get("text_content") or "").strip()
        if not text:
            continue
        role = ASSISTANT_ROLE if msg.get("from_bot") else CALLER_ROLE
        transcript.append({"role": role, "content": text})
    return transcript


class ContextBuilder:
    """Arma el contexto conversacional que consume el agente."""

    def __init__(
        self,
        db: DBService,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        tool_names: Optional[Iterable[str]] = None,
    ):
        self._db = db
        self.history_limit = history_limit
        self._tool_names = list(tool_names) if tool_names is not None else list(TOOL_USAGE_GUIDE)

    async def load_transcript(self, caller_id: str) -> List[Dict[str, str]]:
        try:
            rows = await asyncio.to_thread(
                self._db.find_recent_messages, caller_id, self.history_limit
            )
        except Exception as e:
            logger.error(f"[{caller_id}] Error leyendo historial: {e}")
            return []
        return render_transcript(rows)

    async def build(
        self, caller_id: str, is_linked: bool, display_name: Optional[str] = None
    ) -> ConversationContext:
        transcript = await self.load_transcript(caller_id)
        directive = get_system_prompt(is_linked, display_name, self._tool_names)
        if is_linked and display_name and not transcript:
            directive += greeting_instruction(display_name)
        return ConversationContext(system_directive=directive, transcript=transcript)
