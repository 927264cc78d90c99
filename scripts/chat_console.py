"""
Consola interactiva para probar el asistente sin WhatsApp.

Usa el backend simulado y una base SQLite temporal. Necesita GROQ_API_KEY.

Uso:
    python scripts/chat_console.py
    python scripts/chat_console.py --caller 5492804503151@s.whatsapp.net   # Juan Pérez (vinculado)

Comandos: /humano, /bot, /estado, /salir
"""

import argparse
import asyncio
import logging
import sys
import tempfile
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from api.config import get_settings
from assistant.agent import Agent
from assistant.context import ContextBuilder
from assistant.conversation import ConversationManager, ConversationMode
from assistant.db_service import DBService
from assistant.llm import GroqChatModel
from assistant.orchestrator import InboundMessage, MessageOrchestrator
from assistant.tools import build_default_registry
from backend import SimulatedBackend

GUEST_CALLER = "5491100000000@s.whatsapp.net"


async def chat(caller_id: str, db_path: Path) -> None:
    settings = get_settings()

    db = DBService(db_path)
    db.init_schema()
    backend = SimulatedBackend()
    registry = build_default_registry(backend)
    agent = Agent(
        model=GroqChatModel(
            api_key=settings.GROQ_API_KEY,
            model=settings.LLM_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
        ),
        registry=registry,
        context_builder=ContextBuilder(db, settings.HISTORY_LIMIT, registry.names),
        max_rounds=settings.MAX_TOOL_ROUNDS,
    )
    conversations = ConversationManager(db)
    orchestrator = MessageOrchestrator(db, conversations, agent, backend)

    print(f"💬 Conversando como {caller_id} (backend simulado, OTP {backend.verification_code})")
    print("   Comandos: /humano, /bot, /estado, /salir\n")

    while True:
        try:
            text = await asyncio.to_thread(input, "👤 Vos: ")
        except (EOFError, KeyboardInterrupt):
            break
        text = text.strip()
        if not text:
            continue
        if text == "/salir":
            break
        if text in ("/humano", "/bot"):
            await conversations.get_or_create(caller_id)
            mode = ConversationMode.HUMAN if text == "/humano" else ConversationMode.BOT
            await conversations.set_mode(caller_id, mode)
            print(f"   modo → {mode.value}\n")
            continue
        if text == "/estado":
            print(f"   {await conversations.get(caller_id)}\n")
            continue

        reply = await orchestrator.handle_inbound(InboundMessage(caller_id=caller_id, text=text))
        if reply is None:
            print("🤖 (sin respuesta: la conversación está en manos de un operador)\n")
        else:
            print(f"🤖 Bot: {reply}\n")

    await backend.aclose()
    print("👋 Hasta luego")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chat de consola contra el asistente")
    parser.add_argument("--caller", default=GUEST_CALLER, help="Caller id a simular")
    parser.add_argument("--verbose", action="store_true", help="Mostrar logs INFO")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    with tempfile.TemporaryDirectory() as tmp:
        asyncio.run(chat(args.caller, Path(tmp) / "console.db"))
