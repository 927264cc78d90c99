"""
Tests para assistant/orchestrator.py — Gate BOT/HUMAN, auto-vinculación,
persistencia de la verificación y almacenamiento de mensajes.

El agente real corre con un modelo guionado; DB y backend simulado son reales.
"""

import asyncio
import gc
from unittest.mock import AsyncMock, MagicMock

import pytest

from assistant.agent import Agent, AgentReply
from assistant.context import ContextBuilder
from assistant.conversation import ConversationManager, ConversationMode
from assistant.orchestrator import (
    MEDIA_ACKNOWLEDGMENT,
    InboundMessage,
    MessageOrchestrator,
    normalize_caller_id,
)
from assistant.tools import build_default_registry
from backend.base import BackendError
from conftest import GUEST_CALLER, JUAN_CALLER, make_model, text_turn, tool_turn


@pytest.fixture
def conversations(db) -> ConversationManager:
    return ConversationManager(db)


def _orchestrator(db, conversations, backend, turns, send_outbound=None):
    model = make_model(turns)
    agent = Agent(model, build_default_registry(backend), ContextBuilder(db))
    orch = MessageOrchestrator(db, conversations, agent, backend, send_outbound=send_outbound)
    return orch, model


def test_normalize_caller_id():
    assert normalize_caller_id("  5491100000000@s.whatsapp.net \n") == GUEST_CALLER
    assert normalize_caller_id(None) == ""


class TestAutoLink:
    async def test_known_caller_is_linked_on_first_contact(self, db, conversations, backend):
        orch, model = _orchestrator(db, conversations, backend, [text_turn("¡Hola Juan!")])
        await orch.handle_inbound(InboundMessage(caller_id=JUAN_CALLER, text="hola"))

        conversation = await conversations.get(JUAN_CALLER)
        assert conversation.linked_customer_id == "client_001"
        assert conversation.display_name == "Juan Pérez"
        # El agente recibió al cliente como vinculado y con saludo
        directive = model.complete.await_args.args[0][0]["content"]
        assert "*Juan Pérez*" in directive
        assert "Saludalo por su nombre" in directive

    async def test_subsequent_messages_are_linked(self, db, conversations, backend):
        orch, _ = _orchestrator(
            db, conversations, backend,
            [text_turn("¡Hola Juan!"), tool_turn(("check_account_status", {})), text_turn("Debés $50.000")],
        )
        await orch.handle_inbound(InboundMessage(caller_id=JUAN_CALLER, text="hola"))
        reply = await orch.handle_inbound(InboundMessage(caller_id=JUAN_CALLER, text="¿cuánto debo?"))
        assert reply == "Debés $50.000"

    async def test_lookup_happens_once(self, db, conversations, backend):
        backend.get_customer_by_caller_id = AsyncMock(return_value=None)
        orch, _ = _orchestrator(db, conversations, backend, [text_turn("a"), text_turn("b")])
        await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="hola"))
        await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="hola de nuevo"))
        assert backend.get_customer_by_caller_id.await_count == 1

    async def test_concurrent_first_messages_link_once(self, db, conversations, backend):
        lookup = AsyncMock(wraps=backend.get_customer_by_caller_id)
        backend.get_customer_by_caller_id = lookup
        orch, _ = _orchestrator(db, conversations, backend, [text_turn("a"), text_turn("b")])

        await asyncio.gather(
            orch.handle_inbound(InboundMessage(caller_id=JUAN_CALLER, text="hola")),
            orch.handle_inbound(InboundMessage(caller_id=JUAN_CALLER, text="¿estás?")),
        )

        assert lookup.await_count == 1
        assert (await conversations.get(JUAN_CALLER)).linked_customer_id == "client_001"

    async def test_locks_do_not_accumulate(self, db, conversations, backend):
        orch, _ = _orchestrator(db, conversations, backend, [text_turn(str(i)) for i in range(20)])
        for i in range(20):
            await orch.handle_inbound(InboundMessage(caller_id=f"54911000000{i:02d}", text="hola"))
        gc.collect()
        assert len(conversations._locks) == 0

    async def test_unknown_caller_keeps_sender_name(self, db, conversations, backend):
        orch, _ = _orchestrator(db, conversations, backend, [text_turn("Hola")])
        await orch.handle_inbound(
            InboundMessage(caller_id=GUEST_CALLER, text="hola", sender_display_name="Ana")
        )
        conversation = await conversations.get(GUEST_CALLER)
        assert conversation.is_linked is False
        assert conversation.display_name == "Ana"

    async def test_backend_failure_leaves_guest(self, db, conversations, backend):
        backend.get_customer_by_caller_id = AsyncMock(side_effect=BackendError(503, "caído"))
        orch, _ = _orchestrator(db, conversations, backend, [text_turn("Hola")])
        reply = await orch.handle_inbound(InboundMessage(caller_id=JUAN_CALLER, text="hola"))
        assert reply == "Hola"
        assert (await conversations.get(JUAN_CALLER)).is_linked is False


class TestGate:
    async def test_human_mode_stores_without_reply(self, db, conversations, backend):
        await conversations.get_or_create(GUEST_CALLER)
        await conversations.set_mode(GUEST_CALLER, ConversationMode.HUMAN)
        send = AsyncMock()
        orch, model = _orchestrator(db, conversations, backend, [], send_outbound=send)

        reply = await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="¿hay alguien?"))

        assert reply is None
        model.complete.assert_not_awaited()
        send.assert_not_awaited()
        messages = db.get_messages(GUEST_CALLER)
        assert [(m["from_bot"], m["text_content"]) for m in messages] == [(0, "¿hay alguien?")]

    async def test_bot_inactive_stores_without_reply(self, db, conversations, backend):
        await conversations.set_bot_active(GUEST_CALLER, False)
        orch, model = _orchestrator(db, conversations, backend, [])
        assert await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="hola")) is None
        model.complete.assert_not_awaited()

    async def test_empty_caller_id_rejected(self, db, conversations, backend):
        orch, _ = _orchestrator(db, conversations, backend, [])
        with pytest.raises(ValueError):
            await orch.handle_inbound(InboundMessage(caller_id="  ", text="hola"))


class TestMessages:
    async def test_inbound_and_outbound_are_stored(self, db, conversations, backend):
        send = AsyncMock()
        orch, _ = _orchestrator(db, conversations, backend, [text_turn("¡Hola!")], send_outbound=send)
        reply = await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text=" hola "))

        assert reply == "¡Hola!"
        send.assert_awaited_once_with(GUEST_CALLER, "¡Hola!")
        messages = db.get_messages(GUEST_CALLER)
        assert [(m["from_bot"], m["text_content"]) for m in messages] == [(0, "hola"), (1, "¡Hola!")]

    async def test_current_text_not_duplicated_in_transcript(self, db, conversations, backend):
        orch, model = _orchestrator(db, conversations, backend, [text_turn("¡Hola!")])
        await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="hola"))
        messages = model.complete.await_args.args[0]
        assert [m["content"] for m in messages if m["role"] == "user"][1:] == ["hola"]

    async def test_media_without_text_gets_acknowledgment(self, db, conversations, backend):
        orch, model = _orchestrator(db, conversations, backend, [])
        reply = await orch.handle_inbound(
            InboundMessage(caller_id=GUEST_CALLER, media_ref="media-1", content_type="image")
        )
        assert reply == MEDIA_ACKNOWLEDGMENT
        model.complete.assert_not_awaited()
        inbound = db.get_messages(GUEST_CALLER)[0]
        assert inbound["content_type"] == "image"
        assert inbound["media_ref"] == "media-1"

    async def test_send_failure_is_logged_not_raised(self, db, conversations, backend):
        send = AsyncMock(side_effect=RuntimeError("meta caído"))
        orch, _ = _orchestrator(db, conversations, backend, [text_turn("¡Hola!")], send_outbound=send)
        assert await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="hola")) == "¡Hola!"


class TestVerification:
    async def test_otp_success_is_persisted(self, db, conversations, backend):
        turns = [
            tool_turn(("verify_identity", {"dni": "12.345.678"})),
            text_turn("Te enviamos un código a ju*******@example.com"),
            tool_turn(("verify_otp", {"otp": "123456"})),
            text_turn("¡Listo Juan, ya estás verificado!"),
        ]
        orch, _ = _orchestrator(db, conversations, backend, turns)

        await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="mi dni es 12.345.678"))
        assert (await conversations.get(GUEST_CALLER)).is_linked is False

        reply = await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="123456"))
        assert reply == "¡Listo Juan, ya estás verificado!"

        conversation = await conversations.get(GUEST_CALLER)
        assert conversation.linked_customer_id == "client_001"
        assert conversation.display_name == "Juan Pérez"
        # El Core también quedó vinculado
        assert (await backend.get_customer_by_caller_id(GUEST_CALLER))["id"] == "client_001"

    async def test_core_link_failure_keeps_local_link(self, db, conversations, backend):
        backend.link_caller_to_customer = AsyncMock(side_effect=BackendError(500, "x"))
        await backend.validate_identity("87654321", GUEST_CALLER)
        turns = [tool_turn(("verify_otp", {"otp": "123456"})), text_turn("¡Listo María!")]
        orch, _ = _orchestrator(db, conversations, backend, turns)

        await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="123456"))
        assert (await conversations.get(GUEST_CALLER)).linked_customer_id == "client_002"

    async def test_agent_error_still_replies(self, db, conversations, backend):
        agent = MagicMock(spec=Agent)
        agent.run = AsyncMock(return_value=AgentReply(text="Disculpá"))
        orch = MessageOrchestrator(db, conversations, agent, backend)
        assert await orch.handle_inbound(InboundMessage(caller_id=GUEST_CALLER, text="hola")) == "Disculpá"
