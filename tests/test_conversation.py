"""
Tests para assistant/conversation.py — Estado BOT/HUMAN e invitado/vinculado.
"""

import asyncio
import gc

import pytest

from assistant.conversation import Conversation, ConversationManager, ConversationMode

CALLER = "5491111111111@s.whatsapp.net"


@pytest.fixture
def conv(db) -> ConversationManager:
    return ConversationManager(db)


class TestConversation:
    @pytest.mark.parametrize(
        "mode,active,expected",
        [
            (ConversationMode.BOT, True, True),
            (ConversationMode.BOT, False, False),
            (ConversationMode.HUMAN, True, False),
            (ConversationMode.HUMAN, False, False),
        ],
    )
    def test_should_respond(self, mode, active, expected):
        assert Conversation(CALLER, mode=mode, bot_active=active).should_respond is expected

    def test_is_linked(self):
        assert Conversation(CALLER).is_linked is False
        assert Conversation(CALLER, linked_customer_id="client_001").is_linked is True


class TestConversationManager:
    async def test_new_conversation_is_bot_guest(self, conv):
        conversation, created = await conv.get_or_create(CALLER)
        assert created is True
        assert conversation.mode == ConversationMode.BOT
        assert conversation.bot_active is True
        assert conversation.is_linked is False

    async def test_second_call_is_not_created(self, conv):
        await conv.get_or_create(CALLER)
        _, created = await conv.get_or_create(CALLER)
        assert created is False

    async def test_get_unknown_is_none(self, conv):
        assert await conv.get(CALLER) is None

    async def test_link_customer(self, conv):
        await conv.get_or_create(CALLER)
        conversation = await conv.link_customer(CALLER, "client_001", "Juan Pérez")
        assert conversation.linked_customer_id == "client_001"
        assert conversation.display_name == "Juan Pérez"
        assert (await conv.get(CALLER)).is_linked

    async def test_link_without_name_keeps_previous(self, conv):
        await conv.set_display_name(CALLER, "Juancito")
        conversation = await conv.link_customer(CALLER, "client_001")
        assert conversation.display_name == "Juancito"

    async def test_human_takeover_and_back(self, conv):
        await conv.get_or_create(CALLER)
        assert (await conv.set_mode(CALLER, ConversationMode.HUMAN)).should_respond is False
        assert (await conv.set_mode(CALLER, "BOT")).should_respond is True

    async def test_bot_inactive(self, conv):
        conversation = await conv.set_bot_active(CALLER, False)
        assert conversation.should_respond is False

    async def test_invalid_mode(self, conv):
        with pytest.raises(ValueError):
            await conv.set_mode(CALLER, "ROBOT")

    async def test_list_all(self, conv):
        await conv.get_or_create("a")
        await conv.get_or_create("b")
        assert {c.caller_id for c in await conv.list_all()} == {"a", "b"}

    async def test_lock_is_per_caller(self, conv):
        assert conv.lock("a") is conv.lock("a")
        assert conv.lock("a") is not conv.lock("b")

    async def test_released_locks_are_dropped(self, conv):
        async with conv.lock("a"):
            assert "a" in conv._locks
        gc.collect()
        assert "a" not in conv._locks

    async def test_lock_serializes(self, conv):
        order = []

        async def worker(tag):
            async with conv.lock(CALLER):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(worker("1"), worker("2"))
        assert order == ["1-in", "1-out", "2-in", "2-out"]
