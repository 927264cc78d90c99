"""
Tests para assistant/context.py y assistant/prompts.py — Historial y directiva.
"""

from unittest.mock import MagicMock

from assistant.context import ASSISTANT_ROLE, CALLER_ROLE, ContextBuilder, render_transcript
from assistant.prompts import get_system_prompt, user_context_block

CALLER = "5491111111111@s.whatsapp.net"


class TestRenderTranscript:
    def test_reverses_and_tags_roles(self):
        rows = [
            {"from_bot": 1, "text_content": "¿En qué te ayudo?"},
            {"from_bot": 0, "text_content": "Hola"},
        ]
        assert render_transcript(rows) == [
            {"role": CALLER_ROLE, "content": "Hola"},
            {"role": ASSISTANT_ROLE, "content": "¿En qué te ayudo?"},
        ]

    def test_skips_messages_without_text(self):
        rows = [
            {"from_bot": 0, "content_type": "image", "text_content": "foto del baño"},
            {"from_bot": 0, "content_type": "audio", "text_content": None},
            {"from_bot": 0, "content_type": "text", "text_content": "   "},
        ]
        assert render_transcript(rows) == [{"role": CALLER_ROLE, "content": "foto del baño"}]


class TestSystemPrompt:
    def test_guest_block(self):
        block = user_context_block(False)
        assert "INVITADO" in block

    def test_linked_with_name(self):
        assert "*Juan*" in user_context_block(True, "Juan")

    def test_linked_without_name(self):
        block = user_context_block(True)
        assert "VINCULADO" in block and "Usuario:" not in block

    def test_catalogue_lists_tools(self):
        prompt = get_system_prompt(False, tool_names=["verify_identity", "verify_otp"])
        assert "verify_identity" in prompt
        assert "verify_otp" in prompt
        assert "check_account_status" not in prompt


class TestContextBuilder:
    async def test_history_limit_and_order(self, db):
        for i in range(12):
            db.append_message(CALLER, i % 2 == 1, f"m{i:02d}", timestamp=f"2025-01-01T00:00:{i:02d}+00:00")
        ctx = await ContextBuilder(db, history_limit=10).build(CALLER, is_linked=False)
        assert len(ctx.transcript) == 10
        assert ctx.transcript[0]["content"] == "m02"
        assert ctx.transcript[-1]["content"] == "m11"
        assert "INVITADO" in ctx.system_directive

    async def test_greeting_for_linked_first_contact(self, db):
        ctx = await ContextBuilder(db).build(CALLER, is_linked=True, display_name="Juan")
        assert "Saludalo por su nombre" in ctx.system_directive

    async def test_no_greeting_with_history(self, db):
        db.append_message(CALLER, False, "hola")
        ctx = await ContextBuilder(db).build(CALLER, is_linked=True, display_name="Juan")
        assert "Saludalo" not in ctx.system_directive

    async def test_history_read_failure_is_empty(self):
        broken = MagicMock()
        broken.find_recent_messages.side_effect = RuntimeError("db locked")
        ctx = await ContextBuilder(broken).build(CALLER, is_linked=False)
        assert ctx.transcript == []
