"""
Tests para assistant/tools/identity.py — Normalización de DNI y handshake OTP.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from assistant.tools.base import ToolContext
from assistant.tools.identity import (
    VerifyIdentityArgs,
    VerifyIdentityTool,
    VerifyOtpArgs,
    VerifyOtpTool,
    normalize_identity_number,
)
from backend.base import BackendError, BackendGateway
from conftest import GUEST_CALLER

CTX = ToolContext(caller_id=GUEST_CALLER)


class TestNormalizeIdentityNumber:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("12.345.678", "12345678"),
            ("59820155982015", "5982015"),
            ("20-12345678-9", "20123456789"),
            (" 12 345 678 ", "12345678"),
            ("", ""),
        ],
    )
    def test_cases(self, raw, expected):
        assert normalize_identity_number(raw) == expected

    @pytest.mark.parametrize("clean", ["12345678", "5982015", "20123456789"])
    def test_idempotent(self, clean):
        once = normalize_identity_number(clean)
        assert once == clean
        assert normalize_identity_number(once) == once

    def test_none_is_empty(self):
        assert normalize_identity_number(None) == ""


class TestVerifyIdentity:
    async def test_known_dni_starts_session(self, backend):
        result = await VerifyIdentityTool(backend).execute(VerifyIdentityArgs(dni="12.345.678"), CTX)
        assert result["status"] == "otp_generated"
        assert result["clientId"] == "client_001"
        assert result["clientName"] == "Juan Pérez"
        assert result["maskedEmail"] == "ju********@example.com"
        assert "ju" in result["message"] and "@example.com" in result["message"]

    async def test_doubled_dni_is_collapsed(self, backend):
        result = await VerifyIdentityTool(backend).execute(
            VerifyIdentityArgs(dni="59820155982015"), CTX
        )
        assert result["clientId"] == "client_003"

    async def test_unknown_dni_is_not_found(self, backend):
        result = await VerifyIdentityTool(backend).execute(VerifyIdentityArgs(dni="99999999"), CTX)
        assert result["status"] == "not_found"
        assert "error" not in result

    async def test_no_digits_is_error_without_backend_call(self):
        gateway = MagicMock(spec=BackendGateway)
        gateway.validate_identity = AsyncMock()
        result = await VerifyIdentityTool(gateway).execute(VerifyIdentityArgs(dni="abc"), CTX)
        assert result["error"] is True
        gateway.validate_identity.assert_not_awaited()

    async def test_backend_error_is_normalized(self):
        gateway = MagicMock(spec=BackendGateway)
        gateway.validate_identity = AsyncMock(side_effect=BackendError(503, "Core caído"))
        result = await VerifyIdentityTool(gateway).execute(VerifyIdentityArgs(dni="12345678"), CTX)
        assert result == {"error": True, "message": "Core caído"}


class TestVerifyOtp:
    @pytest.mark.parametrize("otp", ["12a34", "12345", "1234567", "abcdef"])
    async def test_rejects_non_six_digits_without_backend_call(self, otp):
        gateway = MagicMock(spec=BackendGateway)
        gateway.confirm_verification_code = AsyncMock()
        result = await VerifyOtpTool(gateway).execute(VerifyOtpArgs(otp=otp), CTX)
        assert result["error"] is True
        assert gateway.confirm_verification_code.await_count == 0

    async def test_full_handshake(self, backend):
        await VerifyIdentityTool(backend).execute(VerifyIdentityArgs(dni="12345678"), CTX)
        result = await VerifyOtpTool(backend).execute(VerifyOtpArgs(otp="123 456"), CTX)
        assert result["status"] == "verified"
        assert result["clientId"] == "client_001"
        assert result["clientName"] == "Juan Pérez"

    async def test_wrong_code(self, backend):
        await VerifyIdentityTool(backend).execute(VerifyIdentityArgs(dni="12345678"), CTX)
        result = await VerifyOtpTool(backend).execute(VerifyOtpArgs(otp="000000"), CTX)
        assert result["error"] is True
        assert "incorrecto" in result["message"]

    async def test_code_without_pending_session(self, backend):
        result = await VerifyOtpTool(backend).execute(VerifyOtpArgs(otp="123456"), CTX)
        assert result["error"] is True

    async def test_session_is_consumed(self, backend):
        await VerifyIdentityTool(backend).execute(VerifyIdentityArgs(dni="12345678"), CTX)
        first = await VerifyOtpTool(backend).execute(VerifyOtpArgs(otp="123456"), CTX)
        second = await VerifyOtpTool(backend).execute(VerifyOtpArgs(otp="123456"), CTX)
        assert first["status"] == "verified"
        assert second["error"] is True

    def test_numeric_otp_from_model_is_coerced(self):
        assert VerifyOtpArgs.model_validate({"otp": 123456}).otp == "123456"
