"""
Tests para backend/ — Selección de modo, backend simulado y cliente HTTP live.
"""

import json
from datetime import timedelta

import httpx
import pytest

from api.config import Settings
from backend import PLACEHOLDER_API_KEY, create_backend, resolve_backend_mode
from backend.base import BackendError
from backend.live import LiveBackend
from backend.simulated import SimulatedBackend
from conftest import GUEST_CALLER, JUAN_CALLER


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, GROQ_API_KEY="test-key", **overrides)


class TestModeSelection:
    def test_auto_without_credentials_is_mock(self):
        assert resolve_backend_mode(_settings()) == "mock"

    def test_auto_with_placeholder_key_is_mock(self):
        settings = _settings(CORE_BACKEND_URL="http://core", CORE_BACKEND_API_KEY=PLACEHOLDER_API_KEY)
        assert resolve_backend_mode(settings) == "mock"

    def test_auto_with_credentials_is_live(self):
        settings = _settings(CORE_BACKEND_URL="http://core", CORE_BACKEND_API_KEY="real")
        assert resolve_backend_mode(settings) == "live"

    def test_explicit_mock_wins(self):
        settings = _settings(
            BACKEND_MODE="mock", CORE_BACKEND_URL="http://core", CORE_BACKEND_API_KEY="real"
        )
        assert isinstance(create_backend(settings), SimulatedBackend)

    def test_live_without_url_fails(self):
        with pytest.raises(ValueError, match="CORE_BACKEND_URL"):
            create_backend(_settings(BACKEND_MODE="live"))

    async def test_live_backend_is_built(self):
        settings = _settings(CORE_BACKEND_URL="http://core", CORE_BACKEND_API_KEY="real")
        backend = create_backend(settings)
        assert isinstance(backend, LiveBackend)
        await backend.aclose()


class TestSimulatedBackend:
    async def test_customer_by_caller_id_hides_dni(self, backend):
        customer = await backend.get_customer_by_caller_id(JUAN_CALLER)
        assert customer["id"] == "client_001"
        assert "dni" not in customer

    async def test_unknown_caller_is_none(self, backend):
        assert await backend.get_customer_by_caller_id(GUEST_CALLER) is None

    async def test_account_status_unknown_customer(self, backend):
        with pytest.raises(BackendError) as exc:
            await backend.get_account_status("client_999")
        assert exc.value.status_code == 404

    async def test_unknown_identity_is_none(self, backend):
        assert await backend.validate_identity("11111111", GUEST_CALLER) is None

    async def test_expired_code(self):
        backend = SimulatedBackend(code_ttl=timedelta(seconds=-1))
        await backend.validate_identity("12345678", GUEST_CALLER)
        result = await backend.confirm_verification_code(GUEST_CALLER, "123456")
        assert result["success"] is False
        assert "expiró" in result["message"]

    async def test_link_caller_updates_lookup(self, backend):
        await backend.link_caller_to_customer("client_003", GUEST_CALLER)
        customer = await backend.get_customer_by_caller_id(GUEST_CALLER)
        assert customer["id"] == "client_003"

    async def test_instances_do_not_share_state(self):
        first, second = SimulatedBackend(), SimulatedBackend()
        await first.link_caller_to_customer("client_003", GUEST_CALLER)
        assert await second.get_customer_by_caller_id(GUEST_CALLER) is None


def _live(handler) -> LiveBackend:
    return LiveBackend(
        base_url="http://core.test/",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


class TestLiveBackend:
    async def test_sends_api_key_and_parses_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("x-api-key")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"clientId": "client_001", "balance": -50000})

        backend = _live(handler)
        result = await backend.get_account_status("client_001")
        await backend.aclose()

        assert seen == {"key": "secret", "path": "/api/v1/bot/client/client_001/balance"}
        assert result["balance"] == -50000

    async def test_customer_lookup_404_is_none(self):
        backend = _live(lambda request: httpx.Response(404, json={"message": "no existe"}))
        assert await backend.get_customer_by_caller_id(GUEST_CALLER) is None
        await backend.aclose()

    async def test_validate_identity_unsuccessful_is_none(self):
        backend = _live(lambda request: httpx.Response(200, json={"success": False}))
        assert await backend.validate_identity("12345678", GUEST_CALLER) is None
        await backend.aclose()

    async def test_validate_identity_payload(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "clientId": "client_001"})

        backend = _live(handler)
        result = await backend.validate_identity("12345678", JUAN_CALLER)
        await backend.aclose()
        assert bodies == [{"dni": "12345678", "whatsappJid": JUAN_CALLER}]
        assert result["clientId"] == "client_001"

    async def test_error_status_keeps_upstream_message(self):
        backend = _live(lambda request: httpx.Response(422, json={"message": "Monto inválido"}))
        with pytest.raises(BackendError) as exc:
            await backend.report_payment("client_001", 10, "2025-01-01", "cash")
        await backend.aclose()
        assert exc.value.status_code == 422
        assert exc.value.message == "Monto inválido"

    async def test_timeout_is_504(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("lento", request=request)

        backend = _live(handler)
        with pytest.raises(BackendError) as exc:
            await backend.get_available_cities()
        await backend.aclose()
        assert exc.value.status_code == 504

    async def test_connection_error_is_503(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("sin red", request=request)

        backend = _live(handler)
        with pytest.raises(BackendError) as exc:
            await backend.get_account_status("client_001")
        await backend.aclose()
        assert exc.value.status_code == 503

    async def test_invalid_json_is_502(self):
        backend = _live(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(BackendError) as exc:
            await backend.get_account_status("client_001")
        await backend.aclose()
        assert exc.value.status_code == 502

    async def test_search_drops_empty_filters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=[])

        backend = _live(handler)
        result = await backend.search_properties({"operation": "rent", "city": None, "rooms": 2})
        await backend.aclose()
        assert result == []
        assert seen == {"operation": "rent", "rooms": "2"}
