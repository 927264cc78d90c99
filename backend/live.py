"""
LiveBackend — Cliente HTTP del Core Backend.

Autenticación service-to-service con header `x-api-key` fijo y un
timeout compartido para todas las llamadas.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from backend.base import BackendError, BackendGateway

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


async def _log_request(request: httpx.Request) -> None:
    logger.info(f"[Core Request] {request.method} {request.url.path}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    if response.is_error:
        logger.error(f"[Core Error] {response.status_code} {request.url.path}")
    else:
        logger.info(f"[Core Response] {response.status_code} {request.url.path}")


def _error_message(response: httpx.Response) -> str:
    """Extrae `message` del body JSON si el Core lo envía."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        message = body["message"]
        return message if isinstance(message, str) else str(message)
    return f"HTTP {response.status_code}"


class LiveBackend(BackendGateway):
    """Implementación contra el Core Backend real."""

    mode = "live"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            event_hooks={"request": [_log_request], "response": [_log_response]},
            transport=transport,
        )
        logger.info(f"LiveBackend inicializado (url: {base_url}, timeout: {timeout}s)")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        not_found_ok: bool = False,
    ) -> Any:
        """Ejecuta la llamada y normaliza cualquier fallo a BackendError."""
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise BackendError(504, f"Timeout consultando el Core Backend ({path})") from e
        except httpx.RequestError as e:
            raise BackendError(503, f"Core Backend no disponible: {e}") from e

        if response.status_code == 404 and not_found_ok:
            return None
        if response.is_error:
            raise BackendError(response.status_code, _error_message(response))

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(502, f"Respuesta inválida del Core Backend ({path})") from e

    # Clientes

    async def get_customer_by_caller_id(self, caller_id: str) -> Optional[Dict[str, Any]]:
        return await self._request(
            "GET", f"/api/v1/bot/client/by-jid/{caller_id}", not_found_ok=True
        )

    async def get_account_status(self, customer_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/v1/bot/client/{customer_id}/balance")

    async def report_payment(
        self,
        customer_id: str,
        amount: float,
        date: str,
        method: str,
        receipt_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "clientId": customer_id,
            "amount": amount,
            "date": date,
            "method": method,
        }
        if receipt_url:
            payload["receiptUrl"] = receipt_url
        return await self._request("POST", "/api/payments/report", json=payload)

    async def create_complaint(
        self,
        customer_id: str,
        category: str,
        description: str,
        urgency: str = "medium",
        caller_id: Optional[str] = None,
        property_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "category": category,
            "description": description,
            "urgency": urgency,
            "whatsappJid": caller_id,
        }
        if property_id:
            payload["propertyId"] = property_id
        return await self._request(
            "POST", f"/api/v1/bot/client/{customer_id}/complaints", json=payload
        )

    # Identidad

    async def validate_identity(
        self, identity_number: str, caller_id: str
    ) -> Optional[Dict[str, Any]]:
        result = await self._request(
            "POST",
            "/api/v1/bot/auth/validate-identity",
            json={"dni": identity_number, "whatsappJid": caller_id},
            not_found_ok=True,
        )
        if not result or not result.get("success"):
            return None
        return result

    async def confirm_verification_code(self, caller_id: str, code: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/v1/bot/auth/verify-otp",
            json={"whatsappJid": caller_id, "otp": code},
        )

    async def link_caller_to_customer(self, customer_id: str, caller_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/clients/{customer_id}/link-whatsapp",
            json={"whatsappJid": caller_id},
        )

    # Comercial

    async def search_properties(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        params = {k: v for k, v in filters.items() if v is not None}
        result = await self._request("GET", "/api/v1/bot/properties/search", params=params)
        return result or []

    async def get_available_cities(self) -> List[Dict[str, Any]]:
        result = await self._request("GET", "/api/v1/bot/properties/cities")
        return result or []

    async def schedule_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/showings", json=data)
