"""
SimulatedBackend — Core Backend en memoria para desarrollo y tests.

Sirve datos deterministas indexados por caller id o por DNI/CUIT.
Las sesiones de verificación viven en memoria por caller id y expiran
según `code_ttl`. El código enviado es fijo (`verification_code`) para
que los flujos sean reproducibles; se loguea en lugar de enviarse.
"""

import copy
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from backend.base import BackendError, BackendGateway

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION_CODE = "123456"


SIMULATED_CUSTOMERS: List[Dict[str, Any]] = [
    {
        "id": "client_001",
        "name": "Juan Pérez",
        "dni": "12345678",
        "email": "juan.perez@example.com",
        "phone": "+5492804503151",
        "callerId": "5492804503151@s.whatsapp.net",
        "properties": [
            {
                "id": "prop_001",
                "address": "Av. Libertador 1234, CABA",
                "type": "apartment",
                "currentBalance": -50000,
            }
        ],
    },
    {
        "id": "client_002",
        "name": "María González",
        "dni": "87654321",
        "email": "maria.gonzalez@example.com",
        "phone": "+5491198765432",
        "callerId": "5491198765432@s.whatsapp.net",
        "properties": [
            {
                "id": "prop_002",
                "address": "Calle Corrientes 5678, CABA",
                "type": "house",
                "currentBalance": 0,
            }
        ],
    },
    {
        "id": "client_003",
        "name": "Carlos Méndez",
        "dni": "5982015",
        "email": "cmendez@example.com",
        "phone": "+5492804111222",
        "callerId": None,
        "properties": [
            {
                "id": "prop_005",
                "address": "25 de Mayo 410, Rawson",
                "type": "apartment",
                "currentBalance": -12500,
            }
        ],
    },
]

SIMULATED_PROPERTIES: List[Dict[str, Any]] = [
    {
        "id": "prop_101",
        "title": "Departamento 2 ambientes céntrico",
        "address": "Belgrano 230",
        "zone": "Centro",
        "city": "Rawson",
        "operation": "rent",
        "type": "apartment",
        "rooms": 2,
        "price": 180000,
        "currency": "ARS",
        "surface": 50,
    },
    {
        "id": "prop_102",
        "title": "Casa 3 ambientes con patio",
        "address": "Mitre 789",
        "zone": "Barrio Norte",
        "city": "Rawson",
        "operation": "rent",
        "type": "house",
        "rooms": 3,
        "price": 250000,
        "currency": "ARS",
        "surface": 120,
    },
    {
        "id": "prop_103",
        "title": "Monoambiente a metros del mar",
        "address": "Costanera 55",
        "zone": "Costanera",
        "city": "Playa Unión",
        "operation": "rent",
        "type": "apartment",
        "rooms": 1,
        "price": 140000,
        "currency": "ARS",
        "surface": 32,
    },
    {
        "id": "prop_104",
        "title": "Dúplex 4 ambientes",
        "address": "Av. Marcelino González 1020",
        "zone": "Playa Unión",
        "city": "Playa Unión",
        "operation": "rent",
        "type": "duplex",
        "rooms": 4,
        "price": 320000,
        "currency": "ARS",
        "surface": 140,
    },
    {
        "id": "prop_105",
        "title": "Local comercial sobre avenida",
        "address": "Av. San Martín 500",
        "zone": "Centro",
        "city": "Rawson",
        "operation": "sale",
        "type": "local",
        "rooms": 0,
        "price": 65000000,
        "currency": "ARS",
        "surface": 80,
    },
]


def _mask_email(email: str) -> str:
    """'juan.perez@example.com' → 'ju********@example.com'"""
    local, _, domain = email.partition("@")
    visible = local[:2]
    return f"{visible}{'*' * max(len(local) - 2, 1)}@{domain}"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


class SimulatedBackend(BackendGateway):
    """Implementación en memoria, sustituible por LiveBackend."""

    mode = "mock"

    def __init__(
        self,
        customers: Optional[List[Dict[str, Any]]] = None,
        properties: Optional[List[Dict[str, Any]]] = None,
        verification_code: str = DEFAULT_VERIFICATION_CODE,
        code_ttl: timedelta = timedelta(minutes=10),
    ):
        self._customers = copy.deepcopy(customers if customers is not None else SIMULATED_CUSTOMERS)
        self._properties = copy.deepcopy(
            properties if properties is not None else SIMULATED_PROPERTIES
        )
        self._verification_code = verification_code
        self._code_ttl = code_ttl
        self._sessions: Dict[str, Dict[str, Any]] = {}

        # Registro de escrituras (útil para inspección en tests)
        self.complaints: List[Dict[str, Any]] = []
        self.payments: List[Dict[str, Any]] = []
        self.appointments: List[Dict[str, Any]] = []

        logger.warning("⚠️  MOCK MODE ENABLED - Usando respuestas simuladas del Core Backend")

    @property
    def verification_code(self) -> str:
        return self._verification_code

    # helpers

    def _find_customer(self, **criteria: Any) -> Optional[Dict[str, Any]]:
        for customer in self._customers:
            if all(customer.get(k) == v for k, v in criteria.items()):
                return customer
        return None

    @staticmethod
    def _public(customer: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in customer.items() if k != "dni"}

    # Clientes

    async def get_customer_by_caller_id(self, caller_id: str) -> Optional[Dict[str, Any]]:
        logger.info(f"[MOCK] get_customer_by_caller_id: {caller_id}")
        customer = self._find_customer(callerId=caller_id)
        return self._public(customer) if customer else None

    async def get_account_status(self, customer_id: str) -> Dict[str, Any]:
        logger.info(f"[MOCK] get_account_status: {customer_id}")
        customer = self._find_customer(id=customer_id)
        if customer is None:
            raise BackendError(404, "Cliente no encontrado")

        return {
            "clientId": customer["id"],
            "clientName": customer["name"],
            "balance": customer["properties"][0]["currentBalance"],
            "currency": "ARS",
            "nextPaymentDue": "2025-12-05",
            "lastPayment": {"amount": 150000, "date": "2025-11-03", "method": "transfer"},
            "properties": copy.deepcopy(customer["properties"]),
        }

    async def report_payment(
        self,
        customer_id: str,
        amount: float,
        date: str,
        method: str,
        receipt_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        logger.info(f"[MOCK] report_payment: {customer_id} ${amount} ({method})")
        if self._find_customer(id=customer_id) is None:
            raise BackendError(404, "Cliente no encontrado")

        payment = {
            "paymentId": _new_id("payment"),
            "clientId": customer_id,
            "amount": amount,
            "date": date,
            "method": method,
            "receiptUrl": receipt_url,
        }
        self.payments.append(payment)
        return {
            "success": True,
            "paymentId": payment["paymentId"],
            "message": "Pago registrado exitosamente",
            "receiptSentTo": "email",
        }

    async def create_complaint(
        self,
        customer_id: str,
        category: str,
        description: str,
        urgency: str = "medium",
        caller_id: Optional[str] = None,
        property_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        logger.info(f"[MOCK] create_complaint: {customer_id} {category}/{urgency}")
        if self._find_customer(id=customer_id) is None:
            raise BackendError(404, "Cliente no encontrado")

        ticket = {
            "id": _new_id("ticket"),
            "clientId": customer_id,
            "propertyId": property_id,
            "category": category,
            "urgency": urgency,
            "description": description,
            "whatsappJid": caller_id,
            "status": "open",
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self.complaints.append(ticket)
        return {
            "success": True,
            "ticketId": ticket["id"],
            "message": "Reclamo creado exitosamente. Nuestro equipo lo revisará pronto.",
            "ticket": ticket,
        }

    # Identidad

    async def validate_identity(
        self, identity_number: str, caller_id: str
    ) -> Optional[Dict[str, Any]]:
        logger.info(f"[MOCK] validate_identity: DNI={identity_number}, caller={caller_id}")
        customer = self._find_customer(dni=identity_number)
        if customer is None:
            return None

        expires_at = datetime.now(timezone.utc) + self._code_ttl
        masked = _mask_email(customer["email"])
        self._sessions[caller_id] = {
            "identityNumber": identity_number,
            "clientId": customer["id"],
            "clientName": customer["name"],
            "maskedEmail": masked,
            "code": self._verification_code,
            "expiresAt": expires_at,
        }
        logger.info(f"[MOCK] Código de verificación para {caller_id}: {self._verification_code}")
        return {
            "success": True,
            "clientId": customer["id"],
            "clientName": customer["name"],
            "emailSent": True,
            "maskedEmail": masked,
            "expiresAt": expires_at.isoformat(),
        }

    async def confirm_verification_code(self, caller_id: str, code: str) -> Dict[str, Any]:
        logger.info(f"[MOCK] confirm_verification_code: caller={caller_id}")
        session = self._sessions.get(caller_id)
        if session is None:
            return {
                "success": False,
                "message": "No hay una verificación pendiente. Indicá tu DNI/CUIT para comenzar.",
            }

        if datetime.now(timezone.utc) > session["expiresAt"]:
            self._sessions.pop(caller_id, None)
            return {
                "success": False,
                "message": "El código expiró. Indicá tu DNI/CUIT nuevamente para recibir uno nuevo.",
            }

        if code != session["code"]:
            return {"success": False, "message": "Código incorrecto."}

        self._sessions.pop(caller_id, None)
        return {
            "success": True,
            "clientId": session["clientId"],
            "clientName": session["clientName"],
            "message": "Cuenta vinculada exitosamente",
        }

    async def link_caller_to_customer(self, customer_id: str, caller_id: str) -> Dict[str, Any]:
        logger.info(f"[MOCK] link_caller_to_customer: {customer_id} ← {caller_id}")
        customer = self._find_customer(id=customer_id)
        if customer is None:
            raise BackendError(404, "Cliente no encontrado")
        customer["callerId"] = caller_id
        return {"success": True, "message": "WhatsApp vinculado correctamente"}

    # Comercial

    async def search_properties(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        logger.info(f"[MOCK] search_properties: {filters}")
        operation = filters.get("operation")
        prop_type = filters.get("type")
        city = (filters.get("city") or "").strip().lower()
        rooms = filters.get("rooms")
        max_price = filters.get("maxPrice")

        results = []
        for prop in self._properties:
            if operation and prop["operation"] != operation:
                continue
            if prop_type and prop["type"] != prop_type:
                continue
            if city and city not in prop["city"].lower():
                continue
            if rooms and prop["rooms"] < rooms:
                continue
            if max_price and prop["price"] > max_price:
                continue
            results.append(copy.deepcopy(prop))
        return results

    async def get_available_cities(self) -> List[Dict[str, Any]]:
        logger.info("[MOCK] get_available_cities")
        counts: Dict[str, Dict[str, Any]] = {}
        for prop in self._properties:
            entry = counts.setdefault(prop["city"], {"city": prop["city"], "rent": 0, "sale": 0})
            entry[prop["operation"]] += 1
        return list(counts.values())

    async def schedule_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"[MOCK] schedule_appointment: {data}")
        showing = dict(data, showingId=_new_id("showing"))
        self.appointments.append(showing)
        return {
            "success": True,
            "showingId": showing["showingId"],
            "confirmationSent": True,
            "message": "Visita agendada exitosamente",
        }
