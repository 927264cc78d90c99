"""
Backend Gateway — Contrato común del Core Backend de la inmobiliaria.

Define la interfaz async que consumen las herramientas del agente.
Hay dos implementaciones intercambiables:

- LiveBackend: llamadas HTTP al Core Backend real (httpx).
- SimulatedBackend: datos deterministas en memoria, sin red.

La elección se hace una sola vez al construir (ver backend.create_backend);
ningún caller pregunta qué implementación tiene delante.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class BackendError(Exception):
    """Fallo del Core Backend (red, timeout, 4xx/5xx)."""

    def __init__(self, status_code: int = 500, message: str = "Error del Core Backend"):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __repr__(self) -> str:
        return f"BackendError(status_code={self.status_code}, message={self.message!r})"


class BackendGateway(ABC):
    """Interfaz uniforme a cuentas, reclamos, identidad, propiedades y agenda.

    Convenciones:
    - "No encontrado" en búsquedas de cliente/identidad → None (no es error).
    - Cualquier otro fallo → BackendError con el status upstream si existe.
    - Las escrituras devuelven un id generado (ticketId, paymentId, showingId).
    """

    mode: str = "abstract"

    # Clientes

    @abstractmethod
    async def get_customer_by_caller_id(self, caller_id: str) -> Optional[Dict[str, Any]]:
        """Cliente vinculado a la dirección de WhatsApp, o None."""

    @abstractmethod
    async def get_account_status(self, customer_id: str) -> Dict[str, Any]:
        """Saldo, próximo vencimiento, último pago y propiedades del cliente."""

    @abstractmethod
    async def report_payment(
        self,
        customer_id: str,
        amount: float,
        date: str,
        method: str,
        receipt_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Registra un pago informado por el cliente."""

    @abstractmethod
    async def create_complaint(
        self,
        customer_id: str,
        category: str,
        description: str,
        urgency: str = "medium",
        caller_id: Optional[str] = None,
        property_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Crea un ticket de reclamo."""

    # Identidad

    @abstractmethod
    async def validate_identity(
        self, identity_number: str, caller_id: str
    ) -> Optional[Dict[str, Any]]:
        """Busca el DNI/CUIT y dispara el envío del código de verificación.

        Returns:
            {success, clientId, clientName, maskedEmail, expiresAt} o None
        """

    @abstractmethod
    async def confirm_verification_code(self, caller_id: str, code: str) -> Dict[str, Any]:
        """Valida el código enviado. Returns {success, clientId, clientName, message}."""

    @abstractmethod
    async def link_caller_to_customer(self, customer_id: str, caller_id: str) -> Dict[str, Any]:
        """Asocia la dirección de WhatsApp al cliente en el Core."""

    # Comercial

    @abstractmethod
    async def search_properties(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Propiedades disponibles según filtros (operation, type, city, rooms, maxPrice)."""

    @abstractmethod
    async def get_available_cities(self) -> List[Dict[str, Any]]:
        """Ciudades con propiedades: [{city, rent, sale}]."""

    @abstractmethod
    async def schedule_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Agenda una visita o reunión. Returns {success, showingId, ...}."""

    async def aclose(self) -> None:
        """Libera recursos (conexiones HTTP). No-op por defecto."""
