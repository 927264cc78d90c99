"""
Base de herramientas — Contrato común de las operaciones invocables por el LLM.

Cada herramienta declara:
- name: nombre único (ToolName)
- description: texto que lee el modelo para decidir cuándo usarla
- args_model: modelo Pydantic de argumentos (de ahí sale el JSON schema)
- execute(): la ejecución real contra el Backend Gateway

El ToolContext (caller id + cliente vinculado) NUNCA forma parte de los
argumentos visibles por el modelo.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict

from backend.base import BackendGateway


class ToolName(str, Enum):
    """Operaciones que el agente puede ejecutar."""

    CHECK_ACCOUNT_STATUS = "check_account_status"
    REPORT_PAYMENT = "report_payment"
    CREATE_COMPLAINT = "create_complaint"
    VERIFY_IDENTITY = "verify_identity"
    VERIFY_OTP = "verify_otp"
    SEARCH_PROPERTIES = "search_properties"
    GET_AVAILABLE_CITIES = "get_available_cities"
    SCHEDULE_MEETING = "schedule_meeting"
    GET_RENTAL_REQUIREMENTS = "get_rental_requirements"
    REQUEST_APPRAISAL = "request_appraisal"


@dataclass(frozen=True)
class ToolContext:
    """Identidad del interlocutor, inyectada por el orquestador."""

    caller_id: str
    linked_customer_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_linked(self) -> bool:
        return bool(self.linked_customer_id)


class ToolArgs(BaseModel):
    """Base de argumentos. Tolera campos extra y números donde se espera texto."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class NoArgs(ToolArgs):
    pass


def error_result(message: str, requires_auth: bool = False) -> Dict[str, Any]:
    """Descriptor de error normalizado que se devuelve al modelo."""
    result: Dict[str, Any] = {"error": True, "message": message}
    if requires_auth:
        result["requires_auth"] = True
    return result


def auth_required_result(message: str) -> Dict[str, Any]:
    return error_result(message, requires_auth=True)


def _clean_schema(node: Any) -> Any:
    """Simplifica el JSON schema de Pydantic al subconjunto que aceptan los LLMs.

    - Elimina 'title' y 'default: null'
    - Colapsa Optional[X] (anyOf [X, null]) a X
    """
    if isinstance(node, list):
        return [_clean_schema(item) for item in node]
    if not isinstance(node, dict):
        return node

    if "anyOf" in node:
        variants = [v for v in node["anyOf"] if v.get("type") != "null"]
        if len(variants) == 1:
            merged = {k: v for k, v in node.items() if k != "anyOf"}
            merged.update(variants[0])
            node = merged

    cleaned = {}
    for key, value in node.items():
        if key == "title" and isinstance(value, str):
            continue
        if key == "default" and value is None:
            continue
        if key == "properties":
            cleaned[key] = {name: _clean_schema(prop) for name, prop in value.items()}
        else:
            cleaned[key] = _clean_schema(value)
    return cleaned


class Tool(ABC):
    """Operación con nombre, descripción, schema tipado y ejecución."""

    name: ClassVar[ToolName]
    description: ClassVar[str]
    args_model: ClassVar[Type[ToolArgs]] = NoArgs

    def __init__(self, backend: Optional[BackendGateway] = None):
        self.backend = backend

    @classmethod
    def parameters_schema(cls) -> Dict[str, Any]:
        schema = _clean_schema(cls.args_model.model_json_schema())
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return schema

    def declaration(self) -> Dict[str, Any]:
        """Declaración en formato function-calling (name/description/parameters)."""
        return {
            "name": self.name.value,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }

    @abstractmethod
    async def execute(self, args: ToolArgs, context: ToolContext) -> Dict[str, Any]:
        """Ejecuta la operación. Debe devolver un dict, nunca lanzar."""


def format_ars(amount: float) -> str:
    """150000 → '$150.000' (separador de miles argentino)."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.0f}".replace(",", ".")
