"""
Tools — Operaciones que el LLM puede solicitar durante el loop de function calling.

`build_default_registry(backend)` arma el conjunto completo. Las herramientas
declaradas al modelo y las ejecutables son el mismo conjunto.
"""

from assistant.tools.account import CheckAccountStatusTool, ReportPaymentTool
from assistant.tools.base import Tool, ToolContext, ToolName, error_result
from assistant.tools.complaints import CreateComplaintTool
from assistant.tools.identity import VerifyIdentityTool, VerifyOtpTool, normalize_identity_number
from assistant.tools.properties import (
    GetAvailableCitiesTool,
    GetRentalRequirementsTool,
    RequestAppraisalTool,
    SearchPropertiesTool,
)
from assistant.tools.registry import ToolRegistry
from assistant.tools.scheduling import ScheduleMeetingTool
from backend.base import BackendGateway

__all__ = [
    "Tool",
    "ToolContext",
    "ToolName",
    "ToolRegistry",
    "build_default_registry",
    "error_result",
    "normalize_identity_number",
]


def build_default_registry(backend: BackendGateway) -> ToolRegistry:
    """Registra una instancia de cada herramienta sobre el backend dado."""
    registry = ToolRegistry(
        [
            CheckAccountStatusTool(backend),
            ReportPaymentTool(backend),
            CreateComplaintTool(backend),
            VerifyIdentityTool(backend),
            VerifyOtpTool(backend),
            SearchPropertiesTool(backend),
            GetAvailableCitiesTool(backend),
            ScheduleMeetingTool(backend),
            GetRentalRequirementsTool(backend),
            RequestAppraisalTool(backend),
        ]
    )

    missing = {name.value for name in ToolName} - set(registry.names)
    if missing:
        raise RuntimeError(f"Herramientas sin implementación: {sorted(missing)}")
    return registry
