"""Herramienta de reclamos — Crea tickets de mantenimiento para clientes vinculados."""

import logging
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from assistant.tools.base import (
    Tool,
    ToolArgs,
    ToolContext,
    ToolName,
    auth_required_result,
    error_result,
)
from backend.base import BackendError

logger = logging.getLogger(__name__)


class CreateComplaintArgs(ToolArgs):
    description: str = Field(
        ..., min_length=3, description="Descripción detallada del problema o reclamo."
    )
    category: Literal["plumbing", "electric", "heating", "cleaning", "security", "other"] = Field(
        "other",
        description=(
            "Categoría: plumbing (plomería), electric (electricidad), heating (calefacción), "
            "cleaning (limpieza), security (seguridad), other (otro)."
        ),
    )
    urgency: Literal["low", "medium", "high", "urgent"] = Field(
        "medium",
        description="Urgencia: low, medium, high, urgent. Si no se especifica, medium.",
    )
    property_id: Optional[str] = Field(
        None, description="ID de la propiedad afectada, si el cliente tiene varias."
    )


class CreateComplaintTool(Tool):
    name = ToolName.CREATE_COMPLAINT
    description = (
        "Crea un reclamo o ticket de soporte técnico para el cliente. Úsalo cuando el "
        "usuario reporte problemas de mantenimiento, desperfectos o quejas sobre la propiedad."
    )
    args_model = CreateComplaintArgs

    async def execute(self, args: CreateComplaintArgs, context: ToolContext) -> Dict[str, Any]:
        if not context.linked_customer_id:
            return auth_required_result(
                "Para crear un reclamo necesitás estar registrado. Por favor, verificá tu "
                "identidad primero indicando tu DNI/CUIT."
            )

        try:
            result = await self.backend.create_complaint(
                customer_id=context.linked_customer_id,
                category=args.category,
                description=args.description,
                urgency=args.urgency,
                caller_id=context.caller_id,
                property_id=args.property_id,
            )
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error creando reclamo: {e.message}")
            return error_result(e.message or "Error al crear el reclamo. Intentá nuevamente.")

        if not result.get("success"):
            return error_result("No pudimos crear el reclamo. Por favor, intentá nuevamente.")

        ticket_id = str(result.get("ticketId", ""))
        return {
            "status": "created",
            "ticketId": ticket_id,
            "reference": f"#{ticket_id[-6:]}",
            "message": (
                f"Reclamo registrado con el número #{ticket_id[-6:]}. "
                "El equipo de mantenimiento lo revisará y se comunicará para coordinar."
            ),
        }
