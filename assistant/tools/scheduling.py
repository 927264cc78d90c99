"""Herramienta de agenda — Visitas a propiedades y reuniones en la oficina."""

import logging
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from assistant.tools.base import Tool, ToolArgs, ToolContext, ToolName
from backend.base import BackendError

logger = logging.getLogger(__name__)

DEFAULT_DATE = "A coordinar"


def phone_from_caller_id(caller_id: str) -> str:
    """'5492804503151@s.whatsapp.net' → '5492804503151'"""
    return caller_id.split("@", 1)[0]


class ScheduleMeetingArgs(ToolArgs):
    type: Literal["showing", "meeting"] = Field(
        ..., description="Tipo de cita: showing (visita a propiedad) o meeting (reunión en oficina)."
    )
    property_id: Optional[str] = Field(
        None, description="ID o referencia de la propiedad a visitar (si aplica)."
    )
    preferred_date: Optional[str] = Field(
        None, description='Fecha preferida en texto, ej: "lunes por la tarde".'
    )
    client_name: Optional[str] = Field(
        None, description="Nombre del interesado (solo si no está registrado)."
    )
    client_phone: Optional[str] = Field(
        None, description="Teléfono de contacto (solo si no está registrado)."
    )


class ScheduleMeetingTool(Tool):
    name = ToolName.SCHEDULE_MEETING
    description = (
        "Agenda una visita a una propiedad o una reunión en la oficina. Úsalo cuando el "
        "usuario quiera ver un inmueble o acercarse a la oficina."
    )
    args_model = ScheduleMeetingArgs

    async def execute(self, args: ScheduleMeetingArgs, context: ToolContext) -> Dict[str, Any]:
        client_name = args.client_name
        client_phone = args.client_phone

        # Cliente vinculado: sus datos del Core tienen prioridad
        if context.linked_customer_id:
            try:
                customer = await self.backend.get_customer_by_caller_id(context.caller_id)
            except BackendError as e:
                logger.warning(f"[{context.caller_id}] No se pudo obtener el cliente: {e.message}")
                customer = None
            if customer:
                client_name = customer.get("name") or client_name
                client_phone = customer.get("phone") or client_phone

        client_name = client_name or context.display_name or "Cliente"
        client_phone = client_phone or phone_from_caller_id(context.caller_id)
        preferred_date = args.preferred_date or DEFAULT_DATE
        what = "visitar la propiedad" if args.type == "showing" else "una reunión en la oficina"

        payload = {
            "type": args.type,
            "propertyId": args.property_id,
            "clientName": client_name,
            "clientPhone": client_phone,
            "preferredDate": preferred_date,
            "notes": (
                f"Visita a propiedad {args.property_id or 'sin especificar'}"
                if args.type == "showing"
                else "Reunión en oficina"
            ),
        }

        try:
            result = await self.backend.schedule_appointment(payload)
        except BackendError as e:
            # La solicitud queda anotada igual; un asesor coordina a mano
            logger.error(f"[{context.caller_id}] Error agendando: {e.message}")
            return {
                "success": True,
                "status": "noted",
                "message": (
                    f"Tomamos nota del interés en {what} (fecha preferida: {preferred_date}). "
                    "Un asesor se comunicará para coordinar los detalles."
                ),
            }

        return {
            "success": True,
            "status": "scheduled",
            "showingId": result.get("showingId"),
            "message": (
                f"Solicitud registrada para {what}. Fecha preferida: {preferred_date}. "
                f"Te contactaremos al {client_phone} para confirmar el horario."
            ),
        }
