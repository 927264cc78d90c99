"""
Herramientas comerciales — Búsqueda de propiedades, ciudades, requisitos y tasaciones.

Ninguna requiere identidad vinculada: están pensadas para captar interesados.
"""

import logging
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from assistant.tools.base import Tool, ToolArgs, ToolContext, ToolName, error_result, format_ars
from backend.base import BackendError

logger = logging.getLogger(__name__)

MAX_LISTED_PROPERTIES = 5

_OPERATION_LABELS = {"rent": "alquiler", "sale": "venta"}

_TYPE_LABELS = {
    "apartment": "Departamento",
    "house": "Casa",
    "duplex": "Dúplex",
    "local": "Local",
    "office": "Oficina",
    "land": "Terreno",
}


def _format_property(index: int, prop: Dict[str, Any]) -> str:
    rooms = prop.get("rooms") or 0
    rooms_txt = f" - {rooms} amb." if rooms > 0 else ""
    type_txt = _TYPE_LABELS.get(prop.get("type"), prop.get("type", ""))
    price = prop.get("price")
    price_txt = format_ars(price) if isinstance(price, (int, float)) else str(price)
    lines = [
        f"{index}. *{prop.get('title', 'Propiedad')}*",
        f"   📍 {prop.get('address', '')} - {prop.get('zone', prop.get('city', ''))}",
        f"   🏠 {type_txt}{rooms_txt}",
        f"   💰 {price_txt} {prop.get('currency', 'ARS')}",
    ]
    if prop.get("surface"):
        lines.append(f"   📏 {prop['surface']}m²")
    return "\n".join(lines)


class SearchPropertiesArgs(ToolArgs):
    operation: Literal["rent", "sale"] = Field(
        ..., description='Tipo de operación: "rent" para alquiler o "sale" para venta.'
    )
    type: Optional[Literal["apartment", "house", "duplex", "local", "office"]] = Field(
        None, description="Tipo de propiedad (opcional)."
    )
    city: Optional[str] = Field(
        None,
        description='Ciudad o localidad (búsqueda parcial, ej: "playa" para "Playa Unión").',
    )
    rooms: Optional[int] = Field(None, ge=0, description="Cantidad mínima de ambientes.")
    max_price: Optional[float] = Field(
        None, gt=0, description="Precio máximo en pesos argentinos."
    )


class SearchPropertiesTool(Tool):
    name = ToolName.SEARCH_PROPERTIES
    description = (
        "Busca y MUESTRA propiedades disponibles. Úsalo SIEMPRE que el usuario pregunte por "
        "alquileres o ventas, ANTES de pedir datos de contacto o agendar visitas."
    )
    args_model = SearchPropertiesArgs

    async def execute(self, args: SearchPropertiesArgs, context: ToolContext) -> Dict[str, Any]:
        filters = {
            "operation": args.operation,
            "type": args.type,
            "city": args.city,
            "rooms": args.rooms,
            "maxPrice": args.max_price,
        }
        try:
            results = await self.backend.search_properties(filters)
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error buscando propiedades: {e.message}")
            return error_result("Hubo un error al buscar propiedades. Por favor intentá más tarde.")

        if not results:
            city_txt = f" en {args.city}" if args.city else ""
            return {
                "success": False,
                "count": 0,
                "message": (
                    f"No encontramos propiedades para {_OPERATION_LABELS[args.operation]}"
                    f"{city_txt} con los filtros indicados."
                ),
            }

        listed = results[:MAX_LISTED_PROPERTIES]
        body = "\n\n".join(_format_property(i, p) for i, p in enumerate(listed, 1))
        noun = "propiedad disponible" if len(results) == 1 else "propiedades disponibles"
        more = (
            f"\n\n_Mostrando {len(listed)} de {len(results)} resultados._"
            if len(results) > len(listed)
            else ""
        )
        return {
            "success": True,
            "count": len(results),
            "properties": listed,
            "message": f"Encontré {len(results)} {noun}:\n\n{body}{more}",
        }


class GetAvailableCitiesTool(Tool):
    name = ToolName.GET_AVAILABLE_CITIES
    description = (
        "Lista las ciudades donde hay propiedades disponibles para alquiler o venta. Úsalo "
        'cuando el usuario pregunte "¿En qué ciudades tienen propiedades?".'
    )

    async def execute(self, args: ToolArgs, context: ToolContext) -> Dict[str, Any]:
        try:
            cities: List[Dict[str, Any]] = await self.backend.get_available_cities()
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error consultando ciudades: {e.message}")
            return error_result(
                "Hubo un error al consultar las ciudades disponibles. Intentá más tarde."
            )

        if not cities:
            return {"success": False, "message": "No hay propiedades disponibles en este momento."}

        lines = []
        for city in cities:
            operations = []
            if city.get("rent", 0) > 0:
                operations.append(f"{city['rent']} en alquiler")
            if city.get("sale", 0) > 0:
                operations.append(f"{city['sale']} en venta")
            lines.append(f"• *{city.get('city')}*: {' y '.join(operations) or 'sin stock'}")

        return {
            "success": True,
            "cities": cities,
            "message": "Tenemos propiedades disponibles en:\n\n" + "\n".join(lines),
        }


RENTAL_REQUIREMENTS = {
    "housing": {
        "requirements": [
            "Mes de alquiler por adelantado",
            "Mes de depósito en garantía",
            "Garantía propietaria o recibos de sueldo (sujeto a aprobación)",
            "Comisión inmobiliaria",
            "DNI del inquilino y garantes",
            "Demostración de ingresos (últimos 3 recibos de sueldo)",
        ],
        "message": (
            "Para vivienda trabajamos con garantía propietaria o recibos de sueldo de "
            "terceros que tripliquen el valor del alquiler."
        ),
    },
    "commercial": {
        "requirements": [
            "Mes de alquiler por adelantado",
            "Mes de depósito en garantía",
            "Garantía propietaria o seguro de caución",
            "Comisión inmobiliaria (5% del total del contrato)",
            "Constancia de inscripción en AFIP",
            "Últimos 3 balances certificados (si es sociedad)",
        ],
        "message": (
            "Para alquileres comerciales solicitamos garantía propietaria o seguro de "
            "caución, además de la documentación fiscal correspondiente."
        ),
    },
}


class RentalRequirementsArgs(ToolArgs):
    type: Literal["housing", "commercial"] = Field(
        "housing", description="Tipo de alquiler: housing (vivienda) o commercial (comercial)."
    )


class GetRentalRequirementsTool(Tool):
    name = ToolName.GET_RENTAL_REQUIREMENTS
    description = "Proporciona la lista de requisitos necesarios para alquilar una propiedad."
    args_model = RentalRequirementsArgs

    async def execute(self, args: RentalRequirementsArgs, context: ToolContext) -> Dict[str, Any]:
        entry = RENTAL_REQUIREMENTS[args.type]
        return {
            "type": args.type,
            "requirements": list(entry["requirements"]),
            "message": entry["message"],
        }


class RequestAppraisalArgs(ToolArgs):
    property_type: Literal["apartment", "house", "duplex", "local", "office", "land"] = Field(
        ..., description="Tipo de propiedad a tasar."
    )
    address: str = Field(..., min_length=3, description="Dirección aproximada de la propiedad.")
    contact_name: str = Field(..., min_length=2, description="Nombre de contacto.")
    contact_phone: Optional[str] = Field(None, description="Teléfono de contacto.")


class RequestAppraisalTool(Tool):
    name = ToolName.REQUEST_APPRAISAL
    description = (
        "Solicita una tasación. Úsalo cuando el usuario quiera saber cuánto vale su casa o "
        "departamento para venderlo o alquilarlo."
    )
    args_model = RequestAppraisalArgs

    async def execute(self, args: RequestAppraisalArgs, context: ToolContext) -> Dict[str, Any]:
        reference = f"TAS-{uuid.uuid4().int % 1_000_000:06d}"
        contact = args.contact_phone or "el número de este chat"
        logger.info(f"[{context.caller_id}] Tasación solicitada {reference}: {args.address}")
        return {
            "success": True,
            "reference": reference,
            "message": (
                f"Recibimos la solicitud de tasación ({_TYPE_LABELS[args.property_type]} en "
                f"{args.address}). Un tasador se contactará al {contact} dentro de las "
                f"próximas 24 horas hábiles. Referencia: #{reference}"
            ),
        }
