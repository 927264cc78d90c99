"""
Herramientas de identidad — Handshake de verificación en dos pasos.

1. verify_identity(dni): normaliza el DNI/CUIT y pide al backend que envíe
   un código al email registrado del cliente.
2. verify_otp(otp): valida el código de 6 dígitos.

verify_otp solo DEVUELVE {clientId, clientName}; persistir el vínculo en la
conversación es responsabilidad del orquestador.
"""

import logging
import re
from typing import Any, Dict

from pydantic import Field

from assistant.tools.base import Tool, ToolArgs, ToolContext, ToolName, error_result
from backend.base import BackendError

logger = logging.getLogger(__name__)

_NON_DIGIT_RE = re.compile(r"\D")

OTP_LENGTH = 6


def normalize_identity_number(raw: str) -> str:
    """
    Deja solo dígitos y colapsa el duplicado que a veces llega del upstream.

    Ejemplos:
        '12.345.678'     → '12345678'
        '59820155982015' → '5982015'
        '20-12345678-9'  → '20123456789'
    """
    cleaned = _NON_DIGIT_RE.sub("", raw or "")
    if cleaned and len(cleaned) % 2 == 0:
        half = len(cleaned) // 2
        if cleaned[:half] == cleaned[half:]:
            return cleaned[:half]
    return cleaned


class VerifyIdentityArgs(ToolArgs):
    dni: str = Field(
        ...,
        description="DNI o CUIT del usuario sin puntos ni guiones (7 a 11 dígitos).",
    )


class VerifyIdentityTool(Tool):
    name = ToolName.VERIFY_IDENTITY
    description = (
        "Inicia la verificación de identidad. Úsalo SOLO cuando el usuario proporcione "
        "su DNI o CUIT (7 a 11 dígitos). NO lo uses si envía un código de 6 dígitos "
        "(eso es un OTP)."
    )
    args_model = VerifyIdentityArgs

    async def execute(self, args: VerifyIdentityArgs, context: ToolContext) -> Dict[str, Any]:
        identity_number = normalize_identity_number(args.dni)
        if not identity_number:
            return error_result("El DNI/CUIT debe contener números. ¿Podés enviarlo de nuevo?")

        try:
            result = await self.backend.validate_identity(identity_number, context.caller_id)
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error validando identidad: {e.message}")
            return error_result(e.message or "Error al validar identidad.")

        if not result:
            return {
                "status": "not_found",
                "message": (
                    "No encontramos ningún cliente activo con ese DNI/CUIT. "
                    "¿Estás seguro que el número es correcto?"
                ),
            }

        return {
            "status": "otp_generated",
            "action": "wait_otp_verification",
            "clientId": result.get("clientId"),
            "clientName": result.get("clientName"),
            "maskedEmail": result.get("maskedEmail"),
            "message": (
                f"Encontramos la cuenta a nombre de {result.get('clientName')}. "
                f"Enviamos un código de seguridad a {result.get('maskedEmail')}. "
                f"Pedile al usuario que responda con el código de {OTP_LENGTH} dígitos."
            ),
        }


class VerifyOtpArgs(ToolArgs):
    otp: str = Field(..., description="Código OTP de 6 dígitos que envió el usuario.")


class VerifyOtpTool(Tool):
    name = ToolName.VERIFY_OTP
    description = (
        "Verifica el código de seguridad OTP. Úsalo SIEMPRE que el usuario envíe un número "
        "de 6 dígitos, especialmente después de haber solicitado validación de identidad."
    )
    args_model = VerifyOtpArgs

    async def execute(self, args: VerifyOtpArgs, context: ToolContext) -> Dict[str, Any]:
        code = _NON_DIGIT_RE.sub("", args.otp)
        if len(code) != OTP_LENGTH:
            return error_result(
                f"El código debe tener exactamente {OTP_LENGTH} dígitos. "
                "Por favor, verificalo e intentá nuevamente."
            )

        try:
            result = await self.backend.confirm_verification_code(context.caller_id, code)
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error verificando OTP: {e.message}")
            return error_result(e.message or "Error al verificar el código.")

        if not result.get("success"):
            return error_result(
                result.get("message") or "Código incorrecto. Verificalo e intentá nuevamente."
            )

        logger.info(f"[{context.caller_id}] Identidad verificada → {result.get('clientId')}")
        return {
            "status": "verified",
            "clientId": result.get("clientId"),
            "clientName": result.get("clientName"),
            "message": (
                "Identidad verificada. Ya puede consultar su saldo, informar pagos "
                "y crear reclamos."
            ),
        }
