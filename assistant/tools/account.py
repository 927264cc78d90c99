"""
Herramientas de cuenta — Saldo y reporte de pagos.

Ambas requieren un cliente vinculado: sin `linked_customer_id` devuelven
{"error": True, "requires_auth": True} y no tocan el backend.
"""

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
    format_ars,
)
from backend.base import BackendError

logger = logging.getLogger(__name__)


class CheckAccountStatusTool(Tool):
    name = ToolName.CHECK_ACCOUNT_STATUS
    description = (
        "Consulta el estado de cuenta, saldo pendiente y deuda del cliente actual. "
        "Úsalo cuando el usuario pregunte cuánto debe, su saldo o estado de cuenta."
    )

    async def execute(self, args: ToolArgs, context: ToolContext) -> Dict[str, Any]:
        if not context.linked_customer_id:
            return auth_required_result(
                "Usuario no identificado. No se puede consultar el saldo de un usuario "
                "invitado: pedile su DNI/CUIT para verificar su identidad."
            )

        try:
            status = await self.backend.get_account_status(context.linked_customer_id)
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error consultando saldo: {e.message}")
            return error_result(f"Error al consultar saldo: {e.message}")

        balance = status.get("balance")
        if isinstance(balance, (int, float)):
            if balance < 0:
                summary = f"Saldo pendiente: {format_ars(-balance)}"
            else:
                summary = "No registra deuda. Cuenta al día."
            status = dict(status, message=summary)
        return status


class ReportPaymentArgs(ToolArgs):
    amount: float = Field(..., gt=0, description="Monto pagado en pesos argentinos.")
    date: str = Field(..., description="Fecha del pago (AAAA-MM-DD o texto, ej: 'ayer').")
    method: Literal["transfer", "cash", "check"] = Field(
        "transfer",
        description="Medio de pago: transfer (transferencia), cash (efectivo), check (cheque).",
    )
    receipt_url: Optional[str] = Field(
        None, description="URL del comprobante si el usuario envió una imagen."
    )


class ReportPaymentTool(Tool):
    name = ToolName.REPORT_PAYMENT
    description = (
        "Registra un pago informado por el cliente (transferencia, efectivo o cheque) "
        "para que Administración lo impute. Úsalo cuando el usuario diga que ya pagó "
        "o envíe un comprobante."
    )
    args_model = ReportPaymentArgs

    async def execute(self, args: ReportPaymentArgs, context: ToolContext) -> Dict[str, Any]:
        if not context.linked_customer_id:
            return auth_required_result(
                "Para registrar un pago necesitás estar verificado. "
                "Indicá tu DNI/CUIT para validar tu identidad."
            )

        try:
            result = await self.backend.report_payment(
                customer_id=context.linked_customer_id,
                amount=args.amount,
                date=args.date,
                method=args.method,
                receipt_url=args.receipt_url,
            )
        except BackendError as e:
            logger.error(f"[{context.caller_id}] Error registrando pago: {e.message}")
            return error_result("No pudimos registrar el pago. Por favor, intentá nuevamente.")

        if not result.get("success"):
            return error_result(result.get("message") or "No pudimos registrar el pago.")

        return {
            "status": "reported",
            "paymentId": result.get("paymentId"),
            "message": (
                f"Pago por {format_ars(args.amount)} informado a Administración. "
                "El recibo llegará por email dentro de las 48 hs."
            ),
        }
