"""
Agent — Loop acotado de function calling.

Flujo de run():
1. Construir contexto (directiva + confirmación + historial)
2. Enviar el mensaje nuevo al modelo con las herramientas declaradas
3. Si pide herramientas: ejecutarlas todas (en paralelo) vía ToolRegistry
4. Devolver todos los resultados del round juntos y repetir
5. Cortar cuando responde sin herramientas o al llegar a max_rounds

run() nunca lanza: devuelve AgentReply con `error` cargado y el texto de
disculpa fijo. respond() es el atajo que devuelve solo el texto.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from assistant.context import ContextBuilder
from assistant.llm import ChatModel, ChatSession, ModelTurn, ToolCall
from assistant.prompts import ACKNOWLEDGMENT
from assistant.tools.base import ToolContext, ToolName
from assistant.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_ROUNDS = 5

FALLBACK_APOLOGY = (
    "Disculpá, tuve un problema técnico procesando tu solicitud. "
    "¿Podrías intentarlo de nuevo?"
)

ROUND_LIMIT_FALLBACK = (
    "No logré completar tu consulta en este momento. "
    "¿Podrías reformularla? Si preferís, escribí *ASESOR* y te paso con una persona."
)


class OrchestrationError(Exception):
    """Fallo interno de una ejecución (modelo, contexto, red)."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


@dataclass
class VerifiedCustomer:
    customer_id: str
    display_name: Optional[str] = None


@dataclass
class AgentReply:
    """Resultado de una ejecución. `text` siempre es apto para enviar al usuario."""

    text: str
    rounds: int = 0
    tools_called: List[str] = field(default_factory=list)
    verified_customer: Optional[VerifiedCustomer] = None
    hit_round_limit: bool = False
    error: Optional[OrchestrationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Agent:
    """Orquestador LLM + herramientas para un mensaje entrante."""

    def __init__(
        self,
        model: ChatModel,
        registry: ToolRegistry,
        context_builder: ContextBuilder,
        max_rounds: int = MAX_ROUNDS,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds debe ser >= 1")
        self._model = model
        self._registry = registry
        self._context = context_builder
        self.max_rounds = max_rounds
        self._declarations = registry.declarations()

    async def respond(
        self,
        caller_id: str,
        text: str,
        is_linked: bool,
        display_name: Optional[str] = None,
        linked_customer_id: Optional[str] = None,
    ) -> str:
        reply = await self.run(caller_id, text, is_linked, display_name, linked_customer_id)
        return reply.text

    async def run(
        self,
        caller_id: str,
        text: str,
        is_linked: bool,
        display_name: Optional[str] = None,
        linked_customer_id: Optional[str] = None,
    ) -> AgentReply:
        logger.info(
            f"[{caller_id}] Procesando mensaje de {display_name or caller_id} "
            f"({'VINCULADO' if is_linked else 'INVITADO'})"
        )
        tool_context = ToolContext(
            caller_id=caller_id,
            linked_customer_id=linked_customer_id,
            display_name=display_name,
        )
        reply = AgentReply(text="")

        stage = "context"
        try:
            ctx = await self._context.build(caller_id, is_linked, display_name)
            history = [
                {"role": "caller", "content": ctx.system_directive},
                {"role": "assistant", "content": ACKNOWLEDGMENT},
                *ctx.transcript,
            ]
            session = ChatSession(self._model, self._declarations, history)

            stage = "inference"
            turn = await session.send(text)
            reply.rounds = 1

            while turn.requests_tools:
                if reply.rounds >= self.max_rounds:
                    reply.hit_round_limit = True
                    logger.warning(
                        f"[{caller_id}] Límite de {self.max_rounds} rounds alcanzado; "
                        f"herramientas pendientes sin ejecutar: {[c.name for c in turn.tool_calls]}"
                    )
                    break

                stage = "tools"
                results, tool_context = await self._execute_round(turn, tool_context, reply)

                stage = "inference"
                turn = await session.send_tool_results(results)
                reply.rounds += 1

        except Exception as e:
            error = OrchestrationError(stage, e)
            logger.error(f"[{caller_id}] Error procesando mensaje ({stage}): {e}", exc_info=True)
            reply.error = error
            reply.text = FALLBACK_APOLOGY
            return reply

        if reply.hit_round_limit:
            reply.text = ROUND_LIMIT_FALLBACK
        else:
            reply.text = turn.text or ROUND_LIMIT_FALLBACK
        logger.info(
            f"[{caller_id}] Respuesta generada ({reply.rounds} rounds, "
            f"herramientas: {reply.tools_called or 'ninguna'})"
        )
        return reply

    async def _execute_round(
        self, turn: ModelTurn, tool_context: ToolContext, reply: AgentReply
    ) -> Tuple[List[Tuple[ToolCall, Dict[str, Any]]], ToolContext]:
        """Ejecuta todas las herramientas del round y junta los resultados."""
        calls = turn.tool_calls
        outcomes = await asyncio.gather(
            *(self._registry.execute(call.name, call.arguments, tool_context) for call in calls)
        )
        reply.tools_called.extend(call.name for call in calls)

        for call, result in zip(calls, outcomes):
            verified = _verified_customer(call, result)
            if verified:
                reply.verified_customer = verified
                # Los rounds siguientes de esta ejecución ya ven al cliente vinculado
                tool_context = ToolContext(
                    caller_id=tool_context.caller_id,
                    linked_customer_id=verified.customer_id,
                    display_name=verified.display_name or tool_context.display_name,
                )
        return list(zip(calls, outcomes)), tool_context


def _verified_customer(call: ToolCall, result: Dict[str, Any]) -> Optional[VerifiedCustomer]:
    if call.name != ToolName.VERIFY_OTP.value:
        return None
    if result.get("error") or result.get("status") != "verified" or not result.get("clientId"):
        return None
    return VerifiedCustomer(
        customer_id=str(result["clientId"]),
        display_name=result.get("clientName"),
    )
