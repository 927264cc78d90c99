"""
LLM — Binding con el proveedor de inferencia (Groq, API compatible OpenAI).

El resto del agente solo ve:
- ChatModel.complete(messages, tools) → ModelTurn (texto y/o tool calls)
- ChatSession: historial de una ejecución, con send() y send_tool_results()
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from groq import AsyncGroq

logger = logging.getLogger(__name__)

# Roles del transcript interno → roles del proveedor
_ROLE_MAP = {"caller": "user", "user": "user", "assistant": "assistant"}


@dataclass
class ToolCall:
    """Invocación de herramienta solicitada por el modelo."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelTurn:
    """Respuesta de un round: texto final y/o herramientas a ejecutar."""

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tokens_used: int = 0

    @property
    def requests_tools(self) -> bool:
        return bool(self.tool_calls)


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Argumentos del modelo (JSON string o dict) → dict. Inválidos → {}."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Argumentos de herramienta no parseables: {raw!r}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ChatModel(ABC):
    """Capacidad de inferencia con function calling."""

    model: str = "unknown"

    @abstractmethod
    async def complete(
        self, messages: List[Dict[str, Any]], tools: Sequence[Dict[str, Any]]
    ) -> ModelTurn:
        """Un round de inferencia sobre el historial completo."""


class GroqChatModel(ChatModel):
    """ChatModel sobre Groq."""

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.4,
        max_tokens: int = 1024,
        client: Optional[AsyncGroq] = None,
    ):
        if not api_key and client is None:
            raise ValueError(
                "GROQ_API_KEY no encontrada. "
                "Crea un archivo .env con tu API key de https://console.groq.com/keys"
            )
        self._client = client or AsyncGroq(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info(f"GroqChatModel inicializado (modelo: {self.model})")

    async def complete(
        self, messages: List[Dict[str, Any]], tools: Sequence[Dict[str, Any]]
    ) -> ModelTurn:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = [{"type": "function", "function": decl} for decl in tools]
            kwargs["tool_choice"] = "auto"

        completion = await self._client.chat.completions.create(**kwargs)
        message = completion.choices[0].message

        tool_calls = []
        for i, tc in enumerate(message.tool_calls or []):
            tool_calls.append(
                ToolCall(
                    id=tc.id or f"call_{i}",
                    name=tc.function.name,
                    arguments=parse_arguments(tc.function.arguments),
                )
            )
        if tool_calls:
            logger.info(f"Groq: tool calls {[t.name for t in tool_calls]}")

        usage = getattr(completion, "usage", None)
        return ModelTurn(
            text=(message.content or "").strip(),
            tool_calls=tool_calls,
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
        )


class ChatSession:
    """Historial de mensajes de UNA ejecución del agente."""

    def __init__(
        self,
        model: ChatModel,
        tools: Sequence[Dict[str, Any]],
        history: Sequence[Dict[str, str]] = (),
    ):
        self._model = model
        self._tools = list(tools)
        self.messages: List[Dict[str, Any]] = [
            {"role": _ROLE_MAP.get(turn["role"], "user"), "content": turn["content"]}
            for turn in history
        ]

    async def _complete(self) -> ModelTurn:
        turn = await self._model.complete(self.messages, self._tools)
        entry: Dict[str, Any] = {"role": "assistant", "content": turn.text or None}
        if turn.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in turn.tool_calls
            ]
        elif entry["content"] is None:
            entry["content"] = ""
        self.messages.append(entry)
        return turn

    async def send(self, text: str) -> ModelTurn:
        """Nuevo turno del usuario."""
        self.messages.append({"role": "user", "content": text})
        return await self._complete()

    async def send_tool_results(
        self, results: Sequence[Tuple[ToolCall, Dict[str, Any]]]
    ) -> ModelTurn:
        """Devuelve TODOS los resultados del round juntos y pide el siguiente turno."""
        for call, result in results:
            self.messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": json.dumps(result, ensure_ascii=False, default=str),
                }
            )
        return await self._complete()
