"""
ToolRegistry — Mapa tipado nombre → herramienta.

- register(): en el arranque; nombres duplicados son un error de programación.
- declarations(): lo que se le ofrece al modelo.
- execute(): despacho + validación de argumentos + normalización de errores.
  Nunca lanza: un nombre desconocido o un fallo interno se devuelven como
  {"error": True, "message": ...} para que el loop siempre tenga algo que
  reenviar al modelo.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from assistant.tools.base import Tool, ToolContext, ToolName, error_result

logger = logging.getLogger(__name__)


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "argumentos"
        parts.append(f"{field}: {err.get('msg', 'inválido')}")
    return "; ".join(parts)


class ToolRegistry:
    """Registro de herramientas ejecutables y declaradas."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[ToolName, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Herramienta duplicada: {tool.name.value}")
        self._tools[tool.name] = tool
        logger.debug(f"Herramienta registrada: {tool.name.value}")

    @property
    def names(self) -> List[str]:
        return [name.value for name in self._tools]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> Optional[Tool]:
        try:
            return self._tools.get(ToolName(name))
        except ValueError:
            return None

    def declarations(self) -> List[Dict[str, Any]]:
        return [tool.declaration() for tool in self._tools.values()]

    async def execute(
        self, name: str, args: Optional[Dict[str, Any]], context: ToolContext
    ) -> Dict[str, Any]:
        """Ejecuta una herramienta por nombre con argumentos crudos del modelo."""
        tool = self.get(name)
        if tool is None:
            logger.error(f"[{context.caller_id}] Herramienta no encontrada: {name}")
            return error_result(f"La herramienta '{name}' no existe o no está disponible.")

        try:
            parsed = tool.args_model.model_validate(args or {})
        except ValidationError as e:
            logger.warning(f"[{context.caller_id}] Argumentos inválidos para {name}: {e}")
            return error_result(f"Argumentos inválidos para {name}: {_describe_validation_error(e)}")

        logger.info(f"[{context.caller_id}] Ejecutando herramienta: {name}")
        try:
            result = await tool.execute(parsed, context)
        except Exception as e:
            logger.error(f"[{context.caller_id}] Error ejecutando {name}: {e}", exc_info=True)
            return error_result("Ocurrió un error interno al ejecutar la operación.")

        if not isinstance(result, dict):
            return {"result": result}
        return result
