"""
Configuración compartida de fixtures para los tests del asistente.

Provee:
- DB SQLite temporal creada desde schema.sql
- Backend simulado
- Modelo LLM guionado (sin llamadas a Groq)
"""

import sys
from pathlib import Path
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

# Agregar raíz del proyecto al path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from assistant.db_service import DBService
from assistant.llm import ChatModel, ModelTurn, ToolCall
from backend.simulated import SimulatedBackend

JUAN_CALLER = "5492804503151@s.whatsapp.net"
GUEST_CALLER = "5491100000000@s.whatsapp.net"


def tool_turn(*calls) -> ModelTurn:
    """ModelTurn que pide herramientas: tool_turn(("check_account_status", {}), ...)."""
    return ModelTurn(
        tool_calls=[
            ToolCall(id=f"call_{i}", name=name, arguments=args)
            for i, (name, args) in enumerate(calls)
        ]
    )


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(text=text)


def make_model(turns: List[ModelTurn]) -> MagicMock:
    """ChatModel mockeado que devuelve los turnos en orden."""
    model = MagicMock(spec=ChatModel)
    model.complete = AsyncMock(side_effect=list(turns))
    return model


@pytest.fixture
def db(tmp_path) -> DBService:
    """DBService sobre una base temporal (solo schema)."""
    service = DBService(tmp_path / "test.db")
    service.init_schema()
    return service


@pytest.fixture
def backend() -> SimulatedBackend:
    return SimulatedBackend()
