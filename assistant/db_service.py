"""
DB Service — Capa de acceso a datos del asistente.

Encapsula TODAS las operaciones SQLite (conversaciones y mensajes) en
métodos tipados. Es síncrono: desde código async se invoca con
asyncio.to_thread.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "database" / "schema" / "schema.sql"

_CONVERSATION_FIELDS = {"mode", "bot_active", "linked_customer_id", "display_name"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DBService:
    """Servicio de acceso a datos SQLite para conversaciones y mensajes."""

    def __init__(self, db_path: Path):
        self.db_path = db_path

    # helpers

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self, schema_path: Path = SCHEMA_PATH) -> None:
        """Crea las tablas si no existen."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        with self._conn() as conn:
            conn.executescript(schema_sql)

    # Conversations

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Dict[str, Any]:
        d = dict(row)
        d["bot_active"] = bool(d["bot_active"])
        return d

    def get_conversation(self, caller_id: str) -> Optional[Dict]:
        """Obtiene el registro de conversación de un caller id."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE caller_id = ?", (caller_id,)
            ).fetchone()
            return self._row_to_conversation(row) if row else None

    def upsert_conversation(self, caller_id: str, **patch: Any) -> Dict:
        """Crea (con defaults BOT / activo / invitado) o actualiza campos puntuales."""
        unknown = set(patch) - _CONVERSATION_FIELDS
        if unknown:
            raise ValueError(f"Campos de conversación inválidos: {sorted(unknown)}")
        if "bot_active" in patch:
            patch["bot_active"] = int(bool(patch["bot_active"]))

        now = _now()
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO conversations (caller_id, created_at, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(caller_id) DO NOTHING
                """,
                (caller_id, now, now),
            )
            if patch:
                assignments = ", ".join(f"{field} = ?" for field in patch)
                conn.execute(
                    f"UPDATE conversations SET {assignments}, updated_at = ? WHERE caller_id = ?",
                    (*patch.values(), now, caller_id),
                )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM conversations WHERE caller_id = ?", (caller_id,)
            ).fetchone()
            return self._row_to_conversation(row)

    def list_conversations(self) -> List[Dict]:
        """Conversaciones ordenadas por última actividad."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations ORDER BY updated_at DESC"
            ).fetchall()
            return [self._row_to_conversation(r) for r in rows]

    # Messages

    def append_message(
        self,
        caller_id: str,
        from_bot: bool,
        text_content: Optional[str],
        content_type: str = "text",
        media_ref: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> Dict:
        """Agrega un mensaje (append-only) y lo devuelve."""
        with self._conn() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages (caller_id, from_bot, content_type, text_content, media_ref, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    caller_id,
                    int(from_bot),
                    content_type,
                    text_content,
                    media_ref,
                    timestamp or _now(),
                ),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM messages WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return dict(row)

    def find_recent_messages(self, caller_id: str, limit: int = 10) -> List[Dict]:
        """Últimos `limit` mensajes, más recientes primero."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE caller_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                (caller_id, limit),
            ).fetchall()
            return [dict(r) for r in rows]

    def get_messages(self, caller_id: str) -> List[Dict]:
        """Todos los mensajes de una conversación en orden cronológico."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE caller_id = ?
                ORDER BY timestamp ASC, id ASC
                """,
                (caller_id,),
            ).fetchall()
            return [dict(r) for r in rows]
