"""
Script para inicializar la base de datos SQLite del asistente.
Crea las tablas de conversaciones y mensajes a partir de schema.sql.
"""

import argparse
import sqlite3
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from api.config import get_settings
from assistant.db_service import SCHEMA_PATH, DBService


def init_database(db_path: Path, force: bool = False) -> None:
    """Crea la base (opcionalmente borrando la existente) y muestra las tablas."""
    if db_path.exists():
        if not force:
            print(f"⚠️  La base de datos ya existe en {db_path}")
            response = input("¿Deseas recrearla? Esto borrará todos los datos (y/n): ")
            if response.lower() != "y":
                print("❌ Operación cancelada")
                return
        db_path.unlink()

    print(f"📦 Creando base de datos en {db_path}")
    print(f"📋 Ejecutando {SCHEMA_PATH.name}...")
    DBService(db_path).init_schema()

    conn = sqlite3.connect(db_path)
    try:
        tables = [
            row[0]
            for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
        ]
    finally:
        conn.close()

    print("\n✅ Base de datos inicializada correctamente")
    print(f"📊 Tablas creadas: {', '.join(tables)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inicializa la base SQLite del asistente")
    parser.add_argument("--db", type=Path, default=None, help="Ruta de la base (default: DATABASE_PATH)")
    parser.add_argument("--force", action="store_true", help="Recrear sin preguntar")
    args = parser.parse_args()

    init_database(args.db or get_settings().db_full_path, force=args.force)
