#!/usr/bin/env python3
"""
Gestión de migraciones del esquema POS con Alembic.

Uso:
  python migrate.py create 'mensaje'     # Nueva revisión (autogenerate)
  python migrate.py upgrade [revisión]   # Aplicar hasta head o la revisión indicada
  python migrate.py downgrade [revisión] # Revertir una revisión o hasta la indicada
  python migrate.py history              # Ver historial
  python migrate.py current              # Ver revisión aplicada
"""
import sys
from pathlib import Path

root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic import command
from alembic.config import Config

from app.core.config import settings


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(cfg: Config, message: str):
    command.revision(cfg, autogenerate=True, message=message)
    print(f"Revisión creada: {message}")


def upgrade(cfg: Config, revision: str = "head"):
    command.upgrade(cfg, revision)
    print(f"Esquema actualizado a {revision}")


def downgrade(cfg: Config, revision: str = "-1"):
    command.downgrade(cfg, revision)
    print(f"Esquema revertido a {revision}")


def main(argv):
    if len(argv) < 2:
        print(__doc__)
        return 1

    action, args = argv[1], argv[2:]
    cfg = get_alembic_config()

    if action == "create":
        if not args:
            print("Error: Se requiere un mensaje para la revisión")
            return 1
        create_migration(cfg, args[0])
    elif action == "upgrade":
        upgrade(cfg, *args[:1])
    elif action == "downgrade":
        downgrade(cfg, *args[:1])
    elif action == "history":
        command.history(cfg)
    elif action == "current":
        command.current(cfg)
    else:
        print(f"Acción desconocida: {action}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
