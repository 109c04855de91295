from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from prizepool.db.engine import make_engine


def upgrade_db(target_revision: str = "head") -> None:
    """Apply the pool migrations up to ``target_revision``."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def print_tables() -> None:
    engine = make_engine()
    try:
        tables = sorted(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    print(f"Pool database has {len(tables)} tables: {', '.join(tables)}")


def main() -> None:
    upgrade_db()
    print_tables()


if __name__ == "__main__":
    main()
