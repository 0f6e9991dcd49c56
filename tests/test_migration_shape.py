from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from uplift.models import Base

ROOT = Path(__file__).resolve().parents[1]
MIGRATION = ROOT / "alembic" / "versions" / "20261019_0001_gamification_schema.py"


def _config() -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg


def test_required_tables_present_in_migration():
    text = MIGRATION.read_text(encoding="utf-8")
    for t in Base.metadata.tables:
        assert f'"{t}"' in text


def test_open_pair_guards_are_partial_unique_indexes():
    text = MIGRATION.read_text(encoding="utf-8")
    assert '"uq_competition_open_pair"' in text
    assert '"uq_duel_open_pair"' in text
    assert "status IN ('pending', 'active')" in text


def test_migrations_avoid_postgres_now_function_for_portability():
    for migration_file in (ROOT / "alembic" / "versions").glob("*.py"):
        text = migration_file.read_text(encoding="utf-8").lower()
        assert "now()" not in text, f"Non-portable now() found in {migration_file.name}"


def test_alembic_upgrade_head_matches_models_on_sqlite(tmp_path, monkeypatch):
    db_path = tmp_path / "migration_smoke.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    command.upgrade(_config(), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        insp = inspect(engine)
        tables = set(insp.get_table_names())
        assert set(Base.metadata.tables) <= tables
        duel_indexes = {ix["name"]: ix for ix in insp.get_indexes("duels")}
        assert duel_indexes["uq_duel_open_pair"]["unique"]
    finally:
        engine.dispose()


def test_alembic_downgrade_base_drops_everything(tmp_path, monkeypatch):
    db_path = tmp_path / "migration_down.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    cfg = _config()
    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
