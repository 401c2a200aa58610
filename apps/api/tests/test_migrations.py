import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

import models  # noqa: F401
from database import Base

VERSIONS_DIR = Path(__file__).resolve().parents[1] / "alembic" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(filename[:-3], VERSIONS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_initial_schema_matches_models(tmp_path):
    revision = _load_revision("20261018_000001_initial_schema.py")
    engine = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")

    with engine.begin() as conn:
        context = MigrationContext.configure(conn)
        with Operations.context(context):
            revision.upgrade()

        inspector = inspect(conn)
        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            migrated_columns = {column["name"] for column in inspector.get_columns(name)}
            assert migrated_columns == {column.name for column in table.columns}, name

        with Operations.context(context):
            revision.downgrade()
        assert inspect(conn).get_table_names() == []

    engine.dispose()
