import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect

from temanagement.database import Base, make_engine


REVISION = (
    Path(__file__).resolve().parents[1]
    / "alembic"
    / "versions"
    / "3b1f6c2d9a47_create_auth_tables.py"
)


def _load_revision():
    spec = importlib.util.spec_from_file_location("create_auth_tables", REVISION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_revision_matches_model_metadata():
    revision = _load_revision()
    engine = make_engine("sqlite://")

    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.upgrade()
        inspector = inspect(conn)
        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            columns = {c["name"] for c in inspector.get_columns(name)}
            assert columns == {c.name for c in table.columns}

        with Operations.context(MigrationContext.configure(conn)):
            revision.downgrade()
        assert inspect(conn).get_table_names() == []
    engine.dispose()
