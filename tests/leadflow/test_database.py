"""Tests for leadflow.database — URL handling and engine construction."""
from sqlalchemy import text

from leadflow.database import build_engine, normalize_database_url


class TestNormalizeDatabaseUrl:

    def test_rewrites_legacy_postgres_scheme(self):
        assert normalize_database_url('postgres://u:p@db:5432/crm') == 'postgresql://u:p@db:5432/crm'

    def test_leaves_other_urls_alone(self):
        assert normalize_database_url('postgresql://db/crm') == 'postgresql://db/crm'
        assert normalize_database_url('sqlite:///local.db') == 'sqlite:///local.db'


def test_sqlite_engine_enforces_foreign_keys():
    engine = build_engine('sqlite:///:memory:')
    with engine.connect() as conn:
        assert conn.execute(text('PRAGMA foreign_keys')).scalar() == 1
    engine.dispose()
