"""
Brief: Tests for pdsql.store.engine helpers.

Inputs:
  - None

Outputs:
  - None
"""

import threading

import pytest
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from pdsql.store import SQLRecordRepository, create_db_engine, init_schema


def test_memory_sqlite_uses_static_pool():
    engine = create_db_engine("sqlite://")
    assert isinstance(engine.pool, StaticPool)
    engine.dispose()


def test_file_sqlite_uses_default_pool(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'pdns.db'}")
    assert not isinstance(engine.pool, StaticPool)
    engine.dispose()


def test_invalid_url_raises_value_error():
    with pytest.raises(ValueError):
        create_db_engine("not a database url")


def test_init_schema_is_idempotent():
    engine = create_db_engine("sqlite://")
    init_schema(engine)
    init_schema(engine)
    names = set(inspect(engine).get_table_names())
    assert {"domains", "records"} <= names
    indexes = {ix["name"] for ix in inspect(engine).get_indexes("records")}
    assert {"nametype_index", "rec_domain_id_index"} <= indexes
    engine.dispose()


def test_echo_flag():
    engine = create_db_engine("sqlite://", echo=True)
    assert engine.echo is True
    engine.dispose()


def test_memory_database_shared_across_threads(seeded_engine):
    """
    Brief: Listener threads see the same in-memory tables.

    Inputs:
      - Seeded in-memory engine queried from a worker thread

    Outputs:
      - None: Asserts the worker finds the seeded A record
    """
    results = []

    def _worker():
        results.extend(SQLRecordRepository(seeded_engine).find_records("example.org", ["A"]))

    t = threading.Thread(target=_worker)
    t.start()
    t.join(5)
    assert [r.content for r in results] == ["192.168.1.1"]
