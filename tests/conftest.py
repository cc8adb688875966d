import itertools
from pathlib import Path

import pytest
from sqlalchemy import func, select

from core.errors import TransportError
from engine.cache import QueryCache
from engine.db import make_engine
from engine.query_builder import TableQueryResult
from engine.registry import AccessorRegistry
from engine.sql_transport import SqlTransport, connection_rows
from generate.loader import load_meta

META_PATH = Path(__file__).resolve().parents[1] / "schema" / "endpoints.meta.json"


class FakeTransport:
    """Records every call; responses are scripted per test."""

    def __init__(self):
        self.calls = []
        self.query_result = TableQueryResult(rows=[], total=0)
        self.procedure_results = {}
        self.missing_keys = set()
        self.failing_keys = set()
        self.error = None
        self._ids = itertools.count(1)

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    def call_procedure(self, name, args):
        self.calls.append(("call_procedure", name, args))
        self._maybe_fail()
        return self.procedure_results.get(name)

    def query_table(self, table, descriptor):
        self.calls.append(("query_table", table, descriptor))
        self._maybe_fail()
        return self.query_result

    def insert(self, table, rows):
        self.calls.append(("insert", table, list(rows)))
        self._maybe_fail()
        return [{"id": f"gen-{next(self._ids)}", **row} for row in rows]

    def update(self, table, match, patch):
        self.calls.append(("update", table, match, patch))
        self._maybe_fail()
        if match.value in self.failing_keys:
            raise TransportError(f"update of {match.value} rejected")
        if match.value in self.missing_keys:
            return None
        return {match.column: match.value, **patch}

    def delete(self, table, match):
        self.calls.append(("delete", table, match))
        self._maybe_fail()

    def methods(self):
        return [c[0] for c in self.calls]


class RecordingCache:
    def __init__(self):
        self.invalidated = []

    def invalidate(self, key):
        self.invalidated.append(tuple(key))


@pytest.fixture
def meta():
    return load_meta(str(META_PATH))


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def recording_cache():
    return RecordingCache()


@pytest.fixture
def fake_registry(meta, fake_transport, recording_cache):
    return AccessorRegistry.from_meta(meta, fake_transport, recording_cache)


def _register_procedures(transport: SqlTransport) -> None:
    todos = transport.tables["todo_items"]
    profiles = transport.tables["profiles"]

    @transport.procedure("create_todo")
    def create_todo(conn, name, description):
        row = conn.execute(
            todos.insert().values(name=name, description=description).returning(todos.c.id)
        ).one()
        return {"id": row.id}

    @transport.procedure("get_user_todos")
    def get_user_todos(conn, user_id):
        rows = connection_rows(conn, select(todos.c.id, todos.c.name, todos.c.description).order_by(todos.c.name))
        if not rows:
            return None
        return [{**r, "created_at": None} for r in rows]

    @transport.procedure("search_todos")
    def search_todos(conn, search_term, limit_count=None):
        stmt = select(todos.c.id, todos.c.name, todos.c.description).where(
            func.lower(todos.c.name).like(f"%{search_term.lower()}%")
        ).order_by(todos.c.name)
        if limit_count is not None:
            stmt = stmt.limit(limit_count)
        return connection_rows(conn, stmt)

    @transport.procedure("get_user_profile")
    def get_user_profile(conn, user_id):
        rows = connection_rows(conn, select(profiles).where(profiles.c.id == user_id))
        return rows[0] if rows else None


@pytest.fixture
def sql_transport(meta):
    transport = SqlTransport(make_engine("sqlite://"), meta)
    _register_procedures(transport)
    yield transport
    transport.engine.dispose()


@pytest.fixture
def query_cache():
    return QueryCache()


@pytest.fixture
def registry(meta, sql_transport, query_cache):
    return AccessorRegistry.from_meta(meta, sql_transport, query_cache)


@pytest.fixture
def todos(registry):
    return registry.table("todo_items")
