"""End-to-end accessor behaviour against an in-memory SQLite backend."""
import pytest
from sqlalchemy import event

from core.errors import ArgumentValidationFailed, NotFound, TransportError
from engine.cache import QueryCache
from engine.db import make_engine
from engine.query_builder import QueryDirectives, build_query
from engine.registry import AccessorRegistry
from engine.sql_transport import TOTAL_LABEL, SqlTransport
from generate.loader import parse_meta


def _seed(todos, n):
    return todos.bulk_create([{"name": f"task {i:02d}", "description": f"d{i}"} for i in range(n)])


def test_create_applies_backend_defaults(todos):
    row = todos.create({"name": "Buy milk", "description": "2%"})
    assert row["id"]
    assert row["status"] == "pending"
    assert row["priority"] is None
    assert row["created_at"] is not None


def test_get_round_trip_and_missing_row(todos):
    row = todos.create({"name": "a", "description": "b"})
    assert todos.get(row["id"])["name"] == "a"
    with pytest.raises(NotFound):
        todos.get("does-not-exist")


def test_list_paginates_with_exact_total(todos):
    _seed(todos, 23)
    page = todos.list({"pagination": {"page": 3, "page_size": 10}, "sort": {"column": "name"}})
    assert page.pagination.total == 23
    assert page.pagination.total_pages == 3
    assert [r["name"] for r in page.data] == ["task 20", "task 21", "task 22"]


def test_repeated_reads_without_writes_are_identical(todos):
    _seed(todos, 12)
    directives = {"filters": {"status": "pending"}, "pagination": {"page": 2, "page_size": 5}}
    assert todos.list(directives) == todos.list(directives)


def test_list_beyond_last_page_is_empty_but_keeps_total(todos):
    _seed(todos, 3)
    page = todos.list({"pagination": {"page": 5, "page_size": 10}})
    assert page.data == []
    assert page.pagination.total == 3


def test_list_of_empty_table(todos):
    page = todos.list()
    assert page.data == [] and page.pagination.total == 0 and page.pagination.total_pages == 0


def test_filters_and_sort(todos):
    rows = _seed(todos, 4)
    todos.update({"id": rows[0]["id"], "priority": "high"})
    todos.update({"id": rows[1]["id"], "status": "completed"})

    high = todos.list({"filters": {"priority": "high"}})
    assert [r["id"] for r in high.data] == [rows[0]["id"]]

    unset = todos.list({"filters": {"priority": None}})
    assert unset.pagination.total == 3

    picked = todos.list({"filters": {"id": [rows[2]["id"], rows[3]["id"]]}, "sort": {"column": "name", "direction": "desc"}})
    assert [r["name"] for r in picked.data] == ["task 03", "task 02"]

    like = todos.list({"filters": [{"column": "name", "operator": "ilike", "value": "TASK 0_"}]})
    assert like.pagination.total == 4

    not_done = todos.list({"filters": [{"column": "status", "operator": "neq", "value": "completed"}]})
    assert not_done.pagination.total == 3


def test_select_limits_columns(todos):
    _seed(todos, 1)
    page = todos.list({"select": "id,name"})
    assert set(page.data[0]) == {"id", "name"}


def test_unknown_filter_column_is_a_backend_error(todos):
    _seed(todos, 1)
    with pytest.raises(TransportError):
        todos.list({"filters": {"no_such_column": 1}})


def test_update_is_partial_and_repeatable(todos):
    row = todos.create({"name": "a", "description": "b"})
    first = todos.update({"id": row["id"], "description": "changed"})
    second = todos.update({"id": row["id"], "description": "changed"})
    assert first == second
    assert first["name"] == "a" and first["description"] == "changed"


def test_update_with_only_key_returns_row_unchanged(todos):
    row = todos.create({"name": "a", "description": "b"})
    assert todos.update({"id": row["id"]}) == row


def test_update_missing_row_is_not_found(todos):
    with pytest.raises(NotFound):
        todos.update({"id": "missing", "name": "x"})


def test_update_rejects_invalid_enum(todos):
    row = todos.create({"name": "a", "description": "b"})
    with pytest.raises(ArgumentValidationFailed):
        todos.update({"id": row["id"], "status": "archived"})
    assert todos.get(row["id"])["status"] == "pending"


def test_delete_twice_is_harmless(todos):
    row = todos.create({"name": "a", "description": "b"})
    todos.delete(row["id"])
    todos.delete(row["id"])
    with pytest.raises(NotFound):
        todos.get(row["id"])


def test_bulk_update_partial_failure_keeps_committed_rows(todos):
    rows = _seed(todos, 3)
    outcome = todos.bulk_update([
        {"id": rows[0]["id"], "name": "renamed"},
        {"id": "missing", "name": "nope"},
        {"id": rows[2]["id"], "name": "never"},
    ])
    assert outcome.committed_count == 1
    assert isinstance(outcome.failure.error, NotFound)
    assert todos.get(rows[0]["id"])["name"] == "renamed"
    assert todos.get(rows[2]["id"])["name"] == "task 02"


def test_bulk_delete_removes_listed_rows_only(todos):
    rows = _seed(todos, 3)
    todos.bulk_delete([rows[0]["id"], rows[1]["id"], "unknown"])
    page = todos.list()
    assert [r["id"] for r in page.data] == [rows[2]["id"]]


def test_writes_invalidate_cached_list_reads(todos, query_cache):
    _seed(todos, 2)
    directives = QueryDirectives()
    key = todos.list_key(directives)
    query_cache.fetch(key, lambda: todos.list(directives))
    assert key in query_cache

    todos.create({"name": "x", "description": "y"})
    assert key not in query_cache


# ---- procedures ----------------------------------------------------------------

def test_procedure_null_list_becomes_empty(registry):
    assert registry.procedure("get_user_todos").call({"user_id": "u1"}) == []


def test_mutation_procedure_creates_row_and_invalidates(registry, todos, query_cache):
    query_cache.set(todos.list_key(), "stale")
    created = registry.procedure("create_todo").call({"name": "from rpc", "description": "d"})
    assert todos.get(created.id)["name"] == "from rpc"
    assert len(query_cache) == 0


def test_procedure_with_optional_argument(registry, todos):
    _seed(todos, 5)
    rows = registry.procedure("search_todos").call({"search_term": "TASK", "limit_count": 2})
    assert [r.name for r in rows] == ["task 00", "task 01"]
    assert len(registry.procedure("search_todos").call({"search_term": "task"})) == 5


def test_procedure_nullable_object(registry):
    assert registry.procedure("get_user_profile").call({"user_id": "nobody"}) is None
    registry.table("profiles").create({"id": "u1", "first_name": "Ada"})
    profile = registry.procedure("get_user_profile").call({"user_id": "u1"})
    assert profile.first_name == "Ada" and profile.last_name is None


def test_unregistered_procedure_is_a_transport_error(sql_transport):
    with pytest.raises(TransportError) as exc:
        sql_transport.call_procedure("nope", {})
    assert "Could not find the function" in str(exc.value)


def test_procedure_exception_is_wrapped(sql_transport):
    @sql_transport.procedure("explode")
    def explode(conn):
        raise RuntimeError("kaboom")

    with pytest.raises(TransportError) as exc:
        sql_transport.call_procedure("explode", {})
    assert isinstance(exc.value.cause, RuntimeError)


# ---- integer keys --------------------------------------------------------------

@pytest.fixture
def notes():
    meta = parse_meta({"tables": [{
        "tableName": "notes",
        "primaryKey": ["id"],
        "columns": [
            {"columnName": "id", "dataType": "INTEGER"},
            {"columnName": "body", "dataType": "TEXT"},
        ],
    }]})
    transport = SqlTransport(make_engine("sqlite://"), meta)
    yield AccessorRegistry.from_meta(meta, transport, QueryCache()).table("notes")
    transport.engine.dispose()


def test_integer_key_is_generated_on_create(notes):
    first = notes.create({"body": "hello"})
    second, third = notes.bulk_create([{"body": "a"}, {"body": "b"}])
    assert isinstance(first["id"], int)
    assert len({first["id"], second["id"], third["id"]}) == 3
    assert notes.get(first["id"])["body"] == "hello"
    assert notes.update({"id": second["id"], "body": "a2"})["body"] == "a2"


# ---- count/page atomicity ------------------------------------------------------

def test_page_statement_carries_window_total(sql_transport):
    descriptor, _ = build_query(QueryDirectives(pagination={"page": 1, "page_size": 5}))
    sql = str(sql_transport.page_statement("todo_items", descriptor).compile(sql_transport.engine))
    assert "count(*) OVER ()" in sql


def test_non_empty_page_is_read_with_a_single_select(todos, sql_transport):
    _seed(todos, 7)
    statements = []

    def record(conn, cursor, statement, *args):
        statements.append(statement)

    event.listen(sql_transport.engine, "before_cursor_execute", record)
    try:
        page = todos.list({"pagination": {"page": 2, "page_size": 5}})
    finally:
        event.remove(sql_transport.engine, "before_cursor_execute", record)

    assert page.pagination.total == 7
    assert len(page.data) == 2
    assert TOTAL_LABEL not in page.data[0]
    assert len([s for s in statements if s.lstrip().upper().startswith("SELECT")]) == 1
