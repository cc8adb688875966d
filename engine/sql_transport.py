# engine/sql_transport.py
#
# BackendTransport over a SQL database via SQLAlchemy Core.
# Tables come from endpoint metadata; procedures are Python callables
# registered by name and run inside a transaction.

from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import delete as sa_delete
from sqlalchemy import MetaData, func, insert as sa_insert, select
from sqlalchemy import update as sa_update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import TransportError
from engine.ddl_builder import build_tables_from_meta, create_all_from_meta
from engine.meta_models import ModelMeta
from engine.query_builder import FilterCondition, FilterOperator, QueryDescriptor, SortDirection, TableQueryResult

logger = logging.getLogger(__name__)

Procedure = Callable[..., Any]

TOTAL_LABEL = "__total_count"


def _serialize_row(row) -> Dict[str, Any]:
    return dict(row._mapping)


class SqlTransport:
    """
    Executes table reads/writes and procedures against `engine`.

    Unknown tables, columns or procedures are backend errors and surface as
    TransportError, like every SQLAlchemy failure.
    """

    def __init__(self, engine: Engine, meta: ModelMeta, *, dialect: Optional[str] = None, create: bool = True) -> None:
        self.engine = engine
        self.meta = meta
        dialect = dialect or engine.dialect.name
        if create:
            self.tables = create_all_from_meta(engine, meta, dialect=dialect)
        else:
            self.tables = build_tables_from_meta(meta, MetaData(), dialect=dialect)
        self._procedures: Dict[str, Procedure] = {}

    # ---------------------------- procedures ----------------------------------

    def register_procedure(self, name: str, fn: Procedure) -> None:
        """`fn(conn, **args)` runs inside a transaction; its return value is the raw response."""
        self._procedures[name] = fn

    def procedure(self, name: str):
        def deco(fn: Procedure) -> Procedure:
            self.register_procedure(name, fn)
            return fn
        return deco

    def call_procedure(self, name: str, args: Dict[str, Any]) -> Any:
        fn = self._procedures.get(name)
        if fn is None:
            raise TransportError(f"Could not find the function {name}")
        try:
            with self.engine.begin() as conn:
                return fn(conn, **args)
        except TransportError:
            raise
        except Exception as e:
            logger.warning("Procedure %s failed: %s", name, e)
            raise TransportError(f"{name} failed: {e}", cause=e) from e

    # ---------------------------- helpers -------------------------------------

    @contextmanager
    def _translate_errors(self, op: str, table: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.warning("%s on %s failed: %s", op, table, e)
            raise TransportError(f"{op} on {table} failed: {e}", cause=e) from e

    def _table(self, name: str):
        t = self.tables.get(name)
        if t is None:
            raise TransportError(f"relation {name!r} does not exist")
        return t

    def _col(self, table, name: str):
        if name not in table.c:
            raise TransportError(f"column {table.name}.{name} does not exist")
        return table.c[name]

    def _condition(self, table, cond: FilterCondition):
        col = self._col(table, cond.column)
        op, v = cond.operator, cond.value
        if op == FilterOperator.EQ:
            return col == v
        if op == FilterOperator.NEQ:
            return col != v
        if op == FilterOperator.GT:
            return col > v
        if op == FilterOperator.GTE:
            return col >= v
        if op == FilterOperator.LT:
            return col < v
        if op == FilterOperator.LTE:
            return col <= v
        if op == FilterOperator.LIKE:
            return col.like(v)
        if op == FilterOperator.ILIKE:
            return col.ilike(v)
        if op == FilterOperator.IS:
            return col.is_(v)
        if op == FilterOperator.IN:
            return col.in_(list(v or ()))
        raise TransportError(f"unsupported operator {op}")

    def _where(self, stmt, table, filters: Sequence[FilterCondition]):
        for cond in filters:
            stmt = stmt.where(self._condition(table, cond))
        return stmt

    def _primary_key_cols(self, table) -> List:
        return list(table.primary_key.columns)

    # ---------------------------- table ops -----------------------------------

    def page_statement(self, table: str, descriptor: QueryDescriptor):
        """
        SELECT for one page. With `descriptor.count` the exact total of the
        filtered set rides along in every row as a window count, so total
        and page come from the same statement snapshot.
        """
        t = self._table(table)
        cols = [self._col(t, c) for c in descriptor.select] if descriptor.select else list(t.c)
        if descriptor.count:
            cols.append(func.count().over().label(TOTAL_LABEL))

        stmt = self._where(select(*cols), t, descriptor.filters)
        if descriptor.order is not None:
            col = self._col(t, descriptor.order.column)
            stmt = stmt.order_by(col.desc() if descriptor.order.direction == SortDirection.DESC else col.asc())
        # stable paging
        stmt = stmt.order_by(*self._primary_key_cols(t))
        if descriptor.range is not None:
            stmt = stmt.offset(descriptor.offset).limit(descriptor.limit)
        return stmt

    def count_statement(self, table: str, descriptor: QueryDescriptor):
        t = self._table(table)
        return self._where(select(func.count()).select_from(t), t, descriptor.filters)

    def query_table(self, table: str, descriptor: QueryDescriptor) -> TableQueryResult:
        stmt = self.page_statement(table, descriptor)
        with self._translate_errors("select", table):
            with self.engine.begin() as conn:
                rows = [_serialize_row(r) for r in conn.execute(stmt)]
                total = None
                if descriptor.count:
                    if rows:
                        total = rows[0][TOTAL_LABEL]
                        for r in rows:
                            del r[TOTAL_LABEL]
                    else:
                        # page past the end: no row carries the window total
                        total = conn.execute(self.count_statement(table, descriptor)).scalar_one()
        return TableQueryResult(rows=rows, total=total)

    def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        t = self._table(table)
        for row in rows:
            for name in row:
                self._col(t, name)
        out: List[Dict[str, Any]] = []
        with self._translate_errors("insert", table):
            with self.engine.begin() as conn:
                for row in rows:
                    result = conn.execute(sa_insert(t).values(**row).returning(*t.c))
                    out.append(_serialize_row(result.one()))
        logger.debug("Inserted %d row(s) into %s", len(out), table)
        return out

    def update(self, table: str, match: FilterCondition, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        t = self._table(table)
        for name in patch:
            self._col(t, name)
        with self._translate_errors("update", table):
            with self.engine.begin() as conn:
                if not patch:
                    stmt = self._where(select(*t.c), t, [match])
                else:
                    stmt = self._where(sa_update(t), t, [match]).values(**patch).returning(*t.c)
                row = conn.execute(stmt).first()
        return _serialize_row(row) if row is not None else None

    def delete(self, table: str, match: FilterCondition) -> None:
        t = self._table(table)
        with self._translate_errors("delete", table):
            with self.engine.begin() as conn:
                result = conn.execute(self._where(sa_delete(t), t, [match]))
        logger.debug("Deleted %s row(s) from %s", result.rowcount, table)


def connection_rows(conn: Connection, stmt) -> List[Dict[str, Any]]:
    """Helper for procedures: run `stmt` and return plain dict rows."""
    return [_serialize_row(r) for r in conn.execute(stmt)]
