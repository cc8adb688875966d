# engine/ddl_builder.py
from __future__ import annotations
import logging
import uuid
from typing import Dict, Any
from sqlalchemy import Column, MetaData, Table as SATable, func
from engine.meta_models import ModelMeta, Table, Column as MetaCol
from engine.type_mapping import sqlalchemy_type

logger = logging.getLogger(__name__)

def _is_now(val: object) -> bool:
    """Detect 'now'/'now()' style defaults."""
    if not isinstance(val, str):
        return False
    return val.strip().lower() in {"now", "now()", "current_timestamp", "current_timestamp()"}

def _new_uuid() -> str:
    return str(uuid.uuid4())

def _column_kwargs(meta_col: MetaCol, is_pk: bool) -> Dict[str, Any]:
    data_type = meta_col.dataType.value
    kwargs: Dict[str, Any] = {
        "primary_key": is_pk,
        "nullable": bool(meta_col.isNullable) and not is_pk,
        "unique": bool(meta_col.isUnique),
    }

    dv = meta_col.defaultValue
    if _is_now(dv):
        if data_type == "TIMESTAMP":
            kwargs["server_default"] = func.now()
        elif data_type == "DATE":
            kwargs["server_default"] = func.current_date()
    elif dv is not None:
        kwargs["default"] = dv
    elif is_pk and data_type == "UUID":
        kwargs["default"] = _new_uuid
    elif is_pk and data_type in ("INTEGER", "BIGINT"):
        kwargs["autoincrement"] = True

    return kwargs

def build_table(table_meta: Table, metadata: MetaData, dialect: str = "generic") -> SATable:
    primary_keys = set(table_meta.primaryKey or [])
    columns = []
    for col in table_meta.columns:
        sa_type = sqlalchemy_type(
            col.dataType,
            length=col.length,
            precision=col.precision,
            scale=col.scale,
            dialect=dialect,
        )
        columns.append(Column(col.columnName, sa_type, **_column_kwargs(col, col.columnName in primary_keys)))
    return SATable(table_meta.tableName, metadata, *columns)

def build_tables_from_meta(meta: ModelMeta, metadata: MetaData, dialect: str = "generic") -> Dict[str, SATable]:
    """Build SQLAlchemy Core tables for every table in meta. Returns {tableName: Table}."""
    tables: Dict[str, SATable] = {}
    for t in meta.tables:
        tables[t.tableName] = build_table(t, metadata, dialect=dialect)
    logger.debug("Built tables: %s", ", ".join(tables))
    return tables

def create_all_from_meta(engine, meta: ModelMeta, dialect: str = "generic") -> Dict[str, SATable]:
    metadata = MetaData()
    tables = build_tables_from_meta(meta, metadata, dialect=dialect)
    metadata.create_all(bind=engine)
    return tables
