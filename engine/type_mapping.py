# engine/type_mapping.py
from __future__ import annotations
from sqlalchemy import types
from sqlalchemy.dialects import postgresql

from engine.meta_models import DataType

def sqlalchemy_type(
    data_type: DataType | str,
    *,
    length: int | None = None,
    precision: int | None = None,
    scale: int | None = None,
    dialect: str = "generic",
):
    """
    Map our meta DataType -> SQLAlchemy Column type.
    `dialect` should start with 'sqlite', 'postgres' or 'generic'.
    """
    dt = (data_type.value if isinstance(data_type, DataType) else (data_type or "")).upper()
    d = (dialect or "generic").lower()

    if dt == "UUID":
        # rows travel as plain strings; postgres keeps its native type
        if d.startswith("postgres"):
            return postgresql.UUID(as_uuid=False)
        return types.String(36)
    if dt == "VARCHAR":
        return types.String(length or 255)
    if dt == "TEXT":
        return types.Text()
    if dt == "INTEGER":
        return types.Integer()
    if dt == "BIGINT":
        return types.BigInteger()
    if dt == "DECIMAL":
        return types.Numeric(precision or 18, scale or 6)
    if dt == "FLOAT":
        return types.Float()
    if dt == "BOOLEAN":
        return types.Boolean()
    if dt == "DATE":
        return types.Date()
    if dt == "TIMESTAMP":
        return types.DateTime()
    if dt == "JSON":
        if d.startswith("postgres"):
            return postgresql.JSONB(none_as_null=True)
        return types.JSON(none_as_null=True)
    if dt == "BLOB":
        return types.LargeBinary()

    raise ValueError(f"Unsupported dataType: {data_type}")
