# generate/schemas.py
#
# Builds pydantic types from endpoint metadata:
# - tables:      Row / Create / Update models
# - procedures:  Args model + Returns type
#
# These types are what the accessors hand to the SchemaValidator.

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import AfterValidator, BaseModel, ConfigDict, StringConstraints, create_model

from engine.meta_models import Column, ModelMeta, Procedure, Shape, ShapeType, Table

logger = logging.getLogger(__name__)


def to_pascal_case(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.replace("-", "_").split("_") if part)


# --------------------------- type mapping helpers -----------------------------

def sqltype_to_pytype(dt: str) -> Any:
    dt = (dt or "").upper()
    if dt in ("VARCHAR", "CHAR", "UUID", "TEXT"):
        return str
    if dt in ("INTEGER", "INT", "BIGINT", "SMALLINT"):
        return int
    if dt in ("NUMERIC", "DECIMAL"):
        return Decimal
    if dt in ("FLOAT", "REAL", "DOUBLE"):
        return float
    if dt == "BOOLEAN":
        return bool
    if dt == "DATE":
        return date
    if dt in ("TIMESTAMP", "DATETIME"):
        return datetime
    if dt == "JSON":
        return Any
    if dt in ("BLOB", "BYTEA"):
        return bytes
    return Any


def _enum_literal(values: List[str]) -> Any:
    return Literal[tuple(values)]  # type: ignore[valid-type]


def _column_pytype(col: Column, enums: Dict[str, List[str]]) -> Any:
    if col.enum:
        return _enum_literal(enums[col.enum])
    pytype = sqltype_to_pytype(col.dataType.value)
    if pytype is str and (col.minLength or col.length):
        return Annotated[str, StringConstraints(min_length=col.minLength, max_length=col.length)]
    return pytype


_GENERATED_KEY_TYPES = ("UUID", "INTEGER", "BIGINT")


def _is_generated_key(col: Column, pk: Optional[str]) -> bool:
    # matches ddl_builder: uuid default or autoincrement
    return col.columnName == pk and col.dataType.value in _GENERATED_KEY_TYPES


def _is_required_for_create(col: Column, pk: Optional[str]) -> bool:
    """
    A column is required on CREATE if:
      - it's NOT nullable, and
      - it has NO default value (UUID and integer primary keys are generated by the backend).
    """
    if col.isNullable:
        return False
    if col.has_default:
        return False
    if _is_generated_key(col, pk):
        return False
    return True


# -------------------- table models ---------------------------------------------

@dataclass(frozen=True)
class TableSchemas:
    row: Type[BaseModel]
    create: Type[BaseModel]
    update: Type[BaseModel]
    key: Any = None


def build_table_schemas(entity: Table, enums: Optional[Dict[str, List[str]]] = None) -> TableSchemas:
    """
    - Row:    includes ALL fields; nullable columns are Optional[...] with default None.
    - Create: required iff non-nullable & no default. Absent optional fields stay unset.
    - Update: primary key required; every other column optional (partial update).
    """
    enums = enums or {}
    pk = entity.pk

    row_fields: Dict[str, Tuple[Any, Any]] = {}
    create_fields: Dict[str, Tuple[Any, Any]] = {}
    update_fields: Dict[str, Tuple[Any, Any]] = {}

    for col in entity.columns:
        name = col.columnName
        pytype = _column_pytype(col, enums)
        nullable = bool(col.isNullable)

        row_fields[name] = (Optional[pytype], None) if nullable else (pytype, ...)

        if _is_required_for_create(col, pk):
            create_fields[name] = (pytype, ...)
        else:
            create_fields[name] = (Optional[pytype] if nullable else pytype, None)

        if name == pk:
            update_fields[name] = (pytype, ...)
        else:
            update_fields[name] = (Optional[pytype] if nullable else pytype, None)

    base = to_pascal_case(entity.tableName)
    Row = create_model(f"{base}Row", __config__=ConfigDict(extra="allow"), **row_fields)
    Create = create_model(f"Add{base}Request", **create_fields)
    Update = create_model(f"Update{base}Request", **update_fields)
    key_col = entity.column(pk) if pk else None
    key = _column_pytype(key_col, enums) if key_col is not None else None
    return TableSchemas(row=Row, create=Create, update=Update, key=key)


# -------------------- procedure shapes -----------------------------------------

def _none_to_empty(v):
    return [] if v is None else v


class ShapeBuilder:
    """Recursively converts Shape declarations into pydantic annotations."""

    def __init__(self, enums: Optional[Dict[str, List[str]]] = None, owner: str = "") -> None:
        self.enums = enums or {}
        self.owner = owner

    def _base(self, shape: Shape, name: str) -> Any:
        t = shape.type
        if t == ShapeType.STRING:
            return str
        if t == ShapeType.INTEGER:
            return int
        if t == ShapeType.NUMBER:
            return float
        if t == ShapeType.BOOLEAN:
            return bool
        if t == ShapeType.JSON:
            return Any
        if t == ShapeType.ENUM:
            values = shape.values or self.enums.get(shape.enum or "", [])
            return _enum_literal(values)
        if t == ShapeType.ARRAY:
            item = self.annotation(shape.items, f"{name}Item") if shape.items else Any
            return List[item]  # type: ignore[valid-type]
        if t == ShapeType.OBJECT:
            return self.model(shape.fields or {}, name)
        raise ValueError(f"Unsupported shape type: {t}")

    def annotation(self, shape: Shape, name: str) -> Any:
        depth = shape.nullable_depth
        if depth > 1:
            logger.warning(
                "%s: %s is nullable %d times; treating as a single optional value (generation defect)",
                self.owner or "shape", name, depth,
            )
        base = self._base(shape, name)
        if depth == 0:
            return base
        if shape.type == ShapeType.ARRAY:
            # nullable list == optional list, empty by default
            return Annotated[Optional[base], AfterValidator(_none_to_empty)]
        return Optional[base]

    def field(self, shape: Shape, name: str) -> Tuple[Any, Any]:
        ann = self.annotation(shape, name)
        if shape.type == ShapeType.ARRAY and shape.nullable_depth:
            return ann, []
        if shape.optional:
            if shape.nullable_depth == 0:
                ann = Optional[ann]
            return ann, None
        return ann, ...

    def model(self, fields: Dict[str, Shape], name: str) -> Type[BaseModel]:
        defs = {fname: self.field(s, f"{name}{to_pascal_case(fname)}") for fname, s in fields.items()}
        return create_model(name, **defs)


@dataclass(frozen=True)
class ProcedureSchemas:
    args: Type[BaseModel]
    returns: Any


def build_procedure_schemas(proc: Procedure, enums: Optional[Dict[str, List[str]]] = None) -> ProcedureSchemas:
    base = to_pascal_case(proc.name)
    builder = ShapeBuilder(enums, owner=proc.name)
    return ProcedureSchemas(
        args=builder.model(proc.args, f"{base}Args"),
        returns=builder.annotation(proc.returns, f"{base}Returns"),
    )


def build_all(meta: ModelMeta) -> Tuple[Dict[str, TableSchemas], Dict[str, ProcedureSchemas]]:
    tables = {t.tableName: build_table_schemas(t, meta.enums) for t in meta.tables}
    procs = {p.name: build_procedure_schemas(p, meta.enums) for p in meta.procedures}
    return tables, procs
