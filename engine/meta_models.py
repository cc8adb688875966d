from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional, Any, Union
from pydantic import BaseModel, ConfigDict, Field

class DataType(str, Enum):
    UUID = "UUID"
    VARCHAR = "VARCHAR"
    TEXT = "TEXT"
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    DECIMAL = "DECIMAL"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    JSON = "JSON"
    BLOB = "BLOB"

class ShapeType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"
    ARRAY = "array"
    OBJECT = "object"
    ENUM = "enum"

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)

class Column(_Frozen):
    columnName: str
    dataType: DataType
    length: Optional[int] = None
    minLength: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    isNullable: Optional[bool] = None
    isUnique: Optional[bool] = None
    defaultValue: Optional[Any] = None
    hasDefault: Optional[bool] = None
    enum: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return bool(self.hasDefault) or self.defaultValue is not None

class Table(_Frozen):
    tableName: str
    columns: List[Column]
    primaryKey: Optional[List[str]] = None

    @property
    def pk(self) -> Optional[str]:
        """The single primary-key column, or None when the key is absent/composite."""
        if self.primaryKey and len(self.primaryKey) == 1:
            return self.primaryKey[0]
        return None

    def column(self, name: str) -> Optional[Column]:
        for c in self.columns:
            if c.columnName == name:
                return c
        return None

class Shape(_Frozen):
    """
    Declarative value shape for procedure arguments and return values.

    `nullable` is normally a bool; an int records the nullability depth a
    generator emitted (2 for a doubly-nullable value).
    """
    type: ShapeType
    nullable: Union[bool, int] = False
    optional: bool = False
    items: Optional["Shape"] = None
    fields: Optional[Dict[str, "Shape"]] = None
    values: Optional[List[str]] = None
    enum: Optional[str] = None

    @property
    def nullable_depth(self) -> int:
        if isinstance(self.nullable, bool):
            return 1 if self.nullable else 0
        return max(int(self.nullable), 0)

class Procedure(_Frozen):
    name: str
    args: Dict[str, Shape] = Field(default_factory=dict)
    returns: Shape
    mutation: bool = False
    invalidates: List[List[str]] = Field(default_factory=list)

class ModelMeta(_Frozen):
    tables: List[Table] = Field(default_factory=list)
    procedures: List[Procedure] = Field(default_factory=list)
    enums: Dict[str, List[str]] = Field(default_factory=dict)

    def table(self, name: str) -> Optional[Table]:
        for t in self.tables:
            if t.tableName == name:
                return t
        return None

    def procedure(self, name: str) -> Optional[Procedure]:
        for p in self.procedures:
            if p.name == name:
                return p
        return None

Shape.model_rebuild()
