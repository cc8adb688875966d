# core/ports.py
from __future__ import annotations
from typing import Protocol, Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from core.results import ValidationResult

if TYPE_CHECKING:  # pragma: no cover
    from engine.meta_models import ModelMeta
    from engine.query_builder import FilterCondition, QueryDescriptor, TableQueryResult

CacheKey = Tuple[Any, ...]


class SchemaLoader(Protocol):
    def load(self) -> "ModelMeta": ...


class SchemaValidator(Protocol):
    """Checks a value against a declared shape; reports every violated field."""
    def validate(self, schema: Any, value: Any) -> ValidationResult: ...


class BackendTransport(Protocol):
    """
    Executes procedure calls and table operations against the backend.
    Every method raises core.errors.TransportError on failure.
    """
    def call_procedure(self, name: str, args: Dict[str, Any]) -> Any: ...

    def query_table(self, table: str, descriptor: "QueryDescriptor") -> "TableQueryResult": ...

    def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]: ...

    def update(self, table: str, match: "FilterCondition", patch: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def delete(self, table: str, match: "FilterCondition") -> None: ...


class CacheCoordinator(Protocol):
    """Fire-and-forget invalidation of every cached read prefixed by `key`."""
    def invalidate(self, key: CacheKey) -> None: ...
