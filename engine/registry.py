# engine/registry.py
from __future__ import annotations
import logging
from typing import Dict, Iterator, Optional

from core.ports import BackendTransport, CacheCoordinator, SchemaValidator
from engine.accessor import ProcedureAccessor, TableAccessor
from engine.meta_models import ModelMeta
from engine.query_builder import DEFAULT_PAGE_SIZE
from engine.validator import PydanticValidator
from generate.schemas import build_all

logger = logging.getLogger(__name__)


class AccessorRegistry:
    """One accessor per table and per procedure described by a ModelMeta."""

    def __init__(self, meta: ModelMeta) -> None:
        self.meta = meta
        self.tables: Dict[str, TableAccessor] = {}
        self.procedures: Dict[str, ProcedureAccessor] = {}

    @classmethod
    def from_meta(
        cls,
        meta: ModelMeta,
        transport: BackendTransport,
        cache: CacheCoordinator,
        validator: Optional[SchemaValidator] = None,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> "AccessorRegistry":
        validator = validator or PydanticValidator()
        table_schemas, proc_schemas = build_all(meta)
        reg = cls(meta)

        for t in meta.tables:
            if t.pk is None:
                logger.warning("Skipping accessor for %s (PK not single-column)", t.tableName)
                continue
            reg.tables[t.tableName] = TableAccessor(
                t, transport, cache, validator,
                schemas=table_schemas[t.tableName],
                default_page_size=default_page_size,
            )

        for p in meta.procedures:
            reg.procedures[p.name] = ProcedureAccessor(
                p, transport, cache, validator,
                schemas=proc_schemas[p.name],
            )

        logger.info(
            "Accessors ready: tables=[%s] procedures=[%s]",
            ", ".join(reg.tables), ", ".join(reg.procedures),
        )
        return reg

    def table(self, name: str) -> TableAccessor:
        try:
            return self.tables[name]
        except KeyError:
            raise KeyError(f"No table accessor named {name!r}") from None

    def procedure(self, name: str) -> ProcedureAccessor:
        try:
            return self.procedures[name]
        except KeyError:
            raise KeyError(f"No procedure accessor named {name!r}") from None

    def __iter__(self) -> Iterator[str]:
        yield from self.tables
        yield from self.procedures
