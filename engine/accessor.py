# engine/accessor.py
#
# Generic accessors driven by endpoint metadata:
# - TableAccessor:     read-one, read-many, create/update/delete, bulk variants
# - ProcedureAccessor: validated remote procedure call
#
# Every operation validates before it touches the transport, never retries,
# and notifies the cache coordinator only after a successful write.

from __future__ import annotations
import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from core.errors import ArgumentValidationFailed, NotFound, ResponseValidationFailed, TransportError
from core.ports import BackendTransport, CacheCoordinator, CacheKey, SchemaValidator
from core.results import (
    COMMITTED, FAILED, SKIPPED,
    BulkOutcome, Invalid, Issue, ItemOutcome, PageInfo, PaginatedResponse,
)
from engine.meta_models import Procedure, Table
from engine.query_builder import (
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, QueryDirectives,
    build_key_query, build_query, key_match, keys_match,
)
from engine.validator import PydanticValidator, issues_from_error
from generate.schemas import ProcedureSchemas, TableSchemas, build_procedure_schemas, build_table_schemas

logger = logging.getLogger(__name__)


def _payload(value: Any) -> Dict[str, Any]:
    """Validated value -> plain dict, keeping only the fields the caller supplied."""
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=True)
    return dict(value)


class _Accessor:
    def __init__(
        self,
        transport: BackendTransport,
        cache: CacheCoordinator,
        validator: Optional[SchemaValidator] = None,
    ) -> None:
        self.transport = transport
        self.cache = cache
        self.validator = validator or PydanticValidator()

    @property
    def name(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    def _validate_args(self, schema: Any, value: Any, index: Optional[int] = None) -> Any:
        result = self.validator.validate(schema, value)
        if isinstance(result, Invalid):
            logger.info("%s: argument validation failed%s (%d issue(s))",
                        self.name, f" at index {index}" if index is not None else "", len(result.issues))
            raise ArgumentValidationFailed(result.issues, index=index)
        return result.value

    def _invalidate(self, *keys: CacheKey) -> None:
        for key in keys:
            logger.debug("%s: invalidating %s", self.name, key)
            self.cache.invalidate(key)


class TableAccessor(_Accessor):
    """All read/write operations on one resource table."""

    def __init__(
        self,
        table: Table,
        transport: BackendTransport,
        cache: CacheCoordinator,
        validator: Optional[SchemaValidator] = None,
        *,
        schemas: Optional[TableSchemas] = None,
        enums: Optional[Dict[str, List[str]]] = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        super().__init__(transport, cache, validator)
        if table.pk is None:
            raise ValueError(f"{table.tableName}: accessors require a single-column primary key")
        if not 1 <= default_page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"default_page_size must be between 1 and {MAX_PAGE_SIZE}, got {default_page_size}")
        self.table = table
        self.pk: str = table.pk
        self.schemas = schemas or build_table_schemas(table, enums)
        self.default_page_size = default_page_size

    @property
    def name(self) -> str:
        return self.table.tableName

    # ---- cache keys ------------------------------------------------------------

    def list_scope(self) -> CacheKey:
        return (self.name,)

    def row_key(self, key: Any) -> CacheKey:
        return (self.name, "row", key)

    def list_key(self, directives: Union[QueryDirectives, Dict[str, Any], None] = None) -> CacheKey:
        return (self.name, "list", self._directives(directives).cache_token())

    # ---- reads -----------------------------------------------------------------

    def _check_key(self, key: Any) -> Any:
        if key is None:
            raise ArgumentValidationFailed([Issue(field_path=(self.pk,), message="Field required")])
        if self.schemas.key is not None:
            return self._validate_args(self.schemas.key, key)
        return key

    def _directives(self, directives: Union[QueryDirectives, Dict[str, Any], None]) -> QueryDirectives:
        if directives is None:
            return QueryDirectives()
        if isinstance(directives, QueryDirectives):
            return directives
        try:
            return QueryDirectives.model_validate(directives)
        except ValidationError as e:
            raise ArgumentValidationFailed(issues_from_error(e)) from e

    def get(self, key: Any) -> Dict[str, Any]:
        key = self._check_key(key)
        result = self.transport.query_table(self.name, build_key_query(self.pk, key))
        if not result.rows:
            raise NotFound(self.name, key)
        return result.rows[0]

    def list(self, directives: Union[QueryDirectives, Dict[str, Any], None] = None) -> PaginatedResponse[Dict[str, Any]]:
        """Paginated read; side-effect free and never touches the cache coordinator."""
        descriptor, pagination = build_query(self._directives(directives), default_page_size=self.default_page_size)
        result = self.transport.query_table(self.name, descriptor)

        total = max(result.total or 0, 0)
        data = result.rows[: pagination.page_size] if total else []
        return PaginatedResponse(
            data=data,
            pagination=PageInfo(
                page=pagination.page,
                page_size=pagination.page_size,
                total=total,
                total_pages=math.ceil(total / pagination.page_size),
            ),
        )

    # ---- single writes ---------------------------------------------------------

    def create(self, item: Any) -> Dict[str, Any]:
        payload = _payload(self._validate_args(self.schemas.create, item))
        rows = self.transport.insert(self.name, [payload])
        if not rows:
            raise TransportError(f"insert into {self.name} returned no row")
        self._invalidate(self.list_scope())
        return rows[0]

    def update(self, item: Any) -> Dict[str, Any]:
        patch = _payload(self._validate_args(self.schemas.update, item))
        key = patch.pop(self.pk)
        row = self.transport.update(self.name, key_match(self.pk, key), patch)
        if row is None:
            raise NotFound(self.name, key)
        self._invalidate(self.list_scope(), self.row_key(key))
        return row

    def delete(self, key: Any) -> None:
        key = self._check_key(key)
        self.transport.delete(self.name, key_match(self.pk, key))
        self._invalidate(self.list_scope(), self.row_key(key))

    # ---- bulk writes -----------------------------------------------------------

    def bulk_create(self, items: Sequence[Any]) -> List[Dict[str, Any]]:
        """Validate every item first; write all in one insert only if all are valid."""
        payloads = [_payload(self._validate_args(self.schemas.create, item, index=i)) for i, item in enumerate(items)]
        if not payloads:
            return []
        rows = self.transport.insert(self.name, payloads)
        self._invalidate(self.list_scope())
        return rows

    def bulk_update(self, items: Sequence[Any]) -> BulkOutcome:
        """
        Validate and write one item at a time, strictly in input order.

        The first failure (validation or transport) stops the loop: earlier
        items stay committed and later items are reported as skipped.
        """
        outcome = BulkOutcome()
        stopped = False
        for i, item in enumerate(items):
            if stopped:
                outcome.outcomes.append(ItemOutcome(index=i, status=SKIPPED))
                continue

            result = self.validator.validate(self.schemas.update, item)
            if isinstance(result, Invalid):
                logger.info("%s: bulk update aborted at index %d (validation)", self.name, i)
                err = ArgumentValidationFailed(result.issues, index=i)
                outcome.outcomes.append(ItemOutcome(index=i, status=FAILED, error=err))
                stopped = True
                continue

            patch = _payload(result.value)
            key = patch.pop(self.pk)
            try:
                row = self.transport.update(self.name, key_match(self.pk, key), patch)
            except TransportError as e:
                logger.warning("%s: bulk update aborted at index %d: %s", self.name, i, e)
                outcome.outcomes.append(ItemOutcome(index=i, status=FAILED, error=e))
                stopped = True
                continue
            if row is None:
                outcome.outcomes.append(ItemOutcome(index=i, status=FAILED, error=NotFound(self.name, key)))
                stopped = True
                continue
            outcome.outcomes.append(ItemOutcome(index=i, status=COMMITTED, row=row))

        if outcome.committed_count:
            self._invalidate(self.list_scope())
        return outcome

    def bulk_delete(self, keys: Iterable[Any]) -> None:
        keys = list(keys)
        if not keys:
            return None
        self.transport.delete(self.name, keys_match(self.pk, keys))
        self._invalidate(self.list_scope())


class ProcedureAccessor(_Accessor):
    """Validated call of one remote procedure: both arguments and response are checked."""

    def __init__(
        self,
        procedure: Procedure,
        transport: BackendTransport,
        cache: CacheCoordinator,
        validator: Optional[SchemaValidator] = None,
        *,
        schemas: Optional[ProcedureSchemas] = None,
        enums: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        super().__init__(transport, cache, validator)
        self.procedure = procedure
        self.schemas = schemas or build_procedure_schemas(procedure, enums)

    @property
    def name(self) -> str:
        return self.procedure.name

    @property
    def is_mutation(self) -> bool:
        return self.procedure.mutation

    def query_key(self, args: Optional[Dict[str, Any]] = None) -> CacheKey:
        return (self.name, json.dumps(args or {}, sort_keys=True, default=str))

    def call(self, args: Any = None, *, invalidate: Sequence[CacheKey] = ()) -> Any:
        validated = _payload(self._validate_args(self.schemas.args, {} if args is None else args))
        data = self.transport.call_procedure(self.name, validated)

        result = self.validator.validate(self.schemas.returns, data)
        if isinstance(result, Invalid):
            logger.info("%s: response validation failed (%d issue(s))", self.name, len(result.issues))
            raise ResponseValidationFailed(result.issues)

        keys = [tuple(k) for k in self.procedure.invalidates] if self.is_mutation else []
        keys.extend(tuple(k) for k in invalidate)
        self._invalidate(*keys)
        return result.value
