# pyright: reportInvalidTypeForm=false
# engine/routes.py
#
# HTTP surface over the accessors:
# - one router per table accessor (list/get/create/update/delete + bulk)
# - one router for all procedures (POST /rpc/{name})
# Accessor errors are mapped to HTTP status codes in one place.

import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, Response

from core.errors import AccessorError, ArgumentValidationFailed, NotFound, ResponseValidationFailed, TransportError
from core.results import BulkOutcome
from engine.accessor import ProcedureAccessor, TableAccessor
from engine.cache import QueryCache
from engine.query_builder import MAX_PAGE_SIZE, FilterCondition, FilterOperator
from generate.schemas import sqltype_to_pytype

logger = logging.getLogger(__name__)

RESERVED_PARAMS = {"page", "page_size", "sort", "select"}
_OPERATORS = {op.value for op in FilterOperator}


# --------------------------- error mapping ------------------------------------

def _issues_detail(issues) -> List[Dict[str, Any]]:
    return [{"path": list(i.field_path), "message": i.message} for i in issues]


def error_status(exc: AccessorError) -> int:
    if isinstance(exc, ArgumentValidationFailed):
        return 422
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (ResponseValidationFailed, TransportError)):
        return 502
    return 500


def error_detail(exc: AccessorError) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, ArgumentValidationFailed):
        detail["issues"] = _issues_detail(exc.issues)
        if exc.index is not None:
            detail["index"] = exc.index
    elif isinstance(exc, ResponseValidationFailed):
        detail["issues"] = _issues_detail(exc.issues)
    return detail


@contextmanager
def _http_errors() -> Iterator[None]:
    try:
        yield
    except AccessorError as e:
        raise HTTPException(status_code=error_status(e), detail=error_detail(e)) from e


# --------------------------- request parsing ----------------------------------

def _parse_filter(column: str, raw: str) -> FilterCondition:
    """
    `?status=done` -> eq; `?age=gte.18` -> gte; `?id=in.(1,2,3)` -> in;
    `?deleted_at=is.null` -> is null.
    """
    op, sep, rest = raw.partition(".")
    if not sep or op not in _OPERATORS:
        return FilterCondition(column=column, operator=FilterOperator.EQ, value=raw)
    if op == FilterOperator.IN.value:
        items = [s.strip() for s in rest.strip("()").split(",") if s.strip()]
        return FilterCondition(column=column, operator=FilterOperator.IN, value=items)
    if op == FilterOperator.IS.value:
        value = {"null": None, "true": True, "false": False}.get(rest.lower(), rest)
        return FilterCondition(column=column, operator=FilterOperator.IS, value=value)
    return FilterCondition(column=column, operator=op, value=rest)


def _parse_sort(sort: Optional[str]) -> Optional[Dict[str, str]]:
    """`-created_at` -> desc, `name` -> asc."""
    if not sort:
        return None
    sort = sort.strip()
    if sort.startswith("-"):
        return {"column": sort[1:], "direction": "desc"}
    return {"column": sort, "direction": "asc"}


def _coerce_key(accessor: TableAccessor, raw: str) -> Any:
    col = accessor.table.column(accessor.pk)
    pytype = sqltype_to_pytype(col.dataType.value) if col else str
    if pytype is int:
        try:
            return int(raw)
        except ValueError:
            return raw
    return raw


def _outcome_body(outcome: BulkOutcome) -> Dict[str, Any]:
    items = []
    for o in outcome.outcomes:
        item: Dict[str, Any] = {"index": o.index, "status": o.status}
        if o.row is not None:
            item["row"] = o.row
        if o.error is not None:
            item["error"] = error_detail(o.error) if isinstance(o.error, AccessorError) else {"message": str(o.error)}
        items.append(item)
    return {"ok": outcome.ok, "committed": outcome.committed_count, "outcomes": items}


# ------------------------ router per table accessor ---------------------------

def build_table_router(accessor: TableAccessor, cache: Optional[QueryCache] = None) -> APIRouter:
    """
    Build an APIRouter for a single table accessor.
    - Prefix: /{tableName}
    - Tags:   [{tableName}]
    - Reads go through `cache` when given; the accessor's writes invalidate it.
    """
    name = accessor.name
    router = APIRouter(prefix=f"/{name}", tags=[name])

    def _read(key, loader):
        if cache is None:
            return loader()
        return cache.fetch(key, loader)

    # -------- LIST
    @router.get("/", name=f"{name}__list")
    def list_items(
        request: Request,
        page: int = Query(1, ge=1),
        page_size: int = Query(accessor.default_page_size, ge=1, le=MAX_PAGE_SIZE),
        sort: Optional[str] = Query(None, description="e.g. -created_at or name"),
        select: Optional[str] = Query(None, description="comma separated columns"),
    ):
        filters = [
            _parse_filter(key, value)
            for key, value in request.query_params.items()
            if key not in RESERVED_PARAMS
        ]
        directives = {
            "filters": filters,
            "sort": _parse_sort(sort),
            "pagination": {"page": page, "page_size": page_size},
            "select": select,
        }
        with _http_errors():
            return asdict(_read(accessor.list_key(directives), lambda: accessor.list(directives)))

    # bulk routes first so "bulk" is never taken for an item id

    # -------- BULK CREATE
    @router.post("/bulk", status_code=201, name=f"{name}__bulk_create")
    def bulk_create(items: List[Dict[str, Any]] = Body(...)):
        with _http_errors():
            return accessor.bulk_create(items)

    # -------- BULK UPDATE (207 when a later item failed after earlier commits)
    @router.patch("/bulk", name=f"{name}__bulk_update")
    def bulk_update(response: Response, items: List[Dict[str, Any]] = Body(...)):
        outcome = accessor.bulk_update(items)
        if not outcome.ok:
            response.status_code = 207 if outcome.committed_count else error_status(outcome.failure.error)
        return _outcome_body(outcome)

    # -------- BULK DELETE
    @router.post("/bulk-delete", status_code=204, name=f"{name}__bulk_delete")
    def bulk_delete(ids: List[Any] = Body(..., embed=True)):
        with _http_errors():
            accessor.bulk_delete(ids)
        return Response(status_code=204)

    # -------- GET
    @router.get("/{item_id}", name=f"{name}__get")
    def get_item(item_id: str):
        key = _coerce_key(accessor, item_id)
        with _http_errors():
            return _read(accessor.row_key(key), lambda: accessor.get(key))

    # -------- CREATE
    @router.post("/", status_code=201, name=f"{name}__create")
    def create_item(payload: Dict[str, Any] = Body(...)):
        with _http_errors():
            return accessor.create(payload)

    # -------- UPDATE (PATCH): the path id wins over any id in the body
    @router.patch("/{item_id}", name=f"{name}__partial_update")
    def update_item(item_id: str, payload: Dict[str, Any] = Body(...)):
        with _http_errors():
            return accessor.update({**payload, accessor.pk: _coerce_key(accessor, item_id)})

    # -------- DELETE
    @router.delete("/{item_id}", status_code=204, name=f"{name}__delete")
    def delete_item(item_id: str):
        with _http_errors():
            accessor.delete(_coerce_key(accessor, item_id))
        return Response(status_code=204)

    return router


# ------------------------ procedures ------------------------------------------

def build_procedure_router(accessors: Dict[str, ProcedureAccessor]) -> APIRouter:
    router = APIRouter(prefix="/rpc", tags=["rpc"])

    for proc_name, accessor in accessors.items():
        def make_handler(acc: ProcedureAccessor):
            def call_procedure(args: Optional[Dict[str, Any]] = Body(None)):
                with _http_errors():
                    return acc.call(args or {})
            return call_procedure

        router.add_api_route(
            f"/{proc_name}",
            make_handler(accessor),
            methods=["POST"],
            name=f"rpc__{proc_name}",
        )
    return router
