# engine/query_builder.py
#
# Turns a set of read directives (filters, sort, pagination, field selection)
# into a QueryDescriptor the transport can execute. No I/O happens here.

from __future__ import annotations
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class FilterOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IS = "is"
    IN = "in"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FilterCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    operator: FilterOperator = FilterOperator.EQ
    value: Any = None

    @field_validator("value")
    @classmethod
    def _freeze_membership(cls, v):
        # keep conditions hashable and order-stable
        if isinstance(v, (list, set, frozenset)):
            return tuple(v)
        return v


class SortOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    direction: SortDirection = SortDirection.ASC


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = Field(DEFAULT_PAGE, ge=1)
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


def _condition_from_predicate(column: str, predicate: Any) -> FilterCondition:
    if isinstance(predicate, FilterCondition):
        return predicate
    if isinstance(predicate, dict) and "operator" in predicate:
        return FilterCondition(column=column, operator=predicate["operator"], value=predicate.get("value"))
    if predicate is None:
        return FilterCondition(column=column, operator=FilterOperator.IS, value=None)
    if isinstance(predicate, (list, tuple, set, frozenset)):
        return FilterCondition(column=column, operator=FilterOperator.IN, value=predicate)
    return FilterCondition(column=column, operator=FilterOperator.EQ, value=predicate)


class QueryDirectives(BaseModel):
    """
    Directive set for one read. Every part is optional.

    `filters` accepts either an ordered list of FilterCondition or a mapping
    of column -> predicate, where a predicate is a plain value (equality),
    None (`is null`), a list/tuple/set (membership) or a dict with
    `operator` and `value` keys.
    """
    model_config = ConfigDict(frozen=True)

    filters: Tuple[FilterCondition, ...] = ()
    sort: Optional[SortOption] = None
    pagination: Optional[Pagination] = None
    select: Optional[Tuple[str, ...]] = None

    @field_validator("filters", mode="before")
    @classmethod
    def _normalize_filters(cls, v):
        if v is None:
            return ()
        if isinstance(v, dict):
            return tuple(_condition_from_predicate(col, pred) for col, pred in v.items())
        return tuple(v)

    @field_validator("select", mode="before")
    @classmethod
    def _normalize_select(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            parts = [s.strip() for s in v.split(",") if s.strip()]
            if parts == ["*"]:
                return None
            return tuple(parts)
        return tuple(v)

    def cache_token(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, default=str)


@dataclass(frozen=True)
class QueryDescriptor:
    """Transport-executable description of one table read."""
    filters: Tuple[FilterCondition, ...] = ()
    order: Optional[SortOption] = None
    range: Optional[Tuple[int, int]] = None
    select: Optional[Tuple[str, ...]] = None
    count: bool = False
    single: bool = False

    @property
    def limit(self) -> Optional[int]:
        if self.range is None:
            return None
        return self.range[1] - self.range[0] + 1

    @property
    def offset(self) -> int:
        return self.range[0] if self.range else 0


@dataclass
class TableQueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total: Optional[int] = None


# ---------------------------------- builders ----------------------------------

def page_range(page: int, page_size: int) -> Tuple[int, int]:
    """1-based page/page_size -> inclusive zero-based (start, end) window."""
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    start = (page - 1) * page_size
    return start, start + page_size - 1


def apply_filters(
    descriptor: QueryDescriptor,
    filters: Union[Sequence[FilterCondition], Dict[str, Any], None],
) -> QueryDescriptor:
    """
    Attach constraints in insertion order. Column names are not checked
    here; the backend decides whether they exist.
    """
    if not filters:
        return descriptor
    if isinstance(filters, dict):
        extra = tuple(_condition_from_predicate(col, pred) for col, pred in filters.items())
    else:
        extra = tuple(filters)
    return replace(descriptor, filters=descriptor.filters + extra)


def build_query(
    directives: Optional[QueryDirectives] = None,
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[QueryDescriptor, Pagination]:
    """
    Build the paginated read descriptor for `directives`.

    Always requests an exact total count alongside the page so both come
    from the same query. Returns the descriptor together with the effective
    pagination (defaults applied).
    """
    directives = directives or QueryDirectives()
    pagination = directives.pagination or Pagination(page=DEFAULT_PAGE, page_size=default_page_size)

    descriptor = QueryDescriptor(
        order=directives.sort,
        range=page_range(pagination.page, pagination.page_size),
        select=directives.select,
        count=True,
    )
    return apply_filters(descriptor, directives.filters), pagination


def build_key_query(key_column: str, key: Any) -> QueryDescriptor:
    """Descriptor for exactly one row by primary key."""
    return QueryDescriptor(
        filters=(FilterCondition(column=key_column, operator=FilterOperator.EQ, value=key),),
        range=(0, 0),
        single=True,
    )


def key_match(key_column: str, key: Any) -> FilterCondition:
    return FilterCondition(column=key_column, operator=FilterOperator.EQ, value=key)


def keys_match(key_column: str, keys: Sequence[Any]) -> FilterCondition:
    return FilterCondition(column=key_column, operator=FilterOperator.IN, value=tuple(keys))
