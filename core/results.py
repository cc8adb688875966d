# core/results.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Sequence, Tuple, TypeVar, Union

T = TypeVar("T")

FieldPath = Tuple[Union[str, int], ...]


@dataclass(frozen=True)
class Issue:
    """A single field-level violation reported by a validator."""
    field_path: FieldPath
    message: str

    def render(self) -> str:
        path = ".".join(str(p) for p in self.field_path)
        return f"{path}: {self.message}" if path else self.message


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Invalid:
    issues: Tuple[Issue, ...]

    @property
    def ok(self) -> bool:
        return False


ValidationResult = Union[Valid[Any], Invalid]


def render_issues(issues: Sequence[Issue]) -> str:
    return ", ".join(i.render() for i in issues)


# ---- pagination ----------------------------------------------------------------

@dataclass(frozen=True)
class PageInfo:
    page: int
    page_size: int
    total: int
    total_pages: int


@dataclass(frozen=True)
class PaginatedResponse(Generic[T]):
    data: List[T]
    pagination: PageInfo


# ---- bulk write outcomes -------------------------------------------------------

COMMITTED = "committed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass(frozen=True)
class ItemOutcome:
    index: int
    status: str
    row: Optional[dict] = None
    error: Optional[Exception] = None


@dataclass
class BulkOutcome:
    """
    Per-item outcomes aligned with the input sequence.

    len(outcomes) always equals the number of inputs. Committed items are
    never rolled back when a later item fails.
    """
    outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def rows(self) -> List[dict]:
        return [o.row for o in self.outcomes if o.status == COMMITTED and o.row is not None]

    @property
    def failure(self) -> Optional[ItemOutcome]:
        for o in self.outcomes:
            if o.status == FAILED:
                return o
        return None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def committed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == COMMITTED)

    def raise_for_failure(self) -> None:
        failed = self.failure
        if failed is not None and failed.error is not None:
            raise failed.error
