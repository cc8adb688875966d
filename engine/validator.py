# engine/validator.py
from __future__ import annotations
import logging
from typing import Any, Dict

from pydantic import TypeAdapter, ValidationError

from core.results import Invalid, Issue, Valid, ValidationResult

logger = logging.getLogger(__name__)


def issues_from_error(err: ValidationError):
    return tuple(Issue(field_path=tuple(e.get("loc", ())), message=e.get("msg", "invalid")) for e in err.errors())


class PydanticValidator:
    """
    SchemaValidator backed by pydantic.

    `schema` is anything pydantic can build a TypeAdapter for: a BaseModel
    subclass, a builtin/typing annotation, or an Annotated type. Adapters are
    cached per schema object.
    """

    def __init__(self) -> None:
        self._adapters: Dict[Any, TypeAdapter] = {}

    def _adapter(self, schema: Any) -> TypeAdapter:
        try:
            adapter = self._adapters.get(schema)
        except TypeError:  # unhashable annotation
            return TypeAdapter(schema)
        if adapter is None:
            adapter = TypeAdapter(schema)
            self._adapters[schema] = adapter
        return adapter

    def validate(self, schema: Any, value: Any) -> ValidationResult:
        try:
            return Valid(self._adapter(schema).validate_python(value))
        except ValidationError as e:
            issues = issues_from_error(e)
            logger.debug("Validation against %s failed with %d issue(s)", getattr(schema, "__name__", schema), len(issues))
            return Invalid(issues)
