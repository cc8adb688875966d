# generate/loader.py
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from jsonschema import ValidationError
from jsonschema.validators import Draft7Validator
from pydantic import ValidationError as PydValidationError

from engine.meta_models import ModelMeta, Shape, ShapeType

logger = logging.getLogger(__name__)

SPEC_PATH = Path(__file__).with_name("endpoint_schema.json")

class InvalidSchemaError(Exception):
    pass

def _load_spec() -> dict:
    try:
        spec = json.loads(SPEC_PATH.read_text(encoding="utf-8"))
    except Exception as e:
        raise InvalidSchemaError(f"Failed to read spec at {SPEC_PATH}: {e}") from e
    Draft7Validator.check_schema(spec)
    return spec

def _iter_shapes(shape: Shape) -> Iterable[Shape]:
    yield shape
    if shape.items is not None:
        yield from _iter_shapes(shape.items)
    for sub in (shape.fields or {}).values():
        yield from _iter_shapes(sub)

def _check_references(meta: ModelMeta) -> None:
    """Cross-field checks JSON-Schema can't express: enum references must resolve."""
    known = set(meta.enums)
    for t in meta.tables:
        for c in t.columns:
            if c.enum and c.enum not in known:
                raise InvalidSchemaError(f"{t.tableName}.{c.columnName}: unknown enum {c.enum!r}")
    for p in meta.procedures:
        shapes = list(p.args.values()) + [p.returns]
        for root in shapes:
            for s in _iter_shapes(root):
                if s.type == ShapeType.ENUM and not (s.values or s.enum):
                    raise InvalidSchemaError(f"{p.name}: enum shape without values")
                if s.enum and s.enum not in known:
                    raise InvalidSchemaError(f"{p.name}: unknown enum {s.enum!r}")

def parse_meta(data: Dict[str, Any]) -> ModelMeta:
    """Validate a raw metadata dict against the bundled JSON-Schema and build ModelMeta."""
    spec = _load_spec()
    try:
        Draft7Validator(spec).validate(data)
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise InvalidSchemaError(f"Schema validation failed at {where}: {e.message}") from e

    try:
        meta = ModelMeta.model_validate(data)
    except PydValidationError as e:
        raise InvalidSchemaError(f"Metadata parse failed: {e}") from e

    _check_references(meta)
    logger.info(
        "Loaded endpoint meta: %d tables, %d procedures, %d enums",
        len(meta.tables), len(meta.procedures), len(meta.enums),
    )
    return meta

def load_meta(path: str) -> ModelMeta:
    meta_path = Path(path)
    if not meta_path.exists():
        raise InvalidSchemaError(f"Metadata file not found at {path}")
    try:
        data = json.loads(meta_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidSchemaError(f"Metadata at {path} is not valid JSON: {e}") from e
    return parse_meta(data)

class MetaFileLoader:
    """SchemaLoader port over a metadata file on disk."""
    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path

    def load(self) -> ModelMeta:
        if self.path is None:
            from engine.db import get_settings
            return load_meta(get_settings().MODEL_META_PATH)
        return load_meta(self.path)
