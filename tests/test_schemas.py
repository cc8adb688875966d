import logging

from core.results import Invalid, Valid
from engine.meta_models import Column, Procedure, Shape, Table
from engine.validator import PydanticValidator
from generate.schemas import build_procedure_schemas, build_table_schemas


def test_create_model_requires_non_nullable_columns_without_default(meta):
    schemas = build_table_schemas(meta.table("todo_items"), meta.enums)
    required = {n for n, f in schemas.create.model_fields.items() if f.is_required()}
    assert required == {"name", "description"}


def test_update_model_requires_only_the_primary_key(meta):
    schemas = build_table_schemas(meta.table("todo_items"), meta.enums)
    required = {n for n, f in schemas.update.model_fields.items() if f.is_required()}
    assert required == {"id"}


def test_validator_reports_every_violated_field(meta):
    schemas = build_table_schemas(meta.table("todo_items"), meta.enums)
    result = PydanticValidator().validate(schemas.create, {"name": "", "description": 5, "status": "nope"})
    assert isinstance(result, Invalid)
    paths = {i.field_path for i in result.issues}
    assert paths == {("name",), ("description",), ("status",)}


def test_partial_update_keeps_only_supplied_fields(meta):
    schemas = build_table_schemas(meta.table("todo_items"), meta.enums)
    result = PydanticValidator().validate(schemas.update, {"id": "42"})
    assert isinstance(result, Valid)
    assert result.value.model_dump(exclude_unset=True) == {"id": "42"}


def test_nullable_columns_accept_null_but_required_text_does_not(meta):
    schemas = build_table_schemas(meta.table("profiles"), meta.enums)
    v = PydanticValidator()
    assert v.validate(schemas.create, {"id": "u1", "first_name": None}).ok
    assert not v.validate(schemas.create, {"id": None}).ok


def test_double_nullable_list_is_an_optional_list_and_is_flagged(meta, caplog):
    proc = meta.procedure("get_user_todos")
    with caplog.at_level(logging.WARNING, logger="generate.schemas"):
        schemas = build_procedure_schemas(proc, meta.enums)
    assert "generation defect" in caplog.text

    v = PydanticValidator()
    assert v.validate(schemas.returns, None).value == []
    rows = v.validate(schemas.returns, [{"id": "1", "name": None, "description": None, "created_at": None}]).value
    assert rows[0].id == "1"


def test_procedure_return_shape_rejects_wrong_primitive():
    proc = Procedure(
        name="get_label",
        args={"key": Shape(type="string")},
        returns=Shape(type="object", fields={"label": Shape(type="string")}),
    )
    schemas = build_procedure_schemas(proc)
    result = PydanticValidator().validate(schemas.returns, {"label": 12})
    assert isinstance(result, Invalid)
    assert result.issues[0].field_path == ("label",)


def test_optional_procedure_args_accept_absent_and_null(meta):
    schemas = build_procedure_schemas(meta.procedure("search_todos"), meta.enums)
    v = PydanticValidator()
    assert v.validate(schemas.args, {"search_term": "milk"}).ok
    assert v.validate(schemas.args, {"search_term": "milk", "limit_count": None}).ok
    assert not v.validate(schemas.args, {"limit_count": 3}).ok


def test_enum_references_resolve_to_literals(meta):
    schemas = build_procedure_schemas(meta.procedure("get_user_profile"), meta.enums)
    v = PydanticValidator()
    assert v.validate(schemas.returns, {"id": "u1", "first_name": None, "last_name": None, "status": "completed"}).ok
    assert not v.validate(schemas.returns, {"id": "u1", "first_name": None, "last_name": None, "status": "archived"}).ok
    assert v.validate(schemas.returns, None).value is None


def test_row_model_keeps_backend_extras(meta):
    schemas = build_table_schemas(meta.table("profiles"), meta.enums)
    row = schemas.row.model_validate({"id": "u1", "first_name": None, "last_name": "L", "updated_at": "x"})
    assert row.model_dump()["updated_at"] == "x"


def test_key_schema_follows_primary_key_column(meta):
    schemas = build_table_schemas(meta.table("profiles"), meta.enums)
    v = PydanticValidator()
    assert v.validate(schemas.key, "u1").ok
    assert not v.validate(schemas.key, "x" * 65).ok


def test_nullable_field_must_still_be_present(meta):
    schemas = build_procedure_schemas(meta.procedure("get_user_profile"), meta.enums)
    result = PydanticValidator().validate(schemas.returns, {"id": "u1", "last_name": None})
    assert isinstance(result, Invalid)
    assert [i.field_path for i in result.issues] == [("first_name",)]


def test_generated_primary_keys_are_optional_on_create():
    for data_type in ("UUID", "INTEGER", "BIGINT"):
        table = Table(tableName="t", primaryKey=["id"], columns=[
            Column(columnName="id", dataType=data_type),
            Column(columnName="body", dataType="TEXT"),
        ])
        create = build_table_schemas(table).create
        assert not create.model_fields["id"].is_required()
        assert create.model_fields["body"].is_required()

    table = Table(tableName="t", primaryKey=["code"], columns=[Column(columnName="code", dataType="VARCHAR")])
    assert build_table_schemas(table).create.model_fields["code"].is_required()
