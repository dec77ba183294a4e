from capregistry.core.normalize.normalizer import normalize
from capregistry.core.schema import SchemaRegistry, build_default_registry
from capregistry.core.validation import (
    ValidationResult,
    check_consistency,
    matches_type,
    validate,
    validate_document,
)

SCHEMA = {
    "type": "object",
    "required": ["id", "version"],
    "properties": {
        "id": {"type": "string"},
        "version": {"type": "string", "pattern": "^\\d+\\.\\d+\\.\\d+$"},
        "type": {"type": "string", "enum": ["atomic", "composite"]},
        "count": {"type": "integer"},
        "authors": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {"name": {"type": "string"}},
            },
        },
        "env": {
            "type": "object",
            "properties": {"vars": {"type": ["object", "array"]}},
        },
    },
    "additionalProperties": False,
}


def test_missing_required_is_warning_when_lenient() -> None:
    result = validate({"id": "calc"}, SCHEMA)
    assert result.valid
    assert result.errors == ()
    assert "version: missing required field" in result.warnings


def test_missing_required_is_error_when_strict() -> None:
    result = validate({"id": "calc"}, SCHEMA, strict=True)
    assert not result.valid
    assert "version: missing required field" in result.errors


def test_wrong_type_is_error_in_both_modes() -> None:
    doc = {"id": 5, "version": "1.0.0"}
    for strict in (False, True):
        result = validate(doc, SCHEMA, strict=strict)
        assert not result.valid
        assert "id: expected string, got integer" in result.errors


def test_pattern_and_enum() -> None:
    result = validate({"id": "x", "version": "one", "type": "script"}, SCHEMA)
    assert not result.valid
    assert "version: does not match pattern ^\\d+\\.\\d+\\.\\d+$" in result.errors
    assert "type: must be one of: atomic, composite" in result.errors


def test_enum_membership_does_not_mix_types() -> None:
    schema = {"properties": {"a": {"enum": [1, "yes"]}}}

    assert not validate({"a": True}, schema).valid
    assert "a: must be one of: 1, yes" in validate({"a": True}, schema).errors
    assert not validate({"a": "1"}, schema).valid
    assert validate({"a": 1}, schema).valid
    assert validate({"a": 1.0}, schema).valid
    assert not validate({"a": False}, {"properties": {"a": {"enum": [0]}}}).valid
    assert validate({"a": False}, {"properties": {"a": {"enum": [False]}}}).valid


def test_nested_paths_are_prefixed() -> None:
    doc = {"id": "x", "version": "1.0.0", "authors": [{"name": "Ada"}, {"email": "b@x"}, {"name": 3}]}
    result = validate(doc, SCHEMA)
    assert "authors[1].name: missing required field" in result.warnings
    assert "authors[2].name: expected string, got integer" in result.errors


def test_union_types_and_booleans() -> None:
    assert matches_type({}, ["object", "array"])
    assert matches_type([], ["object", "array"])
    assert not matches_type(True, "integer")
    assert not matches_type(1.5, "string")
    assert matches_type(1.5, "number")
    assert matches_type("anything", "custom-type")

    result = validate({"id": "x", "version": "1.0.0", "count": True}, SCHEMA)
    assert "count: expected integer, got boolean" in result.errors

    result = validate({"id": "x", "version": "1.0.0", "env": {"vars": []}}, SCHEMA)
    assert result.valid


def test_unknown_properties_warn_but_extensions_pass() -> None:
    result = validate({"id": "x", "version": "1.0.0", "colour": "red", "x-vendor": 1}, SCHEMA)
    assert result.valid
    assert result.warnings == ("colour: unknown property",)


def test_non_object_document() -> None:
    result = validate(["a"], SCHEMA)
    assert not result.valid
    assert result.errors == ("document: expected object, got array",)


def test_invalid_pattern_in_schema_is_reported() -> None:
    schema = {"properties": {"id": {"type": "string", "pattern": "("}}}
    result = validate({"id": "x"}, schema)
    assert not result.valid
    assert "not a valid regular expression" in result.errors[0]


def test_validation_result_is_immutable_and_mergeable() -> None:
    parent = ValidationResult(errors=("a: bad",))
    child = ValidationResult(errors=("b: bad",), warnings=("c: meh",))
    merged = parent.merge(child, prefix="inputs.")

    assert parent.errors == ("a: bad",)
    assert merged.errors == ("a: bad", "inputs.b: bad")
    assert merged.warnings == ("inputs.c: meh",)
    assert merged.to_dict() == {"valid": False, "errors": ["a: bad", "inputs.b: bad"], "warnings": ["inputs.c: meh"]}


def test_validate_document_resolves_declared_version() -> None:
    registry = build_default_registry()
    doc = {
        "enact": "2.0.0",
        "id": "calc",
        "description": "adds numbers",
        "version": "1.0.0",
        "type": "atomic",
        "flow": {"steps": [{"task": "calc"}]},
    }

    v2 = validate_document(doc, registry, strict=True)
    assert "authors: missing required field" in v2.errors
    assert "flow.steps[0].capability: missing required field" in v2.errors

    v1 = validate_document(doc, registry, strict=True, version="1.0.0")
    assert v1.valid


def test_validate_document_unwraps_protocol_details() -> None:
    registry = SchemaRegistry()
    wrapper = {"id": "calc", "name": "Calc", "protocolDetails": {"enact": "1.0.0", "id": 1}}
    result = validate_document(wrapper, registry)
    assert "id: expected string, got integer" in result.errors


def test_consistency_of_atomic_and_composite() -> None:
    atomic = normalize({
        "id": "calc",
        "type": "atomic",
        "tasks": [{"id": "calc", "type": "script"}],
        "flow": {"steps": [{"capability": "calc"}]},
    })
    assert check_consistency(atomic) == []

    no_tasks = normalize({"id": "empty", "type": "atomic"})
    assert "tasks: atomic capability has no tasks" in check_consistency(no_tasks)

    composite = normalize({
        "id": "pipeline",
        "type": "composite",
        "tasks": [{"id": "t"}],
        "flow": {"steps": [{"capability": "a"}, {"inputs": {}}]},
    })
    warnings = check_consistency(composite)
    assert "tasks: composite capability declares 1 task(s)" in warnings
    assert "flow.steps[1].capability: empty capability reference" in warnings
