"""
Type Validator - structural validation of capability documents

Checks required fields, primitive types, enum membership and regex
patterns, recursively through nested objects and arrays, against a
JSON-Schema subset.

Policy:
- Missing required fields are warnings unless ``strict`` is set
- Type, pattern and enum violations are always errors
- With ``additionalProperties: false``, unknown keys are warnings;
  ``x-`` vendor keys are always allowed

Every check returns its own immutable ValidationResult; callers
concatenate child results and prefix their messages with the path
(``inputs.`` / ``authors[0].``).
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from capregistry.core.versioning import DEFAULT_PROTOCOL_VERSION

EXTENSION_PREFIX = "x-"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one document (or one nested value)"""

    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    def merge(self, other: "ValidationResult", prefix: str = "") -> "ValidationResult":
        """Return a new result with ``other``'s messages appended under ``prefix``"""
        return ValidationResult(
            errors=self.errors + tuple(prefix + e for e in other.errors),
            warnings=self.warnings + tuple(prefix + w for w in other.warnings),
        )

    def with_warnings(self, warnings: Iterable[str]) -> "ValidationResult":
        return ValidationResult(errors=self.errors, warnings=self.warnings + tuple(warnings))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def matches_type(value: Any, expected: Any) -> bool:
    """
    Check a value against a JSON Schema ``type``

    ``expected`` may be a list of types (any match passes). Unknown type
    names pass, since the schema may use types this validator predates.
    """
    if isinstance(expected, list):
        return any(matches_type(value, t) for t in expected)

    if expected == "string":
        return isinstance(value, str)
    if expected in ("number", "integer"):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "null":
        return value is None
    return True


def _enum_kind(value: Any) -> str:
    kind = _type_name(value)
    return "number" if kind == "integer" else kind


def in_enum(value: Any, allowed: List[Any]) -> bool:
    """Enum membership without cross-type equality (``True`` is not ``1``; ``1`` is ``1.0``)"""
    kind = _enum_kind(value)
    return any(_enum_kind(candidate) == kind and candidate == value for candidate in allowed)


def _check_pattern(value: str, pattern: str, label: str) -> Optional[str]:
    try:
        if re.search(pattern, value) is None:
            return f"{label}: does not match pattern {pattern}"
    except re.error:
        return f"{label}: schema pattern {pattern!r} is not a valid regular expression"
    return None


def check_value(value: Any, schema: Dict[str, Any], label: str, strict: bool = False) -> ValidationResult:
    """
    Validate one value against its property schema

    Messages for the value itself start with ``label``; messages from
    nested objects and arrays are prefixed with ``label.`` / ``label[i]``.
    """
    errors: List[str] = []

    expected = schema.get("type")
    if expected is not None and not matches_type(value, expected):
        shown = expected if isinstance(expected, str) else " | ".join(map(str, expected))
        errors.append(f"{label}: expected {shown}, got {_type_name(value)}")

    pattern = schema.get("pattern")
    if isinstance(pattern, str) and isinstance(value, str):
        message = _check_pattern(value, pattern, label)
        if message:
            errors.append(message)

    allowed = schema.get("enum")
    if isinstance(allowed, list) and not in_enum(value, allowed):
        errors.append(f"{label}: must be one of: {', '.join(map(str, allowed))}")

    result = ValidationResult(errors=tuple(errors))

    if isinstance(schema.get("properties"), dict) and isinstance(value, dict):
        result = result.merge(check_object(value, schema, strict), prefix=f"{label}.")

    items = schema.get("items")
    if isinstance(items, dict) and isinstance(value, list):
        for index, item in enumerate(value):
            result = result.merge(check_value(item, items, f"{label}[{index}]", strict))

    return result


def check_object(document: Dict[str, Any], schema: Dict[str, Any], strict: bool = False) -> ValidationResult:
    """Validate the keys of an object: required, per-property, unknown"""
    errors: List[str] = []
    warnings: List[str] = []

    for name in schema.get("required") or []:
        if name not in document:
            message = f"{name}: missing required field"
            (errors if strict else warnings).append(message)

    result = ValidationResult(errors=tuple(errors), warnings=tuple(warnings))

    properties = schema.get("properties") or {}
    for prop, prop_schema in properties.items():
        if prop not in document or not isinstance(prop_schema, dict):
            continue
        result = result.merge(check_value(document[prop], prop_schema, prop, strict))

    if schema.get("additionalProperties") is False:
        unknown = [
            key for key in document
            if key not in properties and not str(key).startswith(EXTENSION_PREFIX)
        ]
        result = result.with_warnings(f"{key}: unknown property" for key in unknown)

    return result


def validate(document: Any, schema: Dict[str, Any], strict: bool = False) -> ValidationResult:
    """
    Validate a document against a schema

    Args:
        document: Parsed document
        schema: Schema dict (JSON Schema subset)
        strict: Treat missing required fields as errors

    Returns:
        ValidationResult; ``valid`` is True when there are no errors
    """
    if not isinstance(document, dict):
        return ValidationResult(errors=(f"document: expected object, got {_type_name(document)}",))
    return check_object(document, schema, strict)


def validate_document(
    document: Any,
    registry,
    strict: bool = False,
    version: Optional[str] = None,
) -> ValidationResult:
    """
    Validate against the schema registered for the document's protocol version

    Wrapper-shaped documents are validated on their ``protocolDetails``.
    ``version`` overrides the version declared in the document.
    """
    details = document
    if isinstance(document, dict) and isinstance(document.get("protocolDetails"), dict):
        details = document["protocolDetails"]

    if version is None and isinstance(details, dict):
        declared = details.get("enact")
        version = declared if isinstance(declared, str) and declared else None

    schema = registry.resolve(version or DEFAULT_PROTOCOL_VERSION)
    return validate(details, schema, strict)
