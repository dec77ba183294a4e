"""
Schema Registry - protocol version to validation schema

Holds one validation schema per protocol version string and resolves a
requested version to the closest registered schema. The registry is built
once at startup and only read afterwards, so a single instance can be
shared between threads.

Resolution order:
1. Exact version match
2. First registered schema (insertion order) sharing ``major.minor``
3. The ``1.0.0`` baseline, which is always registered

Example:
    registry = SchemaRegistry()
    registry.register("2.0.0", v2_schema)

    registry.resolve("2.0.0")   # v2_schema
    registry.resolve("2.0.7")   # v2_schema (major.minor match)
    registry.resolve("9.9.9")   # baseline
"""

from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from capregistry.core.exceptions import SchemaDefinitionError
from capregistry.core.versioning import DEFAULT_PROTOCOL_VERSION, major_minor, parse_version

# Minimal 1.0.0 schema used when no richer 1.0.0 schema is supplied
BASELINE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["enact", "id", "description", "version", "type", "authors"],
    "properties": {
        "enact": {"type": "string", "pattern": "^\\d+\\.\\d+\\.\\d+$"},
        "id": {"type": "string"},
        "description": {"type": "string"},
        "version": {"type": "string", "pattern": "^\\d+\\.\\d+\\.\\d+$"},
        "type": {"type": "string"},
        "authors": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "email": {"type": "string"},
                    "url": {"type": "string"},
                },
            },
        },
    },
}


class SchemaRegistry:
    """Versioned schema lookup with closest-match fallback"""

    def __init__(self, schemas: Optional[Mapping[str, Dict[str, Any]]] = None):
        """
        Initialize the registry

        Args:
            schemas: Initial version -> schema mapping. Registered in the
                mapping's iteration order, which is the order used for
                ``major.minor`` fallback.
        """
        self._schemas: Dict[str, Dict[str, Any]] = {}

        for version, schema in (schemas or {}).items():
            self.register(version, schema)

        if DEFAULT_PROTOCOL_VERSION not in self._schemas:
            self.register(DEFAULT_PROTOCOL_VERSION, BASELINE_SCHEMA)

    def register(self, version: str, schema: Dict[str, Any]) -> None:
        """
        Register a schema for a protocol version

        Re-registering a version replaces its schema but keeps its original
        position in the fallback order.

        Raises:
            SchemaDefinitionError: schema is not a dict or not valid Draft 7
        """
        if not isinstance(schema, dict):
            raise SchemaDefinitionError(f"Schema for version {version} must be an object")

        try:
            Draft7Validator.check_schema(schema)
        except SchemaError as e:
            raise SchemaDefinitionError(f"Invalid schema for version {version}: {e.message}") from e

        self._schemas[version] = schema

    def resolve(self, version: str) -> Dict[str, Any]:
        """Return the closest schema for ``version``; never fails"""
        if version in self._schemas:
            return self._schemas[version]

        prefix = major_minor(version)
        for schema_version, schema in self._schemas.items():
            if major_minor(schema_version) == prefix:
                return schema

        return self._schemas[DEFAULT_PROTOCOL_VERSION]

    def resolved_version(self, version: str) -> str:
        """Return which registered version ``resolve(version)`` would use"""
        if version in self._schemas:
            return version

        prefix = major_minor(version)
        for schema_version in self._schemas:
            if major_minor(schema_version) == prefix:
                return schema_version

        return DEFAULT_PROTOCOL_VERSION

    def has(self, version: str) -> bool:
        return version in self._schemas

    def versions(self) -> List[str]:
        """Registered versions, sorted semantically"""
        return sorted(self._schemas, key=parse_version)

    def __len__(self) -> int:
        return len(self._schemas)
