"""Versioned schema registry"""

from capregistry.core.schema.registry import BASELINE_SCHEMA, SchemaRegistry
from capregistry.core.schema.loader import (
    build_default_registry,
    register_schema_dir,
)

__all__ = [
    "BASELINE_SCHEMA",
    "SchemaRegistry",
    "build_default_registry",
    "register_schema_dir",
]
