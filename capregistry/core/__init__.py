"""
Core: schema registry, validation and normalization

Everything in this package is synchronous and side-effect free apart
from reading schema files at startup.
"""

from capregistry.core.exceptions import (
    EmbeddingError,
    NormalizationError,
    NotFoundError,
    ParseError,
    RegistryError,
    SchemaDefinitionError,
    StoreError,
    ValidationError,
)
from capregistry.core.models import CapabilityWrapper, EnactDocument

__all__ = [
    "CapabilityWrapper",
    "EmbeddingError",
    "EnactDocument",
    "NormalizationError",
    "NotFoundError",
    "ParseError",
    "RegistryError",
    "SchemaDefinitionError",
    "StoreError",
    "ValidationError",
]
