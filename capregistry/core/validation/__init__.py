"""Structural validation of capability documents"""

from capregistry.core.validation.consistency import check_consistency
from capregistry.core.validation.validator import (
    EXTENSION_PREFIX,
    ValidationResult,
    check_object,
    check_value,
    matches_type,
    validate,
    validate_document,
)

__all__ = [
    "EXTENSION_PREFIX",
    "ValidationResult",
    "check_consistency",
    "check_object",
    "check_value",
    "matches_type",
    "validate",
    "validate_document",
]
