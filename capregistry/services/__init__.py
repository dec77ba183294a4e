"""Registry service layer"""

from capregistry.services.registry_service import (
    CapabilityService,
    ConversionResult,
    CreateResult,
    ImportFailure,
    ImportItem,
    ImportReport,
    SearchHit,
    ValidationReport,
)

__all__ = [
    "CapabilityService",
    "ConversionResult",
    "CreateResult",
    "ImportFailure",
    "ImportItem",
    "ImportReport",
    "SearchHit",
    "ValidationReport",
]
