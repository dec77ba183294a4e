"""Persistence for capability documents"""

from capregistry.store.capability_store import (
    CapabilityStore,
    SimilarCapability,
    StoredCapability,
)

__all__ = ["CapabilityStore", "SimilarCapability", "StoredCapability"]
