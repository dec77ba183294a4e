"""Capability registry - catalog, validation and normalization of capability documents"""

__version__ = "0.1.0"
