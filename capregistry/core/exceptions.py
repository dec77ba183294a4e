"""Exceptions for the capability registry"""


class RegistryError(Exception):
    """Base exception for registry errors"""
    pass


class ParseError(RegistryError):
    """Content is neither valid JSON nor YAML"""
    pass


class ValidationError(RegistryError):
    """Document failed validation in strict mode

    The full report is kept on ``result`` so callers can render every
    error instead of only the message.
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class NormalizationError(RegistryError):
    """Raw input is not object-shaped and cannot be normalized"""
    pass


class NotFoundError(RegistryError):
    """Capability lookup by id yielded nothing"""
    pass


class SchemaDefinitionError(RegistryError):
    """A schema offered for registration is not valid JSON Schema"""
    pass


class EmbeddingError(RegistryError):
    """Embedding generation failed"""
    pass


class StoreError(RegistryError):
    """Persistence layer failure"""
    pass
