"""
Document normalization

- fields: shape canonicalization of inputs/outputs, flow steps and env
- transformer: migrations between protocol versions
- normalizer: raw document to CapabilityWrapper
"""

from capregistry.core.normalize.fields import (
    EnvVarsShape,
    IOShape,
    StepShape,
    classify_env_vars,
    classify_io,
    classify_step,
    normalize_env,
    normalize_flow_steps,
    normalize_schema_field,
    string_keys,
)
from capregistry.core.normalize.normalizer import CapabilityNormalizer, normalize
from capregistry.core.normalize.transformer import (
    DEFAULT_MIGRATIONS,
    Migration,
    VersionTransformer,
    transform,
)

__all__ = [
    "CapabilityNormalizer",
    "DEFAULT_MIGRATIONS",
    "EnvVarsShape",
    "IOShape",
    "Migration",
    "StepShape",
    "VersionTransformer",
    "classify_env_vars",
    "classify_io",
    "classify_step",
    "normalize",
    "normalize_env",
    "normalize_flow_steps",
    "normalize_schema_field",
    "string_keys",
    "transform",
]
