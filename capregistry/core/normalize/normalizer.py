"""
Capability Normalizer - raw document to canonical CapabilityWrapper

Accepts documents of unknown shape and era (bare protocol documents or
wrapper-shaped ``{..., protocolDetails: {...}}``) and always produces a
structurally complete wrapper. Every field is built explicitly with its
default in ``build_details``; there is no layering of partial dicts.

Normalization is idempotent: feeding ``wrapper.to_dict()`` back in
yields the same wrapper. It fails only with NormalizationError, in practice
for input that is not a mapping.

Example:
    normalizer = CapabilityNormalizer()
    wrapper = normalizer.normalize({"id": "calc", "description": "adds numbers"})

    wrapper.protocol_details.enact            # "1.0.0"
    wrapper.protocol_details.inputs.required  # []
"""

import copy
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from capregistry.core.exceptions import NormalizationError
from capregistry.core.models import CapabilityWrapper, EnactDocument
from capregistry.core.normalize.fields import (
    as_text,
    extract_flow_steps,
    normalize_env,
    normalize_flow_steps,
    normalize_schema_field,
    string_keys,
)
from capregistry.core.normalize.transformer import VersionTransformer
from capregistry.core.validation.validator import EXTENSION_PREFIX
from capregistry.core.versioning import DEFAULT_PROTOCOL_VERSION

COMPOSITE_TYPE_ALIASES = ("composite", "workflow")


def source_version(raw: Dict[str, Any]) -> str:
    """Protocol version declared by a raw document (top level, then protocolDetails)"""
    version = as_text(raw.get("enact"))
    if not version:
        details = raw.get("protocolDetails")
        if isinstance(details, dict):
            version = as_text(details.get("enact"))
    return version or DEFAULT_PROTOCOL_VERSION


def extract_details(raw: Dict[str, Any]) -> Dict[str, Any]:
    details = raw.get("protocolDetails")
    return details if isinstance(details, dict) else raw


def canonical_type(raw_type: Any) -> str:
    """Map era-specific ``type`` values onto ``atomic`` / ``composite``"""
    return "composite" if as_text(raw_type).lower() in COMPOSITE_TYPE_ALIASES else "atomic"


def _authors(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    authors = []
    for entry in raw:
        if isinstance(entry, str):
            authors.append({"name": entry})
        elif isinstance(entry, dict):
            author = string_keys(entry)
            author["name"] = as_text(entry.get("name"))
            for key in ("email", "url"):
                if key in author and not isinstance(author[key], str):
                    author.pop(key)
            authors.append(author)
    return authors


def _tasks(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    tasks = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        task = string_keys(entry)
        task["id"] = as_text(entry.get("id"))
        task["type"] = as_text(entry.get("type"))
        for key in ("language", "code"):
            if key in task and task[key] is not None:
                task[key] = as_text(task[key])
        if "dependencies" in task and not isinstance(task["dependencies"], list):
            task.pop("dependencies")
        tasks.append(task)
    return tasks


def _teams(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [as_text(team) for team in raw if as_text(team)]


def _extensions(details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value for key, value in details.items()
        if isinstance(key, str) and key.startswith(EXTENSION_PREFIX)
    }


def build_details(details: Dict[str, Any], enact: str) -> Dict[str, Any]:
    """
    Build the canonical protocol payload, one field at a time

    Args:
        details: Raw protocol payload (already unwrapped)
        enact: Protocol version to stamp

    Returns:
        Dict accepted by ``EnactDocument``
    """
    doc = details.get("doc")
    return {
        "enact": enact,
        "id": as_text(details.get("id")),
        "description": as_text(details.get("description")),
        "version": as_text(details.get("version")) or DEFAULT_PROTOCOL_VERSION,
        "type": canonical_type(details.get("type")),
        "authors": _authors(details.get("authors")),
        "inputs": normalize_schema_field(details.get("inputs")),
        "outputs": normalize_schema_field(details.get("outputs")),
        "tasks": _tasks(details.get("tasks")),
        "flow": {"steps": normalize_flow_steps(extract_flow_steps(details.get("flow")))},
        "env": normalize_env(details.get("env")),
        "imports": details.get("imports"),
        "dependencies": details.get("dependencies"),
        "doc": as_text(doc) if doc is not None else None,
        "extensions": _extensions(details),
    }


class CapabilityNormalizer:
    """Orchestrates field normalization and version transforms"""

    def __init__(self, transformer: Optional[VersionTransformer] = None):
        self.transformer = transformer or VersionTransformer()

    def normalize(self, raw: Any, target_format_version: Optional[str] = None) -> CapabilityWrapper:
        """
        Normalize a parsed document into a CapabilityWrapper

        Args:
            raw: Parsed document, bare or wrapper-shaped
            target_format_version: Protocol version the payload should be
                expressed in; defaults to the document's own version

        Raises:
            NormalizationError: ``raw`` is not a mapping, or a section
                cannot be expressed in the canonical models
        """
        if not isinstance(raw, dict):
            raise NormalizationError(
                f"Cannot normalize {type(raw).__name__}: capability document must be an object"
            )

        raw = copy.deepcopy(raw)
        version = source_version(raw)
        details_raw = extract_details(raw)
        details = build_details(details_raw, version)

        if target_format_version and target_format_version != version:
            transformed = self.transformer.transform(
                {k: v for k, v in details.items() if k != "extensions"},
                version,
                target_format_version,
            )
            # Flow steps and io sections go back through the field rules so
            # the payload stays canonical whatever the migration produced.
            details.update(
                enact=target_format_version,
                inputs=normalize_schema_field(transformed.get("inputs")),
                outputs=normalize_schema_field(transformed.get("outputs")),
                flow={"steps": normalize_flow_steps(extract_flow_steps(transformed.get("flow")))},
            )

        identifier = as_text(raw.get("id")) or details["id"]
        try:
            return CapabilityWrapper(
                id=identifier,
                name=as_text(raw.get("name")) or as_text(details_raw.get("name")) or identifier,
                description=as_text(raw.get("description")) or details["description"],
                version=as_text(raw.get("version")) or details["version"],
                teams=_teams(raw.get("teams")),
                is_atomic=len(details["tasks"]) > 0,
                protocol_details=EnactDocument(**details),
            )
        except ModelValidationError as e:
            raise NormalizationError(f"Cannot normalize capability {identifier or '<no id>'}: {e}") from e

    def normalize_document(self, raw: Any, target_format_version: Optional[str] = None) -> Dict[str, Any]:
        """Same as ``normalize`` but returns the wire dict"""
        return self.normalize(raw, target_format_version).to_dict()


def normalize(raw: Any, target_format_version: Optional[str] = None) -> CapabilityWrapper:
    """Module-level shortcut using the default transformer"""
    return CapabilityNormalizer().normalize(raw, target_format_version)
