"""Schema Loader - builds a SchemaRegistry from bundled and on-disk schema files"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from capregistry.core.exceptions import SchemaDefinitionError
from capregistry.core.schema.registry import SchemaRegistry
from capregistry.core.versioning import is_valid_version

logger = logging.getLogger(__name__)

BUNDLED_SCHEMAS_DIR = Path(__file__).parent.parent.parent / "schemas"

_FILENAME_SUFFIX = re.compile(r"(\.schema)?\.json$")


def version_for_schema_file(path: Path, schema: Dict[str, Any]) -> Optional[str]:
    """
    Work out the protocol version a schema file describes

    An embedded ``version`` or ``schemaVersion`` wins over the filename
    (``v1.2.0.schema.json`` -> ``1.2.0``). Returns None when neither yields
    an ``X.Y.Z`` version.
    """
    version = _FILENAME_SUFFIX.sub("", path.name)
    if version.startswith("v"):
        version = version[1:]

    embedded = schema.get("version") or schema.get("schemaVersion")
    if isinstance(embedded, str) and embedded:
        version = embedded

    return version if is_valid_version(version) else None


def iter_schema_files(schema_dir: Path) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """
    Yield (version, schema) for each usable JSON file in a directory

    Unreadable files and files without a recognizable version are logged
    and skipped; one bad file does not stop the rest from loading.
    """
    if not schema_dir.exists():
        logger.info(f"Schema directory {schema_dir} does not exist, skipping file-based schema registration")
        return

    for path in sorted(schema_dir.glob("*.json")):
        try:
            with open(path, encoding="utf-8") as f:
                schema = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading schema from file {path.name}: {e}")
            continue

        if not isinstance(schema, dict):
            logger.warning(f"Schema file {path.name} does not contain a JSON object")
            continue

        version = version_for_schema_file(path, schema)
        if version is None:
            logger.warning(f"Could not determine version for schema file: {path.name}")
            continue

        yield version, schema


def register_schema_dir(registry: SchemaRegistry, schema_dir: Path) -> int:
    """
    Register every schema found in ``schema_dir``

    Returns:
        Number of schemas registered
    """
    count = 0
    for version, schema in iter_schema_files(schema_dir):
        try:
            registry.register(version, schema)
        except SchemaDefinitionError as e:
            logger.error(f"Skipping schema {version} from {schema_dir}: {e}")
            continue
        logger.info(f"Registered schema version {version} from {schema_dir}")
        count += 1
    return count


def build_default_registry(schema_dir: Optional[Path] = None) -> SchemaRegistry:
    """
    Create the registry used at startup

    Bundled schemas are registered first, then user schemas from
    ``schema_dir`` (which may override a bundled version).
    """
    registry = SchemaRegistry()
    register_schema_dir(registry, BUNDLED_SCHEMAS_DIR)

    if schema_dir is not None:
        register_schema_dir(registry, Path(schema_dir))

    logger.info(f"Schema registry initialized with versions: {', '.join(registry.versions())}")
    return registry
