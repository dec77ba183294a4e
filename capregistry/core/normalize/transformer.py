"""
Version Transformer - structural migrations between protocol versions

Migrations form an ordered table. Each entry names the protocol version
that introduced a shape change and carries an upgrade function and its
inverse. Transforming from A to B applies:

- A < B: every upgrade with ``A < introduced_in <= B``, oldest first
- A > B: every downgrade with ``B < introduced_in <= A``, newest first
- A == B: nothing (the input is returned as-is)

Version pairs that cross no migration boundary are a best-effort identity
transform: the document is copied and only re-stamped. This keeps the
registry usable for protocol versions it has no migration for.

The input document is never mutated; callers may hold on to it for
logging or rollback.
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from capregistry.core.normalize.fields import classify_io, IOShape, normalize_schema_field
from capregistry.core.versioning import compare_versions, parse_version

Document = Dict[str, Any]
Rewrite = Callable[[Document], None]


def _flow_steps(document: Document) -> Optional[List[Any]]:
    flow = document.get("flow")
    if isinstance(flow, dict) and isinstance(flow.get("steps"), list):
        return flow["steps"]
    return None


def _rename_keys(step: Dict[str, Any], renames: Tuple[Tuple[str, str], ...]) -> Dict[str, Any]:
    """Rename keys in place of their position; absent keys are left absent"""
    mapping = dict(renames)
    return {mapping.get(key, key): value for key, value in step.items()}


def rename_task_to_capability(document: Document) -> None:
    """Upgrade flow steps: ``task`` -> ``capability``, ``with`` -> ``inputs``"""
    steps = _flow_steps(document)
    if steps is None:
        return
    document["flow"]["steps"] = [
        _rename_keys(step, (("task", "capability"), ("with", "inputs")))
        if isinstance(step, dict) and "task" in step and "capability" not in step
        else step
        for step in steps
    ]


def rename_capability_to_task(document: Document) -> None:
    """Downgrade flow steps: ``capability`` -> ``task``, ``inputs`` -> ``with``"""
    steps = _flow_steps(document)
    if steps is None:
        return
    document["flow"]["steps"] = [
        _rename_keys(step, (("capability", "task"), ("inputs", "with")))
        if isinstance(step, dict) and "capability" in step and "task" not in step
        else step
        for step in steps
    ]


def wrap_flat_io(document: Document) -> None:
    """Upgrade flat inputs/outputs maps to JSON Schema objects"""
    for key in ("inputs", "outputs"):
        if classify_io(document.get(key)) == IOShape.FLAT:
            document[key] = normalize_schema_field(document[key])


def upgrade_to_2_0_0(document: Document) -> None:
    rename_task_to_capability(document)
    wrap_flat_io(document)


@dataclass(frozen=True)
class Migration:
    """Shape change introduced by one protocol version"""
    introduced_in: str
    upgrade: Rewrite
    downgrade: Rewrite
    description: str = ""


DEFAULT_MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        introduced_in="2.0.0",
        upgrade=upgrade_to_2_0_0,
        downgrade=rename_capability_to_task,
        description="capability-keyed flow steps, JSON Schema inputs/outputs",
    ),
)


class VersionTransformer:
    """Applies the migration table between two protocol versions"""

    def __init__(self, migrations: Tuple[Migration, ...] = DEFAULT_MIGRATIONS):
        self.migrations = tuple(
            sorted(migrations, key=lambda m: parse_version(m.introduced_in))
        )

    def plan(self, from_version: str, to_version: str) -> List[Tuple[Migration, str]]:
        """
        List the (migration, direction) pairs a transform would apply

        Direction is ``"upgrade"`` or ``"downgrade"``. An empty plan means
        an identity transform.
        """
        direction = compare_versions(from_version, to_version)
        if direction < 0:
            return [
                (m, "upgrade") for m in self.migrations
                if compare_versions(from_version, m.introduced_in) < 0
                and compare_versions(m.introduced_in, to_version) <= 0
            ]
        if direction > 0:
            return [
                (m, "downgrade") for m in reversed(self.migrations)
                if compare_versions(to_version, m.introduced_in) < 0
                and compare_versions(m.introduced_in, from_version) <= 0
            ]
        return []

    def transform(self, document: Document, from_version: str, to_version: str) -> Document:
        """
        Migrate a document from one protocol version to another

        Wrapper-shaped documents (``{..., protocolDetails: {...}}``) are
        migrated inside ``protocolDetails``; both levels get the new stamp.

        Returns:
            A new document with ``enact`` set to ``to_version``, or the
            input itself when the versions are equal
        """
        if from_version == to_version:
            return document

        result = copy.deepcopy(document)
        details = result.get("protocolDetails")
        target = details if isinstance(details, dict) else result

        for migration, direction in self.plan(from_version, to_version):
            if direction == "upgrade":
                migration.upgrade(target)
            else:
                migration.downgrade(target)

        result["enact"] = to_version
        if target is not result:
            target["enact"] = to_version
        return result


def transform(document: Document, from_version: str, to_version: str) -> Document:
    """Module-level shortcut using the default migration table"""
    return VersionTransformer().transform(document, from_version, to_version)
