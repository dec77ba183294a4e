"""
Field Normalizer - canonical shapes for drifting document sections

Documents from different protocol eras disagree on three shapes:

- inputs/outputs: a JSON Schema object ``{type: object, properties, required}``
  versus a bare ``{name: field}`` map
- flow steps: ``{capability, inputs}`` versus legacy ``{task, with}``
- env vars: a ``{name: field}`` record versus a list of
  ``{name, description, schema}`` entries

Each section is classified first (``classify_*``) and then normalized by
an explicit dispatch on the detected shape. All functions are pure and
return new containers.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class IOShape(str, Enum):
    """Detected shape of an inputs/outputs section"""
    ABSENT = "absent"
    CANONICAL = "canonical"  # {type: object, properties: {...}}
    FLAT = "flat"  # {name: field, ...}
    INVALID = "invalid"  # not a mapping


class StepShape(str, Enum):
    """Detected shape of a flow step"""
    LEGACY = "legacy"  # {task, with}
    CURRENT = "current"  # {capability, inputs}
    SHORTHAND = "shorthand"  # bare capability id string
    INVALID = "invalid"


class EnvVarsShape(str, Enum):
    """Detected shape of env.vars"""
    ABSENT = "absent"
    RECORD = "record"
    LIST = "list"
    INVALID = "invalid"


def as_text(value: Any, default: str = "") -> str:
    """
    Coerce a scalar to str

    YAML turns ``version: 1.0`` into a float; numbers are stringified rather
    than discarded. Anything else (None, containers, booleans) gives the
    default.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def string_keys(raw: Dict[Any, Any]) -> Dict[str, Any]:
    """Shallow copy with every key stringified

    YAML reads ``on:``, ``yes:`` or ``1:`` as bool and int keys; canonical
    mappings only carry string keys.
    """
    return {str(key): value for key, value in raw.items()}


def _as_field(value: Any) -> Dict[str, Any]:
    """Coerce one schema descriptor; ``"string"`` shorthand becomes ``{type: string}``"""
    if isinstance(value, dict):
        return string_keys(value)
    if isinstance(value, str):
        return {"type": value}
    return {}


def _as_fields(raw: Dict[Any, Any]) -> Dict[str, Dict[str, Any]]:
    return {str(name): _as_field(field) for name, field in raw.items()}


# ============================================
# inputs / outputs
# ============================================

def classify_io(raw: Any) -> IOShape:
    if raw is None:
        return IOShape.ABSENT
    if not isinstance(raw, dict):
        return IOShape.INVALID
    if raw.get("type") == "object" and isinstance(raw.get("properties"), dict):
        return IOShape.CANONICAL
    return IOShape.FLAT


def empty_schema_field() -> Dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


def _required_names(raw: Any, properties: Dict[str, Any]) -> List[str]:
    """Required names that exist in ``properties``, deduplicated, in order"""
    if not isinstance(raw, list):
        return []
    names: List[str] = []
    for name in raw:
        if isinstance(name, str) and name in properties and name not in names:
            names.append(name)
    return names


def normalize_schema_field(raw: Any) -> Dict[str, Any]:
    """
    Normalize an inputs/outputs section to ``{type, properties, required}``

    Example:
        >>> normalize_schema_field({"x": {"type": "string"}})
        {'type': 'object', 'properties': {'x': {'type': 'string'}}, 'required': []}
    """
    shape = classify_io(raw)

    if shape == IOShape.CANONICAL:
        properties = _as_fields(raw["properties"])
        return {
            "type": "object",
            "properties": properties,
            "required": _required_names(raw.get("required"), properties),
        }

    if shape == IOShape.FLAT:
        return {"type": "object", "properties": _as_fields(raw), "required": []}

    return empty_schema_field()


# ============================================
# flow steps
# ============================================

def classify_step(raw: Any) -> StepShape:
    if isinstance(raw, str):
        return StepShape.SHORTHAND
    if not isinstance(raw, dict):
        return StepShape.INVALID
    if raw.get("task") and not raw.get("capability"):
        return StepShape.LEGACY
    return StepShape.CURRENT


def normalize_flow_step(raw: Any) -> Optional[Dict[str, Any]]:
    """Normalize one step; returns None for entries that are not steps at all"""
    shape = classify_step(raw)

    if shape == StepShape.SHORTHAND:
        return {"capability": raw, "inputs": {}, "dependencies": []}

    if shape == StepShape.INVALID:
        return None

    step = string_keys(raw)
    if shape == StepShape.LEGACY:
        capability = step.pop("task")
        legacy_inputs = step.pop("with", None)
        inputs = legacy_inputs if legacy_inputs is not None else step.get("inputs")
    else:
        capability = step.get("capability")
        inputs = step.get("inputs")

    dependencies = step.get("dependencies")
    step["capability"] = as_text(capability)
    step["inputs"] = string_keys(inputs) if isinstance(inputs, dict) else {}
    step["dependencies"] = list(dependencies) if isinstance(dependencies, list) else []
    return step


def normalize_flow_steps(raw: Any) -> List[Dict[str, Any]]:
    """
    Normalize a list of flow steps

    Order is execution order: steps are never reordered or deduplicated.
    Entries that are neither mappings nor strings are dropped.
    """
    if not isinstance(raw, list):
        return []
    steps = []
    for entry in raw:
        step = normalize_flow_step(entry)
        if step is not None:
            steps.append(step)
    return steps


def extract_flow_steps(flow: Any) -> Any:
    """Steps from a ``flow`` section; a bare list is accepted as the steps"""
    if isinstance(flow, dict):
        return flow.get("steps")
    if isinstance(flow, list):
        return flow
    return None


# ============================================
# env
# ============================================

def classify_env_vars(raw: Any) -> EnvVarsShape:
    if raw is None:
        return EnvVarsShape.ABSENT
    if isinstance(raw, dict):
        return EnvVarsShape.RECORD
    if isinstance(raw, list):
        return EnvVarsShape.LIST
    return EnvVarsShape.INVALID


def _fold_env_var_list(entries: List[Any]) -> Dict[str, Dict[str, Any]]:
    """Fold ``[{name, description, schema}]`` into ``{name: field}``"""
    folded: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        schema = entry.get("schema") if isinstance(entry.get("schema"), dict) else {}
        field: Dict[str, Any] = {
            "type": schema.get("type") or "string",
            "description": as_text(entry.get("description")),
        }
        if "default" in schema:
            field["default"] = schema["default"]
        folded[as_text(entry["name"])] = field
    return folded


def normalize_env(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize an env section

    Returns None when there is no usable env section. Keys other than
    ``vars`` and ``resources`` are carried over unchanged.
    """
    if not isinstance(raw, dict):
        return None

    env = string_keys(raw)
    vars_raw = env.get("vars")
    shape = classify_env_vars(vars_raw)

    if shape == EnvVarsShape.LIST:
        env["vars"] = _fold_env_var_list(vars_raw)
    elif shape == EnvVarsShape.RECORD:
        env["vars"] = _as_fields(vars_raw)
    else:
        env["vars"] = {}

    resources = env.get("resources")
    if isinstance(resources, dict):
        env["resources"] = string_keys(resources)
    else:
        env.pop("resources", None)

    return env
