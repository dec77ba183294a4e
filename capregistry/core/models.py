"""
Capability Models - canonical, version-independent representation

CapabilityWrapper is what the registry stores, lists and returns.
EnactDocument is the protocol-versioned payload it carries.

Field names are snake_case in Python and camelCase on the wire
(``isAtomic``, ``protocolDetails``). ``to_dict()`` produces the wire form,
which can be fed straight back into the normalizer.

Schema descriptors (inputs/outputs properties, env vars) stay plain dicts:
they are an open-ended JSON Schema subset and must round-trip untouched.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from capregistry.core.versioning import DEFAULT_PROTOCOL_VERSION

# JSON Schema subset: {type, description?, default?, enum?, pattern?, ...}
JsonSchemaField = Dict[str, Any]


def _dump(model: BaseModel) -> Dict[str, Any]:
    """model_dump() minus declared optional fields that are unset (None)

    Extra keys carried by ``extra="allow"`` models are kept even when None.
    """
    declared = type(model).model_fields
    return {k: v for k, v in model.model_dump().items() if not (v is None and k in declared)}


class Author(BaseModel):
    """Capability author"""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    email: Optional[str] = None
    url: Optional[str] = None


class InputsOutputsSchema(BaseModel):
    """Canonical inputs/outputs shape: a JSON Schema object"""

    type: str = "object"
    properties: Dict[str, JsonSchemaField] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)


class Task(BaseModel):
    """Directly executable unit of an atomic capability"""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    type: str = ""
    language: Optional[str] = None
    code: Optional[str] = None
    dependencies: Optional[List[Any]] = None


class FlowStep(BaseModel):
    """One ordered step of a flow; extra step keys are preserved"""

    model_config = ConfigDict(extra="allow")

    capability: str = ""
    inputs: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[Any] = Field(default_factory=list)


class Flow(BaseModel):
    steps: List[FlowStep] = Field(default_factory=list)


class Environment(BaseModel):
    """Environment variables and resource requirements"""

    model_config = ConfigDict(extra="allow")

    vars: Dict[str, JsonSchemaField] = Field(default_factory=dict)
    resources: Optional[Dict[str, Any]] = None


class EnactDocument(BaseModel):
    """Protocol-versioned capability payload"""

    enact: str = DEFAULT_PROTOCOL_VERSION
    id: str = ""
    description: str = ""
    version: str = DEFAULT_PROTOCOL_VERSION
    type: str = "atomic"
    authors: List[Author] = Field(default_factory=list)
    inputs: InputsOutputsSchema = Field(default_factory=InputsOutputsSchema)
    outputs: InputsOutputsSchema = Field(default_factory=InputsOutputsSchema)
    tasks: List[Task] = Field(default_factory=list)
    flow: Flow = Field(default_factory=Flow)
    env: Optional[Environment] = None
    imports: Optional[Any] = None
    dependencies: Optional[Any] = None
    doc: Optional[str] = None
    extensions: Dict[str, Any] = Field(default_factory=dict, description="Vendor x-* fields")

    def to_dict(self) -> Dict[str, Any]:
        """Wire form; optional sections are omitted when absent"""
        data: Dict[str, Any] = {
            "enact": self.enact,
            "id": self.id,
            "description": self.description,
            "version": self.version,
            "type": self.type,
            "authors": [_dump(a) for a in self.authors],
            "inputs": self.inputs.model_dump(),
            "outputs": self.outputs.model_dump(),
            "tasks": [_dump(t) for t in self.tasks],
            "flow": {"steps": [_dump(s) for s in self.flow.steps]},
        }
        if self.env is not None:
            data["env"] = _dump(self.env)
        for key in ("imports", "dependencies", "doc"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data.update(self.extensions)
        return data


class CapabilityWrapper(BaseModel):
    """Catalog entry wrapping a normalized EnactDocument"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str
    version: str = DEFAULT_PROTOCOL_VERSION
    teams: List[str] = Field(default_factory=list)
    is_atomic: bool = Field(False, alias="isAtomic")
    protocol_details: EnactDocument = Field(..., alias="protocolDetails")

    @property
    def enact(self) -> str:
        return self.protocol_details.enact

    def to_dict(self) -> Dict[str, Any]:
        """Wire form with camelCase keys"""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "teams": list(self.teams),
            "isAtomic": self.is_atomic,
            "protocolDetails": self.protocol_details.to_dict(),
        }
