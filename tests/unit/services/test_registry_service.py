import json
from pathlib import Path
from typing import List

import pytest
import yaml

from capregistry.core.exceptions import EmbeddingError, NotFoundError, ParseError, ValidationError
from capregistry.core.normalize import normalizer as normalizer_module
from capregistry.core.schema import build_default_registry
from capregistry.providers.embeddings import EmbeddingProvider
from capregistry.services.registry_service import CapabilityService, ImportItem
from capregistry.store.capability_store import CapabilityStore

CALC_YAML = """\
enact: 1.0.0
id: calc
description: adds numbers
version: 1.0.0
type: atomic
authors:
  - name: Ada
inputs:
  a: {type: number}
  b: {type: number}
tasks:
  - id: calc
    type: script
    language: python
    code: return a+b
flow:
  steps:
    - task: calc
      with: {a: 1}
"""


class FakeEmbeddingProvider(EmbeddingProvider):
    """Bag-of-letters vectors: deterministic and good enough to rank"""

    def __init__(self):
        self.calls: List[str] = []

    def generate_embedding(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(letter)) for letter in "abcdefghijklmnopqrstuvwxyz"]


def _service(tmp_path: Path, strict: bool = False) -> CapabilityService:
    return CapabilityService(
        store=CapabilityStore(tmp_path / "registry.db"),
        schemas=build_default_registry(),
        embeddings=FakeEmbeddingProvider(),
        default_strict=strict,
    )


def _doc(capability_id: str, description: str, **extra) -> str:
    document = {
        "enact": "1.0.0",
        "id": capability_id,
        "description": description,
        "version": "1.0.0",
        "type": "atomic",
    }
    document.update(extra)
    return json.dumps(document)


def test_create_stores_original_text(tmp_path: Path) -> None:
    service = _service(tmp_path)
    result = service.create(CALC_YAML)

    assert result.wrapper.id == "calc"
    assert result.wrapper.is_atomic is True
    assert result.format_version == "1.0.0"
    assert result.warnings == []
    assert service.get("calc") == CALC_YAML
    assert service.embeddings.calls == ["adds numbers"]

    row = service.store.get("calc")
    assert row.type == "atomic"
    assert row.embedding


def test_create_lenient_keeps_going_strict_rejects(tmp_path: Path) -> None:
    service = _service(tmp_path)
    lenient = service.create('{"id": "loose", "description": "no version"}')
    assert any("missing required field" in w for w in lenient.warnings)

    with pytest.raises(ValidationError) as exc_info:
        service.create('{"id": "tight", "description": "no version"}', strict=True)
    assert exc_info.value.result is not None
    assert not exc_info.value.result.valid
    assert service.store.get("tight") is None


def test_default_strict_comes_from_service(tmp_path: Path) -> None:
    service = _service(tmp_path, strict=True)
    with pytest.raises(ValidationError):
        service.create('{"id": "tight", "description": "no version"}')
    assert service.create('{"id": "ok", "description": "x"}', strict=False).wrapper.id == "ok"


def test_type_errors_do_not_block_lenient_create(tmp_path: Path) -> None:
    service = _service(tmp_path)
    result = service.create(_doc("typed", "bad version", version="one"))
    assert result.wrapper.version == "one"


def test_create_rejects_unparseable_and_id_less_content(tmp_path: Path) -> None:
    service = _service(tmp_path)
    with pytest.raises(ParseError):
        service.create("")
    with pytest.raises(ParseError):
        service.create("- just\n- a list\n")
    with pytest.raises(ValidationError):
        service.create('{"description": "anonymous"}')


def test_create_in_other_format_migrates_document(tmp_path: Path) -> None:
    service = _service(tmp_path)
    result = service.create(CALC_YAML, format_version="2.0.0")

    assert result.format_version == "2.0.0"
    stored = yaml.safe_load(service.get("calc"))
    assert stored["enact"] == "2.0.0"
    assert stored["flow"]["steps"] == [{"capability": "calc", "inputs": {"a": 1}}]
    assert stored["inputs"]["type"] == "object"


def test_get_converts_on_read_in_stored_syntax(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)

    converted = service.get("calc", "2.0.0")
    document = yaml.safe_load(converted)
    assert not converted.lstrip().startswith("{")
    assert document["enact"] == "2.0.0"
    assert document["flow"]["steps"][0]["capability"] == "calc"

    assert service.get("calc", "1.0.0") == CALC_YAML

    with pytest.raises(NotFoundError):
        service.get("missing")


def test_get_wrapper(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)

    wrapper = service.get_wrapper("calc", "2.0.0")
    assert wrapper.enact == "2.0.0"
    assert wrapper.protocol_details.flow.steps[0].capability == "calc"


def test_update_replaces_document(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)

    result = service.update("calc", _doc("other-id", "adds two numbers", version="1.1.0"))
    assert result.wrapper.id == "calc"
    assert result.wrapper.description == "adds two numbers"

    stored = json.loads(service.get("calc"))
    assert stored["id"] == "calc"
    assert "tasks" not in stored


def test_update_preserve_metadata_and_target_format(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)

    result = service.update(
        "calc",
        "description: adds quickly\n",
        target_format="2.0.0",
        preserve_metadata=True,
    )

    assert result.format_version == "2.0.0"
    stored = yaml.safe_load(service.get("calc"))
    assert stored["description"] == "adds quickly"
    assert stored["version"] == "1.0.0"
    assert stored["enact"] == "2.0.0"
    assert stored["tasks"][0]["id"] == "calc"
    assert stored["flow"]["steps"][0] == {"capability": "calc", "inputs": {"a": 1}}
    assert service.store.get("calc").format_version == "2.0.0"


def test_update_unknown_id(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        _service(tmp_path).update("ghost", CALC_YAML)


def test_convert_does_not_store(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)

    result = service.convert("calc", "2.0.0")
    assert result.converted
    assert result.source_format == "1.0.0"
    assert result.document["enact"] == "2.0.0"
    assert result.document["flow"]["steps"][0]["capability"] == "calc"
    assert service.get("calc") == CALC_YAML

    same = service.convert("calc", "1.0.0")
    assert not same.converted
    assert same.document["flow"]["steps"][0]["task"] == "calc"


def test_validate_reports_without_storing(tmp_path: Path) -> None:
    service = _service(tmp_path)

    report = service.validate(CALC_YAML, format_version="2.0.0", strict=True)
    assert not report.valid
    assert report.format_version == "2.0.0"
    assert "flow.steps[0].capability: missing required field" in report.result.errors

    ok = service.validate(CALC_YAML)
    assert ok.valid
    assert ok.consistency == []
    assert ok.to_dict()["format"] == "1.0.0"

    assert service.store.count() == 0


def test_list_falls_back_for_broken_rows(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)
    service.store.store("broken", "id: [unclosed", description="half written", type_="composite")

    wrappers = {w.id: w for w in service.list()}
    assert set(wrappers) == {"calc", "broken"}
    assert wrappers["broken"].description == "half written"
    assert wrappers["broken"].protocol_details.type == "composite"

    assert all(w.enact == "2.0.0" for w in service.list("2.0.0") if w.id == "calc")


def test_search_ranks_by_description(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(_doc("zip", "zzz zip zap"))
    service.create(_doc("calc", "adds numbers"))

    hits = service.search("adds numbers together", limit=2)
    assert [h.id for h in hits] == ["calc", "zip"]
    assert hits[0].similarity > hits[1].similarity
    assert hits[0].content is None

    with_content = service.search("adds numbers", limit=1, format_version="2.0.0")
    assert json.loads(with_content[0].content)["enact"] == "2.0.0"


def test_search_requires_query_and_provider(tmp_path: Path) -> None:
    service = _service(tmp_path)
    with pytest.raises(ValidationError):
        service.search("   ")

    disabled = CapabilityService(CapabilityStore(tmp_path / "other.db"), build_default_registry())
    with pytest.raises(EmbeddingError):
        disabled.search("anything")


def test_delete(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)
    assert service.delete("calc") is True
    assert service.delete("calc") is False


def test_statistics(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)
    service.create(_doc("flow", "pipeline", type="workflow", version="2.0.0"), format_version="2.0.0")

    stats = service.statistics()
    assert stats["totalCapabilities"] == 2
    assert stats["types"] == {"atomic": 1, "composite": 1}
    assert stats["versions"] == {"1.0.0": 1, "2.0.0": 1}
    assert stats["formatVersions"] == ["1.0.0", "2.0.0"]
    assert stats["lastUpdated"].endswith("Z")


def test_import_batch_aggregates_per_item(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create(CALC_YAML)

    report = service.import_batch(
        [
            {"id": "calc", "content": CALC_YAML},
            {"id": "fresh", "content": _doc("ignored-id", "fresh one")},
            {"id": "broken", "content": "id: [unclosed"},
            ImportItem(id="dict", content={"description": "from a mapping"}, format_version="1.0.0"),
            {"id": "tight", "content": '{"description": "no version"}'},
        ],
        strict=True,
        skip_existing=True,
    )

    assert report.total == 5
    assert report.skipped == 1
    assert report.successful == 1
    assert report.failed == 3
    assert {e.id for e in report.errors} == {"broken", "dict", "tight"}
    assert json.loads(service.get("fresh"))["id"] == "fresh"

    lenient = service.import_batch([ImportItem(id="dict", content={"description": "from a mapping"})])
    assert lenient.successful == 1
    assert json.loads(service.get("dict"))["id"] == "dict"


def test_import_batch_requires_items(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        _service(tmp_path).import_batch([])


def test_health(tmp_path: Path) -> None:
    health = _service(tmp_path).health()
    assert health["status"] == "ok"
    assert health["components"]["schemaRegistry"]["registeredSchemas"] == ["1.0.0", "2.0.0"]
    assert health["components"]["database"]["status"] == "ok"
    assert health["components"]["embeddings"]["enabled"] is True


NOTIFY_YAML = """\
id: notify
description: sends alerts
tasks:
  - id: send
    type: script
flow:
  steps:
    - capability: send
      on: failure
"""


def test_yaml_non_string_keys_do_not_break_create_or_list(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.store.store("notify", NOTIFY_YAML, description="stored directly")
    assert [w.id for w in service.list()] == ["notify"]

    created = service.create(NOTIFY_YAML)
    assert created.wrapper.protocol_details.flow.steps[0].capability == "send"

    wrappers = service.list()
    assert len(wrappers) == 1
    assert wrappers[0].to_dict()["protocolDetails"]["flow"]["steps"][0]["True"] == "failure"


def test_import_batch_continues_past_normalization_failure(tmp_path: Path, monkeypatch) -> None:
    real_build = normalizer_module.build_details

    def build_rejecting_marked(details, enact):
        built = real_build(details, enact)
        if "x-unbuildable" in details:
            built["env"] = {"vars": "not a mapping"}
        return built

    monkeypatch.setattr(normalizer_module, "build_details", build_rejecting_marked)
    service = _service(tmp_path)

    report = service.import_batch(
        [
            {"id": "first", "content": _doc("first", "one")},
            {"id": "bad", "content": _doc("bad", "two", **{"x-unbuildable": True})},
            {"id": "third", "content": _doc("third", "three")},
        ]
    )

    assert report.successful == 2
    assert report.failed == 1
    assert report.errors[0].id == "bad"
    assert service.store.exists("first") and service.store.exists("third")
    assert not service.store.exists("bad")


def test_validate_reports_resolved_schema_version(tmp_path: Path) -> None:
    report = _service(tmp_path).validate(CALC_YAML, format_version="2.0.7")

    assert report.format_version == "2.0.7"
    assert report.schema_version == "2.0.0"
    assert report.to_dict()["schemaVersion"] == "2.0.0"
