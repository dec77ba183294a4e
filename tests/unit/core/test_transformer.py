import copy

from capregistry.core.normalize.transformer import (
    DEFAULT_MIGRATIONS,
    Migration,
    VersionTransformer,
    rename_capability_to_task,
    transform,
)


def _legacy_document() -> dict:
    return {
        "enact": "1.0.0",
        "id": "pipeline",
        "inputs": {"text": {"type": "string"}},
        "flow": {
            "steps": [
                {"task": "clean", "with": {"text": "$input.text"}, "id": "s1"},
                {"task": "count", "dependencies": ["s1"]},
                {"capability": "already-new", "inputs": {}},
            ]
        },
    }


def test_same_version_is_identity() -> None:
    doc = _legacy_document()
    assert transform(doc, "1.0.0", "1.0.0") is doc


def test_upgrade_renames_steps_and_wraps_inputs() -> None:
    doc = _legacy_document()
    upgraded = transform(doc, "1.0.0", "2.0.0")

    assert upgraded["enact"] == "2.0.0"
    assert upgraded["flow"]["steps"] == [
        {"capability": "clean", "inputs": {"text": "$input.text"}, "id": "s1"},
        {"capability": "count", "dependencies": ["s1"]},
        {"capability": "already-new", "inputs": {}},
    ]
    assert upgraded["inputs"] == {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": [],
    }


def test_input_is_never_mutated() -> None:
    doc = _legacy_document()
    snapshot = copy.deepcopy(doc)
    transform(doc, "1.0.0", "2.0.0")
    transform(doc, "2.0.0", "1.0.0")
    assert doc == snapshot


def test_round_trip_restores_flow_steps() -> None:
    doc = {"enact": "1.0.0", "flow": {"steps": [{"task": "t1", "with": {"a": 1}}, {"task": "t2"}]}}
    there = transform(doc, "1.0.0", "2.0.0")
    back = transform(there, "2.0.0", "1.0.0")

    assert back["flow"]["steps"] == doc["flow"]["steps"]
    assert back["enact"] == "1.0.0"


def test_downgrade_only_renames_present_keys() -> None:
    doc = {"flow": {"steps": [{"capability": "c"}, {"task": "t", "capability": "c2"}]}}
    rename_capability_to_task(doc)
    assert doc["flow"]["steps"] == [{"task": "c"}, {"task": "t", "capability": "c2"}]


def test_unknown_pair_is_stamped_only() -> None:
    doc = {"enact": "2.0.0", "flow": {"steps": [{"capability": "c"}]}}
    result = transform(doc, "2.0.0", "2.3.0")
    assert result == {"enact": "2.3.0", "flow": {"steps": [{"capability": "c"}]}}


def test_wrapper_shaped_documents_migrate_inside_protocol_details() -> None:
    wrapper = {"id": "w", "protocolDetails": {"enact": "1.0.0", "flow": {"steps": [{"task": "t"}]}}}
    result = transform(wrapper, "1.0.0", "2.0.0")

    assert result["enact"] == "2.0.0"
    assert result["protocolDetails"]["enact"] == "2.0.0"
    assert result["protocolDetails"]["flow"]["steps"] == [{"capability": "t"}]


def test_plan_orders_migrations_by_direction() -> None:
    def mark(name):
        def rewrite(doc):
            doc.setdefault("applied", []).append(name)
        return rewrite

    migrations = (
        Migration("3.0.0", mark("up3"), mark("down3")),
        Migration("2.0.0", mark("up2"), mark("down2")),
    )
    transformer = VersionTransformer(migrations)

    assert transformer.transform({}, "1.0.0", "3.0.0")["applied"] == ["up2", "up3"]
    assert transformer.transform({}, "3.0.0", "1.0.0")["applied"] == ["down3", "down2"]
    assert transformer.transform({}, "2.0.0", "3.0.0")["applied"] == ["up3"]
    assert transformer.transform({}, "2.0.0", "2.5.0") == {"enact": "2.5.0"}
    assert [m.introduced_in for m, _ in transformer.plan("1.0.0", "2.0.0")] == ["2.0.0"]


def test_default_table_has_2_0_0_migration() -> None:
    assert [m.introduced_in for m in DEFAULT_MIGRATIONS] == ["2.0.0"]
