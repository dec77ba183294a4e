import json

import pytest
import yaml

from capregistry.core.content.parser import detect_syntax, dump_content, parse_content
from capregistry.core.exceptions import ParseError


def test_parse_json_and_yaml() -> None:
    assert parse_content('{"id": "calc"}') == {"id": "calc"}
    assert parse_content("id: calc\nversion: 1.0.0\n") == {"id": "calc", "version": "1.0.0"}
    assert parse_content("  [1, 2]") == [1, 2]


def test_json_looking_yaml_falls_back_to_yaml() -> None:
    # flow mapping with unquoted keys is YAML, not JSON
    assert parse_content("{id: calc}") == {"id": "calc"}


@pytest.mark.parametrize("text", ["", "   \n", "# only a comment\n"])
def test_empty_content_is_rejected(text: str) -> None:
    with pytest.raises(ParseError):
        parse_content(text)


def test_invalid_content_is_rejected() -> None:
    with pytest.raises(ParseError):
        parse_content("id: [unclosed")


def test_detect_syntax() -> None:
    assert detect_syntax('{"a": 1}') == "json"
    assert detect_syntax("{a: 1}") == "yaml"
    assert detect_syntax("a: 1") == "yaml"


def test_dump_content_keeps_key_order() -> None:
    doc = {"z": 1, "a": {"nested": [1, 2]}}
    assert list(yaml.safe_load(dump_content(doc, "yaml"))) == ["z", "a"]
    assert dump_content(doc, "yaml").startswith("z: 1")
    assert json.loads(dump_content(doc, "json")) == doc

    with pytest.raises(ValueError):
        dump_content(doc, "toml")
