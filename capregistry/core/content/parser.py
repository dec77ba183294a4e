"""
Content Parser - YAML/JSON text to Python objects and back

Uploaded capability documents arrive as text in either syntax. JSON is
tried first when the text looks like JSON; everything else goes through
``yaml.safe_load`` (YAML is a superset of JSON, so this also catches
JSON the first check missed).
"""

import json
from typing import Any

import yaml

from capregistry.core.exceptions import ParseError

JSON = "json"
YAML = "yaml"
SYNTAXES = (JSON, YAML)


def looks_like_json(text: str) -> bool:
    stripped = text.lstrip()
    return stripped.startswith("{") or stripped.startswith("[")


def detect_syntax(text: str) -> str:
    """Return ``"json"`` if the text parses as JSON, else ``"yaml"``"""
    if looks_like_json(text):
        try:
            json.loads(text)
            return JSON
        except json.JSONDecodeError:
            pass
    return YAML


def parse_content(text: str) -> Any:
    """
    Parse a YAML or JSON document

    Raises:
        ParseError: text is empty, or neither valid JSON nor valid YAML
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("Content is empty")

    if looks_like_json(text):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ParseError(f"Failed to parse content: {e}") from e

    if document is None:
        raise ParseError("Content is empty")
    return document


def dump_content(document: Any, syntax: str = YAML) -> str:
    """Serialize a document in the given syntax (``yaml`` or ``json``)"""
    if syntax == JSON:
        return json.dumps(document, indent=2, ensure_ascii=False)
    if syntax == YAML:
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True, default_flow_style=False)
    raise ValueError(f"Unknown syntax: {syntax} (expected one of: {', '.join(SYNTAXES)})")
