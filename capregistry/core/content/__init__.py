"""Content parsing and serialization"""

from capregistry.core.content.parser import (
    JSON,
    YAML,
    detect_syntax,
    dump_content,
    parse_content,
)

__all__ = ["JSON", "YAML", "detect_syntax", "dump_content", "parse_content"]
