"""
Protocol version helpers

Versions are compared component-wise as integers. Missing components
count as zero, so "1.2" compares equal to "1.2.0". A pre-release suffix
("1.2.3-beta") is ignored for ordering purposes.
"""

import re
from typing import Tuple

DEFAULT_PROTOCOL_VERSION = "1.0.0"

VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

_LEADING_DIGITS = re.compile(r"^(\d+)")


def is_valid_version(version: str) -> bool:
    """Check the strict ``X.Y.Z`` protocol version format

    Example:
        >>> is_valid_version("1.0.0")
        True
        >>> is_valid_version("1.0")
        False
    """
    return isinstance(version, str) and bool(VERSION_PATTERN.match(version))


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Parse a version string into a (major, minor, patch) tuple

    Lenient on purpose: non-numeric components read as 0 so that any
    string can be ordered against the migration table.
    """
    parts = str(version).strip().split("-")[0].split(".")
    numbers = []
    for part in parts[:3]:
        match = _LEADING_DIGITS.match(part)
        numbers.append(int(match.group(1)) if match else 0)
    while len(numbers) < 3:
        numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


def compare_versions(a: str, b: str) -> int:
    """Three-way compare: -1 if a < b, 0 if equal, 1 if a > b"""
    left, right = parse_version(a), parse_version(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def major_minor(version: str) -> str:
    """Return the ``major.minor`` prefix of a version string"""
    return ".".join(str(version).split(".")[:2])
