"""
Dot/bracket path traversal into step outputs.

``total``, ``rows[0].email``, ``data['first name']`` and ``rows[].email`` are
all valid paths. An empty bracket maps the rest of the path over every element
of the array found at that point. Traversal never raises: a missing key, an
out-of-range index or a type mismatch yields ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Sequence, Tuple, Union

_PART_PATTERN = re.compile(r"^([^\[\]]*)((?:\[[^\[\]]*\])*)$")
_BRACKET_PATTERN = re.compile(r"\[([^\[\]]*)\]")


@dataclass(frozen=True)
class KeySegment:
    key: str


@dataclass(frozen=True)
class IndexSegment:
    index: int


@dataclass(frozen=True)
class EachSegment:
    pass


PathSegment = Union[KeySegment, IndexSegment, EachSegment]
EACH = EachSegment()


@lru_cache(maxsize=1024)
def parse_path(path: str | None) -> Tuple[PathSegment, ...]:
    if not path:
        return ()
    segments: list[PathSegment] = []
    for part in path.split("."):
        part = part.strip()
        if not part:
            continue
        match = _PART_PATTERN.match(part)
        if match is None:
            segments.append(KeySegment(part))
            continue
        key, brackets = match.groups()
        if key.strip():
            segments.append(KeySegment(key.strip()))
        for token in _BRACKET_PATTERN.findall(brackets):
            token = token.strip()
            if not token:
                segments.append(EACH)
            elif token.lstrip("-").isdigit():
                segments.append(IndexSegment(int(token)))
            else:
                segments.append(KeySegment(token.strip("'\"")))
    return tuple(segments)


def get_path(value: Any, path: str | None) -> Any:
    """Resolve ``path`` inside ``value``; ``None`` when any part is missing."""
    return _walk(value, parse_path(path))


def has_each(path: str | None) -> bool:
    return any(isinstance(segment, EachSegment) for segment in parse_path(path))


def root_key(path: str | None) -> str | None:
    segments = parse_path(path)
    if segments and isinstance(segments[0], KeySegment):
        return segments[0].key
    return None


def _walk(value: Any, segments: Sequence[PathSegment]) -> Any:
    for position, segment in enumerate(segments):
        if value is None:
            return None
        if isinstance(segment, EachSegment):
            if not isinstance(value, (list, tuple)):
                return None
            rest = segments[position + 1:]
            return [_walk(item, rest) for item in value]
        if isinstance(segment, IndexSegment):
            value = _index(value, segment.index)
        else:
            value = _key(value, segment.key)
    return value


def _index(value: Any, index: int) -> Any:
    if isinstance(value, (list, tuple)):
        if -len(value) <= index < len(value):
            return value[index]
        return None
    if isinstance(value, Mapping):
        return value.get(str(index), value.get(index))
    return None


def _key(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key)
    if isinstance(value, (list, tuple)) and key.lstrip("-").isdigit():
        return _index(value, int(key))
    return None
