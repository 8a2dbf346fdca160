"""Helpers for nested JSON-like trees.

Paths are either dotted strings (``"jwt.secret"``, ``"roles.0"``) or
sequences of segments. Integer segments and decimal string segments index
into lists; everything else indexes into mappings.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

PathLike = str | Sequence[str | int]

_MISSING = object()


def clone(value: Any) -> Any:
    """Deep copy with no shared structure."""
    return copy.deepcopy(value)


def split_path(path: PathLike) -> list[str | int]:
    """Normalise a dotted string or segment sequence to a list of segments."""
    if isinstance(path, str):
        return [p for p in path.split(".") if p != ""]
    return list(path)


def join_path(path: Sequence[str | int]) -> str:
    return ".".join(str(p) for p in path)


def _index(container: list[Any], segment: str | int) -> int | None:
    if isinstance(segment, int):
        return segment
    if segment.isdigit():
        return int(segment)
    return None


def _child(container: Any, segment: str | int) -> Any:
    if isinstance(container, list):
        idx = _index(container, segment)
        if idx is None or not 0 <= idx < len(container):
            return _MISSING
        return container[idx]
    if isinstance(container, Mapping):
        key = segment if isinstance(segment, str) else str(segment)
        if key in container:
            return container[key]
        if segment in container:
            return container[segment]
    return _MISSING


def get_path(tree: Any, path: PathLike, default: Any = None) -> Any:
    current = tree
    for segment in split_path(path):
        current = _child(current, segment)
        if current is _MISSING:
            return default
    return current


def has_path(tree: Any, path: PathLike) -> bool:
    current = tree
    for segment in split_path(path):
        current = _child(current, segment)
        if current is _MISSING:
            return False
    return True


def set_path(tree: Any, path: PathLike, value: Any) -> Any:
    """Set ``value`` at ``path`` in place, creating intermediate mappings.

    Returns the tree. An empty path returns ``value`` itself.
    """
    segments = split_path(path)
    if not segments:
        return value

    current = tree
    for segment, following in zip(segments, segments[1:]):
        nxt = _child(current, segment)
        if nxt is _MISSING or not isinstance(nxt, (dict, list)):
            nxt = [] if isinstance(following, int) else {}
            _assign(current, segment, nxt)
        current = nxt
    _assign(current, segments[-1], value)
    return tree


def _assign(container: Any, segment: str | int, value: Any) -> None:
    if isinstance(container, list):
        idx = _index(container, segment)
        if idx is None:
            raise KeyError(f"Cannot index a list with {segment!r}")
        if idx == len(container):
            container.append(value)
        elif idx < len(container):
            container[idx] = value
        else:
            raise IndexError(f"List index {idx} out of range")
    else:
        container[segment if isinstance(segment, str) else str(segment)] = value


def remove_path(tree: Any, path: PathLike) -> Any:
    """Remove the node at ``path`` in place and return the removed value."""
    segments = split_path(path)
    if not segments:
        raise KeyError("Cannot remove the root")
    parent = get_path(tree, segments[:-1], _MISSING)
    if parent is _MISSING:
        raise KeyError(join_path(segments))
    last = segments[-1]
    if isinstance(parent, list):
        idx = _index(parent, last)
        if idx is None or not 0 <= idx < len(parent):
            raise KeyError(join_path(segments))
        return parent.pop(idx)
    key = last if isinstance(last, str) else str(last)
    if key not in parent:
        raise KeyError(join_path(segments))
    return parent.pop(key)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` over ``base``. Sequences are replaced."""
    result = clone(dict(base))
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = clone(value)
    return result


def omit_keys(tree: Mapping[str, Any], keys: Sequence[str]) -> dict[str, Any]:
    return {k: v for k, v in tree.items() if k not in keys}


__all__ = [
    "PathLike",
    "clone",
    "split_path",
    "join_path",
    "get_path",
    "has_path",
    "set_path",
    "remove_path",
    "deep_merge",
    "omit_keys",
]
