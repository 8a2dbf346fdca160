"""
Structural diffs between configuration trees.

A diff is an ordered list of ``DiffEntry`` operations that turns one JSON-like
tree into another. Diffs are what the versioned manager persists under an
unchanged version, what modules get to veto before a change lands, and what
the ``config.diff`` event carries to audit writers.

Ordering:
    Mappings      removed keys (old order), then edited/recursed keys (old
                  order), then added keys (new order)
    Sequences     common indices recurse, surplus old indices are removed from
                  the highest index down, surplus new indices are added in
                  ascending order
    Kind change   mapping vs sequence vs scalar yields one ``e`` entry

``apply(a, diff(a, b)) == b`` holds for any two trees, and ``diff(a, a)`` is
empty.

Examples:
    >>> from keel.core.diff import diff, apply
    >>> entries = diff({"a": 1, "b": [1, 2]}, {"a": 2, "b": [1]})
    >>> [e.to_dict() for e in entries]
    [{'t': 'e', 'p': ['a'], 'o': 1, 'n': 2}, {'t': 'r', 'p': ['b', 1], 'o': 2}]
    >>> apply({"a": 1, "b": [1, 2]}, entries)
    {'a': 2, 'b': [1]}

Tags:
    diff, configuration, audit, keel-core
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from keel.core.objects import clone

DiffType = Literal["a", "r", "e"]
PathSegment = str | int

__all__ = ["DiffEntry", "diff", "apply", "clone", "group_by_module"]


@dataclass(frozen=True)
class DiffEntry:
    """One structural operation.

    Attributes:
        t: ``a`` (added), ``r`` (removed) or ``e`` (edited)
        p: path from the root, mapping keys as ``str`` and list indices as ``int``
        o: old value (``r`` and ``e``)
        n: new value (``a`` and ``e``)
    """

    t: DiffType
    p: tuple[PathSegment, ...]
    o: Any = None
    n: Any = None

    @property
    def module(self) -> str | None:
        """Top path segment, i.e. the module key the entry belongs to."""
        return str(self.p[0]) if self.p else None

    def relative(self) -> DiffEntry:
        """The same entry with the top path segment stripped."""
        return DiffEntry(self.t, self.p[1:], self.o, self.n)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"t": self.t, "p": list(self.p)}
        if self.t != "a":
            data["o"] = self.o
        if self.t != "r":
            data["n"] = self.n
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DiffEntry:
        return cls(
            t=data["t"],
            p=tuple(data.get("p", ())),
            o=data.get("o"),
            n=data.get("n"),
        )


def _kind(value: Any) -> str:
    if isinstance(value, Mapping):
        return "mapping"
    if isinstance(value, list):
        return "sequence"
    return "scalar"


def _scalar_equal(a: Any, b: Any) -> bool:
    # 1 == True in Python but not in JSON
    return type(a) is type(b) and a == b


def diff(old: Any, new: Any, _path: tuple[PathSegment, ...] = ()) -> list[DiffEntry]:
    """Compute the ordered list of entries turning ``old`` into ``new``."""
    kind = _kind(old)
    if kind != _kind(new):
        return [DiffEntry("e", _path, clone(old), clone(new))]

    entries: list[DiffEntry] = []

    if kind == "mapping":
        for key in old:
            if key not in new:
                entries.append(DiffEntry("r", _path + (key,), o=clone(old[key])))
        for key in old:
            if key in new:
                entries.extend(diff(old[key], new[key], _path + (key,)))
        for key in new:
            if key not in old:
                entries.append(DiffEntry("a", _path + (key,), n=clone(new[key])))
        return entries

    if kind == "sequence":
        common = min(len(old), len(new))
        for i in range(common):
            entries.extend(diff(old[i], new[i], _path + (i,)))
        for i in range(len(old) - 1, common - 1, -1):
            entries.append(DiffEntry("r", _path + (i,), o=clone(old[i])))
        for i in range(common, len(new)):
            entries.append(DiffEntry("a", _path + (i,), n=clone(new[i])))
        return entries

    if not _scalar_equal(old, new):
        entries.append(DiffEntry("e", _path, old, new))
    return entries


def _locate(tree: Any, path: tuple[PathSegment, ...]) -> Any:
    current = tree
    for segment in path:
        current = current[segment]
    return current


def apply(tree: Any, diffs: Iterable[DiffEntry | Mapping[str, Any]]) -> Any:
    """Apply ``diffs`` in order to a clone of ``tree`` and return the result."""
    result = clone(tree)
    for raw in diffs:
        entry = raw if isinstance(raw, DiffEntry) else DiffEntry.from_dict(raw)
        if not entry.p:
            result = None if entry.t == "r" else clone(entry.n)
            continue

        parent = _locate(result, entry.p[:-1])
        last = entry.p[-1]
        if entry.t == "r":
            if isinstance(parent, list):
                parent.pop(int(last))
            else:
                del parent[last]
        elif entry.t == "a" and isinstance(parent, list):
            parent.insert(int(last), clone(entry.n))
        else:
            parent[last] = clone(entry.n)
    return result


def group_by_module(diffs: Iterable[DiffEntry]) -> dict[str, list[DiffEntry]]:
    """Group entries by their top path segment, keeping first-seen order."""
    grouped: dict[str, list[DiffEntry]] = {}
    for entry in diffs:
        grouped.setdefault(entry.module or "", []).append(entry)
    return grouped
