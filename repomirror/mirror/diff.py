"""
File Diff — Classify tree-to-tree changes into added/removed path sets.

Each change record carries the blob id and path on both sides. A side whose
id is all zeros did not exist:

    old id zero          → added   {new_path}
    new id zero          → removed {old_path}
    both ids present     → removed {old_path} and added {new_path}

There is no "modified" kind: replaced content shows up in both sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Set


@dataclass(frozen=True)
class ChangeRecord:
    """One entry of a tree-to-tree diff."""

    old_id: str
    new_id: str
    old_path: str
    new_path: str


@dataclass
class FileDiff:
    """Paths added and removed between two synchronized states."""

    added: Set[str] = field(default_factory=set)
    removed: Set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed

    def to_dict(self) -> dict:
        return {
            "added": sorted(self.added),
            "removed": sorted(self.removed),
        }


def is_zero_id(object_id: str) -> bool:
    return not object_id or set(object_id) == {"0"}


def classify_changes(records: Iterable[ChangeRecord]) -> FileDiff:
    """Fold change records into a FileDiff."""
    diff = FileDiff()
    for record in records:
        if is_zero_id(record.old_id):
            diff.added.add(record.new_path)
        elif is_zero_id(record.new_id):
            diff.removed.add(record.old_path)
        else:
            diff.removed.add(record.old_path)
            diff.added.add(record.new_path)
    return diff


def parse_raw_diff(output: str) -> List[ChangeRecord]:
    """
    Parse ``git diff-tree -r -z --raw --no-renames`` output.

    Each entry is ``:<old mode> <new mode> <old id> <new id> <status>``
    followed by one NUL-terminated path.
    """
    records: List[ChangeRecord] = []
    fields = output.split("\0")
    i = 0
    while i < len(fields):
        header = fields[i]
        if not header.startswith(":"):
            i += 1
            continue
        parts = header[1:].split()
        if len(parts) < 5 or i + 1 >= len(fields):
            raise ValueError(f"Malformed raw diff entry: {header!r}")
        old_id, new_id, status = parts[2], parts[3], parts[4]
        path = fields[i + 1]
        i += 2
        # Copies and renames carry a second path
        if status[:1] in ("R", "C"):
            new_path = fields[i]
            i += 1
            records.append(ChangeRecord(old_id, new_id, path, new_path))
        else:
            records.append(ChangeRecord(old_id, new_id, path, path))
    return records
