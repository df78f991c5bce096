"""Core data models shared across git-toolbox components."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class Field:
    """One tagged field of a record.

    ``tag`` keeps its backslash (``\\lx``). ``value`` is everything after the tag
    up to the next tagged line: the separating whitespace, the text, the line
    break and any untagged continuation or blank lines. ``tag + value`` is
    always the exact source text of the field.
    """

    tag: str
    value: str

    @property
    def text(self) -> str:
        return self.tag + self.value

    @property
    def stripped(self) -> str:
        return self.value.strip()


@dataclass(frozen=True)
class Record:
    """A dictionary entry: an ordered run of fields led by the record tag."""

    fields: Tuple[Field, ...]
    line_start: int = field(default=1, compare=False)
    index: int = field(default=0, compare=False)

    @property
    def text(self) -> str:
        return "".join(item.text for item in self.fields)

    @property
    def tag(self) -> str:
        return self.fields[0].tag if self.fields else ""

    @property
    def label(self) -> str:
        return self.fields[0].stripped if self.fields else ""

    @property
    def line_end(self) -> int:
        text = self.text
        breaks = text.count("\n")
        lines = breaks if text.endswith("\n") else breaks + 1
        return self.line_start + max(lines, 1) - 1

    @property
    def digest(self) -> str:
        return hashlib.sha1(self.text.encode("utf-8")).hexdigest()

    def fields_with_tag(self, tag: str) -> List[Field]:
        return [item for item in self.fields if item.tag == tag]


@dataclass(frozen=True)
class Identity:
    """Canonical name of a record.

    ``namespace`` is ``None`` for label dictionaries, ``""`` for public ids and
    the namespace string for private ids.
    """

    id: str
    namespace: Optional[str] = None

    @property
    def key(self) -> str:
        return (self.namespace or "") + self.id

    @property
    def is_private(self) -> bool:
        return bool(self.namespace)

    @property
    def is_label(self) -> bool:
        return self.namespace is None

    def __str__(self) -> str:
        return self.key


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A problem found while decoding, resolving or recomposing a dictionary."""

    code: str
    message: str
    severity: Severity = Severity.ERROR
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    identity: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @property
    def location(self) -> str:
        if self.line_start is None:
            return ""
        if self.line_end is None or self.line_end == self.line_start:
            return f"line:{self.line_start}"
        return f"line:{self.line_start}-{self.line_end}"

    def __str__(self) -> str:
        parts = [part for part in (self.location, self.severity.value, self.message) if part]
        return " ".join(parts)


def sort_diagnostics(diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
    """Order diagnostics by source position; positionless ones go last."""
    indexed = list(enumerate(diagnostics))
    indexed.sort(
        key=lambda item: (
            item[1].line_start is None,
            item[1].line_start or 0,
            item[0],
        )
    )
    return [diagnostic for _, diagnostic in indexed]


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Change:
    """Classification of one identity between the working file and the store."""

    kind: ChangeKind
    identity: Identity
    path: PurePosixPath
    record: Optional[Record] = None
    stale_paths: Tuple[PurePosixPath, ...] = ()


@dataclass(frozen=True)
class DiffStats:
    added: int = 0
    modified: int = 0
    deleted: int = 0

    @classmethod
    def from_changes(cls, changes: Iterable[Change]) -> "DiffStats":
        counts = {kind: 0 for kind in ChangeKind}
        for change in changes:
            counts[change.kind] += 1
        return cls(
            added=counts[ChangeKind.ADDED],
            modified=counts[ChangeKind.MODIFIED],
            deleted=counts[ChangeKind.DELETED],
        )

    @property
    def total(self) -> int:
        return self.added + self.modified + self.deleted

    def __str__(self) -> str:
        if not self.total:
            return "no changes"
        return f"{self.added} added, {self.modified} modified, {self.deleted} deleted"


__all__ = [
    "Change",
    "ChangeKind",
    "Diagnostic",
    "DiffStats",
    "Field",
    "Identity",
    "Record",
    "Severity",
    "sort_diagnostics",
]
