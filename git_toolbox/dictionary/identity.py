"""Derive canonical identities for dictionary records."""

from __future__ import annotations

import re
import unicodedata
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import DictionarySpec
from ..errors import (
    IdentityError,
    IdentityPatternIncomplete,
    IdentityPatternMismatch,
    MissingIdentityField,
    MissingRecordLabel,
)
from ..models import Diagnostic, Identity, Record

_LABEL_SEPARATORS = re.compile(r"[\W_]+")
_UNSAFE_NAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def sanitize_label(label: str) -> str:
    """Reduce a record label to a lowercase, filesystem-safe word.

    Accents are folded (``Café`` -> ``cafe``); runs of anything that is not a
    letter or digit collapse into one ``_``.
    """
    decomposed = unicodedata.normalize("NFKD", label)
    folded = "".join(char for char in decomposed if unicodedata.category(char) != "Mn")
    folded = unicodedata.normalize("NFC", folded).lower()
    return _LABEL_SEPARATORS.sub("_", folded).strip("_")


class IdentityResolver:
    """Resolves one record at a time against a :class:`DictionarySpec`."""

    def __init__(self, spec: DictionarySpec) -> None:
        self.spec = spec

    def resolve(self, record: Record) -> Identity:
        if self.spec.unique_id:
            return self._resolve_unique(record)
        return self._resolve_label(record)

    def _resolve_unique(self, record: Record) -> Identity:
        marker = self.spec.id_marker
        pattern = self.spec.pattern
        if marker is None or pattern is None:
            raise IdentityPatternIncomplete(
                f"dictionary '{self.spec.name}' has no id-tag or id-pattern"
            )

        candidates = record.fields_with_tag(marker)
        if not candidates:
            raise MissingIdentityField(f"record '{record.label}' has no {marker} field")
        if len(candidates) > 1:
            raise MissingIdentityField(
                f"record '{record.label}' has {len(candidates)} {marker} fields; expected one"
            )

        value = candidates[0].stripped
        match = pattern.fullmatch(value)
        if match is None:
            raise IdentityPatternMismatch(
                f"{marker} value '{value}' does not match id-pattern '{pattern.pattern}'"
            )
        if "id" not in pattern.groupindex:
            raise IdentityPatternIncomplete(
                f"id-pattern '{pattern.pattern}' has no named group 'id'"
            )
        ident = (match.group("id") or "").strip()
        if not ident:
            raise IdentityPatternIncomplete(
                f"{marker} value '{value}' matched id-pattern without capturing an id"
            )
        namespace = ""
        if "namespace" in pattern.groupindex:
            namespace = (match.group("namespace") or "").strip()

        identity = Identity(id=ident, namespace=namespace)
        if _UNSAFE_NAME.search(identity.key) or identity.key in {".", ".."}:
            raise IdentityPatternMismatch(
                f"{marker} value '{value}' does not yield a usable file name"
            )
        return identity

    def _resolve_label(self, record: Record) -> Identity:
        base = sanitize_label(record.label)
        if not base:
            raise MissingRecordLabel(
                f"record at line {record.line_start} has no usable {self.spec.record_marker} label"
            )
        return Identity(id=base)


def resolve(record: Record, spec: DictionarySpec) -> Identity:
    """Resolve ``record`` without label disambiguation."""
    return IdentityResolver(spec).resolve(record)


@dataclass
class ResolvedRecords:
    """Identities for a whole dictionary, in record order."""

    entries: List[Tuple[Record, Identity]] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    duplicates: Dict[str, List[Record]] = field(default_factory=dict)

    @property
    def order(self) -> List[str]:
        return [identity.key for _, identity in self.entries]


def assign_identities(
    records: Sequence[Record],
    spec: DictionarySpec,
    *,
    executor: Optional[Executor] = None,
) -> ResolvedRecords:
    """Resolve every record, disambiguate labels and flag duplicate ids.

    Per-record resolution may fan out over ``executor``; the results are
    consumed in record order so the outcome never depends on scheduling.
    """
    resolver = IdentityResolver(spec)

    def attempt(record: Record) -> Tuple[Optional[Identity], Optional[Diagnostic]]:
        try:
            return resolver.resolve(record), None
        except IdentityError as exc:
            return None, Diagnostic(
                code=exc.code,
                message=str(exc),
                line_start=record.line_start,
                line_end=record.line_end,
            )

    outcomes = list(executor.map(attempt, records)) if executor else [attempt(r) for r in records]

    result = ResolvedRecords()
    seen_labels: Dict[str, int] = {}
    by_key: Dict[str, List[Record]] = {}
    for record, (identity, diagnostic) in zip(records, outcomes):
        if identity is None:
            if diagnostic is not None:
                result.diagnostics.append(diagnostic)
            continue
        if identity.is_label:
            identity = _disambiguate(identity, seen_labels)
        by_key.setdefault(identity.key, []).append(record)
        if len(by_key[identity.key]) == 1:
            result.entries.append((record, identity))

    for key, occurrences in by_key.items():
        if len(occurrences) < 2:
            continue
        result.duplicates[key] = occurrences
        lines = ", ".join(f"line:{record.line_start}" for record in occurrences)
        for record in occurrences:
            result.diagnostics.append(
                Diagnostic(
                    code="duplicate-identity",
                    message=f"identity '{key}' is used by {len(occurrences)} records ({lines})",
                    line_start=record.line_start,
                    line_end=record.line_end,
                    identity=key,
                )
            )
    result.diagnostics.sort(key=lambda item: item.line_start or 0)
    return result


def _disambiguate(identity: Identity, seen: Dict[str, int]) -> Identity:
    count = seen.get(identity.id, 0) + 1
    seen[identity.id] = count
    if count == 1:
        return identity
    return Identity(id=f"{identity.id}-{count}")


__all__ = [
    "IdentityResolver",
    "ResolvedRecords",
    "assign_identities",
    "resolve",
    "sanitize_label",
]
