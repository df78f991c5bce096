"""Lossless reader and writer for Toolbox tagged-field dictionaries.

A dictionary is plain text made of ``\\tag value`` lines. Every line starting
with the record marker (``\\`` + record tag) opens a new record; all following
lines up to the next record marker belong to that record. Untagged lines are
continuations of the previous field and are kept inside its raw value, so
joining every field's text reproduces the source byte for byte.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from ..errors import MalformedInput
from ..models import Diagnostic, Field, Record, Severity

HEADER_PATTERN = re.compile(r"^\\_sh\s+v3\.0\s+[0-9]+\s+Dictionary\s*$")
_TAG_PATTERN = re.compile(r"\\\S*")
_BOM = "\ufeff"


@dataclass(frozen=True)
class DecodedDictionary:
    """Result of :func:`decode`."""

    preamble: str
    records: Tuple[Record, ...]
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def has_header(self) -> bool:
        lines = iter_lines(self.preamble.lstrip(_BOM))
        return any(HEADER_PATTERN.match(line.rstrip("\r\n")) for line in lines)

    def encode(self) -> str:
        return encode(self.preamble, self.records)


def iter_lines(text: str) -> Iterator[str]:
    """Yield lines with their terminators; only ``\\n`` ends a line."""
    start = 0
    length = len(text)
    while start < length:
        end = text.find("\n", start)
        end = length if end == -1 else end + 1
        yield text[start:end]
        start = end


def line_tag(line: str) -> Optional[str]:
    """Return the ``\\tag`` a line starts with, or ``None`` for untagged lines."""
    match = _TAG_PATTERN.match(line)
    return match.group(0) if match else None


def decode(text: str, record_tag: str, *, strict: bool = True) -> DecodedDictionary:
    """Split ``text`` into a preamble and records.

    Tagged fields other than ``\\_``-prefixed header markers may not appear
    before the first record. With ``strict`` they raise :class:`MalformedInput`;
    otherwise they are kept in the preamble and reported as diagnostics.
    """
    marker = "\\" + record_tag.lstrip("\\")
    preamble: List[str] = []
    records: List[Record] = []
    diagnostics: List[Diagnostic] = []
    stray_lines: List[int] = []

    fields: List[Tuple[str, List[str]]] = []
    record_start = 0
    untagged: List[int] = []

    def flush() -> None:
        if not fields:
            return
        record = Record(
            fields=tuple(Field(tag, "".join(parts)) for tag, parts in fields),
            line_start=record_start,
            index=len(records),
        )
        records.append(record)
        if untagged:
            diagnostics.append(
                Diagnostic(
                    code="untagged-line",
                    message=f"{len(untagged)} untagged line(s) continue a field of record '{record.label}'",
                    severity=Severity.WARNING,
                    line_start=untagged[0],
                    line_end=untagged[-1],
                )
            )

    bom = _BOM if text.startswith(_BOM) else ""
    for line_no, line in enumerate(iter_lines(text[len(bom):]), start=1):
        tag = line_tag(line)
        if tag == marker:
            flush()
            fields = [(tag, [line[len(tag):]])]
            record_start = line_no
            untagged = []
            continue
        if not fields:
            preamble.append(line)
            if tag is not None and not tag.startswith("\\_"):
                stray_lines.append(line_no)
            continue
        if tag is None:
            fields[-1][1].append(line)
            if line.strip():
                untagged.append(line_no)
        else:
            fields.append((tag, [line[len(tag):]]))
    flush()

    preamble_text = bom + "".join(preamble)
    if stray_lines:
        stray = Diagnostic(
            code="line-before-first-record",
            message=f"field line(s) appear before the first '{marker}' record",
            line_start=stray_lines[0],
            line_end=stray_lines[-1],
        )
        if strict:
            raise MalformedInput(f"{stray.location}: {stray.message}", [stray])
        diagnostics.append(stray)

    decoded = DecodedDictionary(preamble_text, tuple(records), ())
    if text and not decoded.has_header:
        diagnostics.append(
            Diagnostic(
                code="missing-dictionary-header",
                message="no '\\_sh v3.0 <n> Dictionary' header before the first record",
                severity=Severity.WARNING,
                line_start=1,
            )
        )
    diagnostics.sort(key=lambda item: item.line_start or 0)
    return DecodedDictionary(preamble_text, tuple(records), tuple(diagnostics))


def decode_record(text: str, record_tag: str) -> Record:
    """Parse a single entry file back into one record."""
    decoded = decode(text, record_tag, strict=True)
    if decoded.preamble or len(decoded.records) != 1:
        marker = "\\" + record_tag.lstrip("\\")
        raise MalformedInput(
            f"expected exactly one '{marker}' record, found {len(decoded.records)}"
        )
    return decoded.records[0]


def encode(preamble: str, records: Sequence[Record]) -> str:
    """Join the preamble and records in order.

    A chunk that does not end in a line break is terminated before the next
    record is appended, so reordered entries never fuse onto one line.
    """
    return join_chunks([preamble, *(record.text for record in records)])


def join_chunks(chunks: Sequence[str]) -> str:
    newline = "\r\n" if any("\r\n" in chunk for chunk in chunks) else "\n"
    parts: List[str] = []
    for chunk in chunks:
        if not chunk:
            continue
        # A preamble holding only a BOM is a prefix of the first record.
        if parts and parts[-1] != _BOM and not parts[-1].endswith("\n"):
            parts.append(newline)
        parts.append(chunk)
    return "".join(parts)


__all__ = [
    "DecodedDictionary",
    "HEADER_PATTERN",
    "decode",
    "decode_record",
    "encode",
    "iter_lines",
    "join_chunks",
    "line_tag",
]
