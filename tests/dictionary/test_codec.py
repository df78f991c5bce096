"""Tests for the Toolbox record codec."""

from __future__ import annotations

import textwrap

import pytest

from git_toolbox.dictionary.codec import decode, decode_record, encode
from git_toolbox.errors import MalformedInput
from git_toolbox.models import Field, Severity

LEXICON = textwrap.dedent(
    r"""
    \_sh v3.0  400  Dictionary
    \_DateStampHasFourDigitYear

    \lx kaa
    \id 15
    \ge fish

    \lx muu
    \id 18
    \ge tree
    \dt 12/Feb/2020

    \lx waa
    \id AWA7
    \ge water
    """
).lstrip("\n")


def test_decode_splits_preamble_and_records() -> None:
    decoded = decode(LEXICON, "lx")

    assert decoded.preamble == "\\_sh v3.0  400  Dictionary\n\\_DateStampHasFourDigitYear\n\n"
    assert [record.label for record in decoded.records] == ["kaa", "muu", "waa"]
    first = decoded.records[0]
    assert first.fields[0] == Field("\\lx", " kaa\n")
    assert first.fields[2] == Field("\\ge", " fish\n\n")
    assert first.text == "\\lx kaa\n\\id 15\n\\ge fish\n\n"
    assert decoded.has_header
    assert decoded.diagnostics == ()


def test_decode_tracks_record_line_spans() -> None:
    records = decode(LEXICON, "lx").records

    assert [(record.line_start, record.line_end) for record in records] == [(4, 7), (8, 12), (13, 15)]
    assert [record.index for record in records] == [0, 1, 2]


@pytest.mark.parametrize(
    "text",
    [
        LEXICON,
        LEXICON.replace("\n", "\r\n"),
        LEXICON.rstrip("\n"),
        "",
        "\\_sh v3.0  400  Dictionary\n",
        "\ufeff" + LEXICON,
        "\ufeff\\lx a\n\\ge x\n",
        "\\lx a   \n\\ge  trailing spaces  \n\n\n\\lx b\n\tindented continuation\n",
    ],
)
def test_round_trip_is_byte_exact(text: str) -> None:
    decoded = decode(text, "lx")

    assert encode(decoded.preamble, decoded.records) == text
    assert decoded.encode() == text


def test_record_marker_accepts_leading_backslash() -> None:
    assert len(decode(LEXICON, "\\lx").records) == 3


def test_only_exact_record_tag_starts_a_record() -> None:
    decoded = decode("\\lx a\n\\lxx not a record\n\\lx b\n", "lx")

    assert len(decoded.records) == 2
    assert decoded.records[0].fields[1].tag == "\\lxx"


def test_untagged_lines_continue_previous_field() -> None:
    decoded = decode("\\_sh v3.0 1 Dictionary\n\\lx a\n\\ge long\ncontinued here\n", "lx")

    record = decoded.records[0]
    assert record.fields[1].value == " long\ncontinued here\n"
    codes = [(diagnostic.code, diagnostic.severity, diagnostic.line_start) for diagnostic in decoded.diagnostics]
    assert codes == [("untagged-line", Severity.WARNING, 4)]


def test_field_before_first_record_is_rejected_when_strict() -> None:
    with pytest.raises(MalformedInput) as excinfo:
        decode("\\ge stray\n\\lx a\n", "lx")

    assert excinfo.value.diagnostics[0].code == "line-before-first-record"
    assert excinfo.value.diagnostics[0].line_start == 1


def test_field_before_first_record_is_kept_in_preamble_when_lenient() -> None:
    text = "\\_sh v3.0 1 Dictionary\n\\ge stray\n\\nt other\n\\lx a\n"
    decoded = decode(text, "lx", strict=False)

    assert decoded.preamble == "\\_sh v3.0 1 Dictionary\n\\ge stray\n\\nt other\n"
    stray = [d for d in decoded.diagnostics if d.code == "line-before-first-record"]
    assert len(stray) == 1
    assert stray[0].location == "line:2-3"
    assert stray[0].is_error
    assert decoded.encode() == text


def test_missing_header_is_a_warning() -> None:
    decoded = decode("\\lx a\n", "lx")

    assert not decoded.has_header
    assert [d.code for d in decoded.diagnostics] == ["missing-dictionary-header"]
    assert not decoded.diagnostics[0].is_error


def test_encode_terminates_records_moved_away_from_the_end() -> None:
    first, last = decode("\\lx a\n\\lx b", "lx").records

    assert encode("", [last, first]) == "\\lx b\n\\lx a\n"


def test_encode_keeps_crlf_when_terminating_records() -> None:
    first, last = decode("\\lx a\r\n\\ge x\r\n\\lx b", "lx").records

    assert encode("", [last, first]) == "\\lx b\r\n\\lx a\r\n\\ge x\r\n"


def test_decode_record_accepts_a_single_entry() -> None:
    record = decode_record("\\lx a\n\\ge x\n", "lx")

    assert record.label == "a"
    assert record.text == "\\lx a\n\\ge x\n"


@pytest.mark.parametrize("text", ["", "\\lx a\n\\lx b\n", "note\n\\lx a\n"])
def test_decode_record_rejects_anything_else(text: str) -> None:
    with pytest.raises(MalformedInput):
        decode_record(text, "lx")
