"""Tests for identity resolution and label disambiguation."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from git_toolbox.config import DictionarySpec
from git_toolbox.dictionary.codec import decode
from git_toolbox.dictionary.identity import assign_identities, resolve, sanitize_label
from git_toolbox.errors import (
    IdentityPatternIncomplete,
    IdentityPatternMismatch,
    MissingIdentityField,
    MissingRecordLabel,
)
from git_toolbox.models import Identity


def _record(text: str, tag: str = "lx"):  # type: ignore[no-untyped-def]
    return decode(text, tag).records[0]


def test_resolve_public_and_private_ids(lexicon_spec: DictionarySpec) -> None:
    public = resolve(_record("\\lx kaa\n\\id  15 \n"), lexicon_spec)
    private = resolve(_record("\\lx waa\n\\id AWA7\n"), lexicon_spec)

    assert public == Identity(id="15", namespace="")
    assert public.key == "15"
    assert not public.is_private
    assert private == Identity(id="7", namespace="AWA")
    assert private.key == "AWA7"
    assert private.is_private


def test_missing_id_field(lexicon_spec: DictionarySpec) -> None:
    with pytest.raises(MissingIdentityField):
        resolve(_record("\\lx kaa\n\\ge fish\n"), lexicon_spec)


def test_more_than_one_id_field(lexicon_spec: DictionarySpec) -> None:
    with pytest.raises(MissingIdentityField, match="2"):
        resolve(_record("\\lx kaa\n\\id 15\n\\id 16\n"), lexicon_spec)


def test_pattern_must_match_whole_value(lexicon_spec: DictionarySpec) -> None:
    with pytest.raises(IdentityPatternMismatch):
        resolve(_record("\\lx kaa\n\\id 15b\n"), lexicon_spec)


def test_pattern_without_id_group_is_incomplete() -> None:
    spec = DictionarySpec(
        name="Broken",
        path="Broken.txt",
        record_tag="lx",
        unique_id=True,
        id_tag="id",
        id_pattern=r"(?P<namespace>[A-Z]+)[0-9]+",
    )
    with pytest.raises(IdentityPatternIncomplete):
        resolve(_record("\\lx kaa\n\\id AB12\n"), spec)


def test_pattern_with_empty_id_capture_is_incomplete() -> None:
    spec = DictionarySpec(
        name="Optional",
        path="Optional.txt",
        record_tag="lx",
        unique_id=True,
        id_tag="id",
        id_pattern=r"(?P<namespace>[A-Z]*)(?P<id>[0-9]*)",
    )
    with pytest.raises(IdentityPatternIncomplete):
        resolve(_record("\\lx kaa\n\\id AB\n"), spec)


def test_identity_must_be_usable_as_file_name() -> None:
    spec = DictionarySpec(
        name="Loose",
        path="Loose.txt",
        record_tag="lx",
        unique_id=True,
        id_tag="id",
        id_pattern=r"(?P<id>.+)",
    )
    with pytest.raises(IdentityPatternMismatch):
        resolve(_record("\\lx kaa\n\\id a/b\n"), spec)


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("kaa", "kaa"),
        ("Café au lait", "cafe_au_lait"),
        ("  -- odd!! label -- ", "odd_label"),
        ("ŋgaa", "ŋgaa"),
        ("x--y__z", "x_y_z"),
        ("???", ""),
    ],
)
def test_sanitize_label(label: str, expected: str) -> None:
    assert sanitize_label(label) == expected


def test_label_dictionary_uses_sanitized_label(label_spec: DictionarySpec) -> None:
    assert resolve(_record("\\lx Big Fish\n"), label_spec) == Identity(id="big_fish")


def test_label_dictionary_rejects_empty_label(label_spec: DictionarySpec) -> None:
    with pytest.raises(MissingRecordLabel):
        resolve(_record("\\lx ***\n\\ge x\n"), label_spec)


def test_labels_are_disambiguated_in_first_seen_order(label_spec: DictionarySpec) -> None:
    records = decode("\\lx Fish\n\\lx tree\n\\lx fish!\n\\lx FISH\n", "lx").records

    resolved = assign_identities(records, label_spec)

    assert resolved.order == ["fish", "tree", "fish-2", "fish-3"]
    assert resolved.diagnostics == []
    assert resolved.duplicates == {}


def test_duplicate_ids_are_reported_for_every_occurrence(lexicon_spec: DictionarySpec) -> None:
    text = "\\lx a\n\\id 15\n\\lx b\n\\id 18\n\\lx c\n\\id 15\n"
    records = decode(text, "lx", strict=False).records

    resolved = assign_identities(records, lexicon_spec)

    assert resolved.order == ["15", "18"]
    assert list(resolved.duplicates) == ["15"]
    duplicates = [d for d in resolved.diagnostics if d.code == "duplicate-identity"]
    assert [d.line_start for d in duplicates] == [1, 5]
    assert all(d.identity == "15" for d in duplicates)


def test_resolution_errors_become_diagnostics(lexicon_spec: DictionarySpec) -> None:
    text = "\\lx a\n\\id 15\n\\lx b\n\\ge no id\n\\lx c\n\\id ?\n"
    records = decode(text, "lx", strict=False).records

    resolved = assign_identities(records, lexicon_spec)

    assert resolved.order == ["15"]
    assert [(d.code, d.location) for d in resolved.diagnostics] == [
        ("missing-identity-field", "line:3-4"),
        ("identity-pattern-mismatch", "line:5-6"),
    ]


def test_parallel_resolution_matches_serial(label_spec: DictionarySpec) -> None:
    text = "".join(f"\\lx word {index % 7}\n\\ge gloss {index}\n" for index in range(200))
    records = decode(text, "lx", strict=False).records

    serial = assign_identities(records, label_spec)
    with ThreadPoolExecutor(max_workers=4) as executor:
        parallel = assign_identities(records, label_spec, executor=executor)

    assert parallel.order == serial.order
    assert parallel.order[:8] == [
        "word_0",
        "word_1",
        "word_2",
        "word_3",
        "word_4",
        "word_5",
        "word_6",
        "word_0-2",
    ]


def test_unique_spec_without_pattern_reports_incomplete_pattern(lexicon_spec: DictionarySpec) -> None:
    object.__setattr__(lexicon_spec, "id_pattern", None)

    resolved = assign_identities(decode("\\lx kaa\n\\id 15\n", "lx").records, lexicon_spec)

    assert resolved.entries == []
    assert [diagnostic.code for diagnostic in resolved.diagnostics] == ["identity-pattern-incomplete"]
