"""Tests for the status report."""

from __future__ import annotations

from git_toolbox.config import DictionarySpec
from git_toolbox.report import MAX_TO_SHOW, render_status
from tests._fixtures.dictionary_repo import DictionaryRepo


def test_status_report_lists_changes_and_issues(toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec) -> None:
    toolbox_repo.write_dictionary(
        lexicon_spec,
        "\\lx kaa\n\\id 15\n\\lx nope\n\\ge no id\n",
        dedent=False,
    )
    status = toolbox_repo.synchronizer.status(lexicon_spec)

    report = render_status([status])

    assert report.startswith("Lexicon (dictionaries/Lexicon.txt): 1 added, 0 modified, 0 deleted\n")
    assert "Issues in dictionaries/Lexicon.txt:" in report
    assert "line:1 warning no '\\_sh v3.0 <n> Dictionary' header" in report
    assert "line:3-4 error" in report
    assert "added:     15 (public/01/5_/15.txt)" in report
    assert "record order or preamble changed" in report


def test_status_report_truncates_unless_verbose(toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec) -> None:
    records = "".join(f"\\lx w{n}\n\\id {n}\n" for n in range(1, MAX_TO_SHOW + 4))
    toolbox_repo.write_dictionary(lexicon_spec, "\\_sh v3.0 1 Dictionary\n" + records, dedent=False)
    status = toolbox_repo.synchronizer.status(lexicon_spec)

    short = render_status([status])
    full = render_status([status], verbose=True)

    assert "(3 other changes" in short
    assert short.count("added:") == MAX_TO_SHOW
    assert full.count("added:") == MAX_TO_SHOW + 3
    assert "other changes" not in full


def test_status_report_flags_missing_working_file(toolbox_repo: DictionaryRepo, label_spec: DictionarySpec) -> None:
    status = toolbox_repo.synchronizer.status(label_spec)

    report = render_status([status])

    assert "The working dictionary is missing" in report
    assert "record order" not in report
