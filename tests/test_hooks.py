"""Tests for the git hook callbacks."""

from __future__ import annotations

import shutil

import pytest

from git_toolbox.config import DictionarySpec
from git_toolbox.errors import DivergenceError, StoreError
from git_toolbox.hooks import BACKUP_SUFFIX, Hooks
from tests._fixtures.dictionary_repo import DictionaryRepo

LEXICON = "\\_sh v3.0  400  Dictionary\n\\lx kaa\n\\id 15\n\\lx baa\n\\id 18\n"


def test_checkout_recomposes_working_file_and_keeps_backup(
    toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec
) -> None:
    path = toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)
    toolbox_repo.synchronizer.stage(lexicon_spec)
    toolbox_repo.write_dictionary(lexicon_spec, "\\_sh v3.0  400  Dictionary\n\\lx local\n\\id 99\n", dedent=False)

    results = Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_checkout_or_merge()

    assert [result.order for result in results] == [["15", "18"]]
    assert toolbox_repo.read_dictionary(lexicon_spec) == LEXICON
    backup = path.with_name(path.name + BACKUP_SUFFIX)
    assert "\\lx local" in backup.read_text(encoding="utf-8")


def test_checkout_creates_missing_working_file(toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec) -> None:
    path = toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)
    toolbox_repo.synchronizer.stage(lexicon_spec)
    path.unlink()

    Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_checkout_or_merge()

    assert toolbox_repo.read_dictionary(lexicon_spec) == LEXICON
    assert not path.with_name(path.name + BACKUP_SUFFIX).exists()


def test_checkout_without_decomposed_tree_is_a_no_op(
    toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec
) -> None:
    toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)

    assert Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_checkout_or_merge() == []
    assert toolbox_repo.read_dictionary(lexicon_spec) == LEXICON


def test_checkout_removes_deleted_tree_contents(toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec) -> None:
    toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)
    toolbox_repo.synchronizer.stage(lexicon_spec)
    shutil.rmtree(lexicon_spec.contents_root(toolbox_repo.root) / "public" / "01" / "8_")

    Hooks(toolbox_repo.synchronizer, [lexicon_spec], backup=False).on_checkout_or_merge()

    assert "\\id 18" not in toolbox_repo.read_dictionary(lexicon_spec)
    assert not lexicon_spec.working_file(toolbox_repo.root).with_name("Lexicon.txt" + BACKUP_SUFFIX).exists()


def test_pre_commit_passes_when_staged(toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec) -> None:
    toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)
    toolbox_repo.synchronizer.stage(lexicon_spec)

    checks = Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_pre_commit()

    assert [check.consistent for check in checks] == [True]


def test_pre_commit_fails_on_unstaged_edits(toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec) -> None:
    toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)
    toolbox_repo.synchronizer.stage(lexicon_spec)
    toolbox_repo.write_dictionary(lexicon_spec, LEXICON.replace("kaa", "kɔɔ"), dedent=False)

    with pytest.raises(DivergenceError, match="entries 15") as excinfo:
        Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_pre_commit()

    assert "git-toolbox stage" in str(excinfo.value)


def test_pre_commit_skips_dictionaries_without_working_file(
    toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec
) -> None:
    assert Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_pre_commit() == []


def test_failed_backup_raises_store_error_and_keeps_working_file(
    toolbox_repo: DictionaryRepo, lexicon_spec: DictionarySpec, monkeypatch: pytest.MonkeyPatch
) -> None:
    toolbox_repo.write_dictionary(lexicon_spec, LEXICON, dedent=False)
    toolbox_repo.synchronizer.stage(lexicon_spec)
    local = "\\_sh v3.0  400  Dictionary\n\\lx local\n\\id 99\n"
    toolbox_repo.write_dictionary(lexicon_spec, local, dedent=False)

    def read_only_copy(source, target):  # type: ignore[no-untyped-def]
        raise PermissionError("read-only file system")

    monkeypatch.setattr(shutil, "copy2", read_only_copy)

    with pytest.raises(StoreError, match="Cannot back up dictionaries/Lexicon.txt"):
        Hooks(toolbox_repo.synchronizer, [lexicon_spec]).on_checkout_or_merge()
    assert toolbox_repo.read_dictionary(lexicon_spec) == local
