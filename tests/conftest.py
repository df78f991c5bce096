from __future__ import annotations

from pathlib import Path

import pytest

from git_toolbox.config import DictionarySpec
from tests._fixtures.dictionary_repo import DictionaryRepo

ID_PATTERN = r"(?P<namespace>[a-zA-Z]*)(?P<id>[0-9]+)"


@pytest.fixture
def toolbox_repo(tmp_path: Path) -> DictionaryRepo:
    """Provide a repository with a fake git index rooted at the pytest tmp_path."""
    return DictionaryRepo(tmp_path)


@pytest.fixture
def lexicon_spec() -> DictionarySpec:
    return DictionarySpec(
        name="Lexicon",
        path="dictionaries/Lexicon.txt",
        record_tag="lx",
        unique_id=True,
        id_tag="id",
        id_pattern=ID_PATTERN,
    )


@pytest.fixture
def label_spec() -> DictionarySpec:
    return DictionarySpec(name="Glosses", path="Glosses.txt", record_tag="lx")
