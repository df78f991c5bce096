"""Helpers for building throwaway repositories that hold Toolbox dictionaries."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Dict

from git_toolbox.config import DictionarySpec
from git_toolbox.synchronizer import Synchronizer

from .fake_git import FakeGit


class DictionaryRepo:
    """A working directory with a fake git index and a synchronizer bound to it."""

    def __init__(self, tmp_path: Path, *, workers: int = 2) -> None:
        self.root = tmp_path / "repo"
        self.root.mkdir()
        self.git = FakeGit(self.root)
        self.synchronizer = Synchronizer(self.root, self.git, workers=workers)  # type: ignore[arg-type]

    def write_dictionary(self, spec: DictionarySpec, content: str, *, dedent: bool = True) -> Path:
        """Write the working file for ``spec``; content is dedented unless told otherwise."""
        path = spec.working_file(self.root)
        path.parent.mkdir(parents=True, exist_ok=True)
        text = textwrap.dedent(content).lstrip("\n") if dedent else content
        path.write_bytes(text.encode("utf-8"))
        return path

    def read_dictionary(self, spec: DictionarySpec) -> str:
        return spec.working_file(self.root).read_bytes().decode("utf-8")

    def store_files(self, spec: DictionarySpec) -> Dict[str, str]:
        """Return ``relative path -> text`` for every file in the decomposed tree."""
        root = spec.contents_root(self.root)
        if not root.is_dir():
            return {}
        return {
            path.relative_to(root).as_posix(): path.read_bytes().decode("utf-8")
            for path in sorted(root.rglob("*"))
            if path.is_file()
        }


__all__ = ["DictionaryRepo"]
