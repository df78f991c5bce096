"""Thin wrapper around the git command line used by the synchronizer."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..errors import GitError
from ..logging import get_logger

logger = get_logger("git")


@dataclass(frozen=True)
class StatusEntry:
    """One line of ``git status --porcelain`` output."""

    path: str
    index: str
    worktree: str

    @property
    def untracked(self) -> bool:
        return self.index == "?"

    @property
    def staged(self) -> bool:
        return self.index not in {" ", "?", "!"}

    @property
    def changed_in_worktree(self) -> bool:
        return self.worktree not in {" ", "!"}


class GitRepository:
    """Reads the index and revisions and updates the index for given paths."""

    def __init__(self, root: Path, runner: Callable[..., str] | None = None) -> None:
        self.root = root
        self._runner = runner or self._default_runner

    @classmethod
    def discover(cls, path: Path, runner: Callable[..., str] | None = None) -> "GitRepository":
        """Locate the repository enclosing ``path``."""
        probe = cls(path, runner)
        output = probe._run(["git", "rev-parse", "--show-toplevel"], capture_output=True)
        toplevel = output.strip()
        if not toplevel:
            raise GitError(f"{path} is not inside a git repository")
        return cls(Path(toplevel), runner)

    def has_revision(self, rev: str) -> bool:
        try:
            output = self._run(
                ["git", "rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"],
                capture_output=True,
            )
        except GitError:
            return False
        return bool(output.strip())

    # ------------------------------------------------------------------
    # Reading

    def list_files(self, prefix: str, rev: Optional[str] = None) -> Dict[str, str]:
        """Return ``path -> blob id`` for files under ``prefix`` in the index or ``rev``."""
        pathspec = _directory_pathspec(prefix)
        files: Dict[str, str] = {}
        if rev is None:
            output = self._run(
                ["git", "--literal-pathspecs", "ls-files", "-s", "-z", "--", pathspec],
                capture_output=True,
            )
            for item in _split_nul(output):
                meta, _, path = item.partition("\t")
                _mode, blob, stage = meta.split()
                if stage == "0":
                    files[path] = blob
        else:
            output = self._run(
                ["git", "ls-tree", "-r", "-z", "--full-tree", rev, "--", pathspec.rstrip("/")],
                capture_output=True,
            )
            for item in _split_nul(output):
                meta, _, path = item.partition("\t")
                _mode, kind, blob = meta.split()
                if kind == "blob":
                    files[path] = blob
        return files

    def read_blobs(self, blob_ids: Iterable[str]) -> Dict[str, str]:
        """Fetch blob contents in one ``git cat-file --batch`` round trip."""
        wanted = sorted(set(blob_ids))
        if not wanted:
            return {}
        output = self._run(
            ["git", "cat-file", "--batch"],
            capture_output=True,
            input="".join(f"{blob}\n" for blob in wanted),
        )
        data = output.encode("utf-8")
        contents: Dict[str, str] = {}
        position = 0
        for blob in wanted:
            header_end = data.index(b"\n", position)
            header = data[position:header_end].decode("ascii").split()
            if len(header) < 3 or header[1] != "blob":
                raise GitError(f"git cat-file could not read {blob}: {' '.join(header)}")
            size = int(header[2])
            start = header_end + 1
            contents[header[0]] = data[start : start + size].decode("utf-8")
            position = start + size + 1
        return contents

    def read_snapshot(self, prefix: str, rev: Optional[str] = None) -> Dict[str, str]:
        """Return ``path relative to prefix -> text`` for the index or a revision."""
        listed = self.list_files(prefix, rev)
        blobs = self.read_blobs(listed.values())
        base = prefix.rstrip("/") + "/"
        snapshot: Dict[str, str] = {}
        for path, blob in listed.items():
            if path.startswith(base):
                snapshot[path[len(base):]] = blobs[blob]
        return snapshot

    def status(self, prefix: str) -> List[StatusEntry]:
        output = self._run(
            [
                "git",
                "--literal-pathspecs",
                "status",
                "--porcelain=v1",
                "-z",
                "--untracked-files=all",
                "--",
                _directory_pathspec(prefix),
            ],
            capture_output=True,
        )
        entries: List[StatusEntry] = []
        tokens = _split_nul(output)
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if len(token) < 4:
                continue
            code_x, code_y, path = token[0], token[1], token[3:]
            if code_x in {"R", "C"}:
                # The source path of a rename or copy follows as its own token.
                index += 1
            entries.append(StatusEntry(path=path, index=code_x, worktree=code_y))
        return entries

    # ------------------------------------------------------------------
    # Index updates

    def add(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        logger.debug("git add %d path(s)", len(paths))
        self._run(
            ["git", "--literal-pathspecs", "add", "--pathspec-from-file=-", "--pathspec-file-nul"],
            input="\0".join(paths),
        )

    def remove_cached(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        logger.debug("git rm --cached %d path(s)", len(paths))
        self._run(
            [
                "git",
                "--literal-pathspecs",
                "rm",
                "--cached",
                "--quiet",
                "--ignore-unmatch",
                "--pathspec-from-file=-",
                "--pathspec-file-nul",
            ],
            input="\0".join(paths),
        )

    def unstage(self, prefix: str, rev: str = "HEAD") -> None:
        self._run(["git", "--literal-pathspecs", "reset", "-q", rev, "--", _directory_pathspec(prefix)])

    # ------------------------------------------------------------------
    # Helpers

    def _run(
        self,
        args: Sequence[str],
        *,
        capture_output: bool = False,
        input: str | None = None,
    ) -> str:
        try:
            return self._runner(args, cwd=self.root, capture_output=capture_output, input=input)
        except subprocess.CalledProcessError as exc:
            detail = _decode(exc.stderr).strip() or f"exit status {exc.returncode}"
            raise GitError(f"`{' '.join(args)}` failed: {detail}") from exc
        except FileNotFoundError as exc:
            raise GitError(f"git executable not found: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise GitError(f"`{' '.join(args)}` produced non UTF-8 output: {exc}") from exc

    @staticmethod
    def _default_runner(
        args: Sequence[str],
        *,
        cwd: Path,
        capture_output: bool = False,
        input: str | None = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            capture_output=capture_output,
            input=input.encode("utf-8") if input is not None else None,
        )
        if capture_output:
            return completed.stdout.decode("utf-8")
        return ""


def _directory_pathspec(prefix: str) -> str:
    return PurePosixPath(prefix).as_posix().rstrip("/") + "/"


def _split_nul(output: str) -> List[str]:
    return [item for item in output.split("\0") if item]


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value if isinstance(value, str) else ""


__all__ = ["GitRepository", "StatusEntry"]
