"""One-file-per-record store kept beside each managed dictionary."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..config import DictionarySpec
from ..dictionary.codec import decode_record
from ..dictionary.shard import identity_from_path, path_sort_key
from ..errors import StoreError
from ..logging import get_logger
from ..models import Identity, Record

MANIFEST_NAME = "manifest.json"
PREAMBLE_NAME = "preamble.txt"
_MANIFEST_VERSION = 1

logger = get_logger("store")


@dataclass(frozen=True)
class StoreEntry:
    path: PurePosixPath
    identity: Identity


@dataclass
class Manifest:
    """Persisted emission order of a dictionary's identities."""

    order: List[str] = field(default_factory=list)
    exists: bool = False
    valid: bool = True


def parse_manifest(text: Optional[str]) -> Manifest:
    if text is None:
        return Manifest()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return Manifest(exists=True, valid=False)
    if not isinstance(data, dict) or data.get("version") != _MANIFEST_VERSION:
        return Manifest(exists=True, valid=False)
    order = data.get("order")
    if not isinstance(order, list) or not all(isinstance(item, str) for item in order):
        return Manifest(exists=True, valid=False)
    return Manifest(order=list(order), exists=True)


def is_managed_path(name: str, spec: DictionarySpec) -> bool:
    """True for entry files, the manifest and the preamble of ``spec``."""
    if name in {MANIFEST_NAME, PREAMBLE_NAME}:
        return True
    return identity_from_path(PurePosixPath(name), spec) is not None


def render_manifest(order: Iterable[str]) -> str:
    payload = {"version": _MANIFEST_VERSION, "order": list(order)}
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


@dataclass
class StoreSnapshot:
    """Decomposed tree contents, taken from the working tree or a git revision."""

    entries: Dict[PurePosixPath, str] = field(default_factory=dict)
    identities: Dict[PurePosixPath, Identity] = field(default_factory=dict)
    manifest: Manifest = field(default_factory=Manifest)
    preamble: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.entries and not self.manifest.exists and not self.preamble

    def paths_by_key(self) -> Dict[str, List[PurePosixPath]]:
        grouped: Dict[str, List[PurePosixPath]] = {}
        for path in sorted(self.identities, key=path_sort_key):
            grouped.setdefault(self.identities[path].key, []).append(path)
        return grouped

    @classmethod
    def from_files(cls, files: Mapping[str, str], spec: DictionarySpec) -> "StoreSnapshot":
        """Build a snapshot from ``relative posix path -> text`` pairs."""
        snapshot = cls()
        manifest_text: Optional[str] = None
        for name, text in files.items():
            path = PurePosixPath(name)
            if name == MANIFEST_NAME:
                manifest_text = text
                continue
            if name == PREAMBLE_NAME:
                snapshot.preamble = text
                continue
            identity = identity_from_path(path, spec)
            if identity is None:
                logger.debug("Ignoring unmanaged file %s in %s", name, spec.contents_path)
                continue
            snapshot.entries[path] = text
            snapshot.identities[path] = identity
        snapshot.manifest = parse_manifest(manifest_text)
        return snapshot


class DecomposedStore:
    """Reads and writes entry files under ``<dictionary>.contents/``."""

    def __init__(self, root: Path, spec: DictionarySpec) -> None:
        self.root = root
        self.spec = spec

    @classmethod
    def for_dictionary(cls, repo_root: Path, spec: DictionarySpec) -> "DecomposedStore":
        return cls(spec.contents_root(repo_root), spec)

    def exists(self) -> bool:
        return self.root.is_dir()

    # ------------------------------------------------------------------
    # Entries

    def write(self, path: PurePosixPath, record: Union[Record, str]) -> None:
        text = record.text if isinstance(record, Record) else record
        self._write_bytes(path, text.encode("utf-8"))
        logger.debug("Wrote %s", self._display(path))

    def read(self, path: PurePosixPath) -> Record:
        return decode_record(self.read_text(path), self.spec.record_tag)

    def read_text(self, path: PurePosixPath) -> str:
        try:
            return (self.root / path).read_bytes().decode("utf-8")
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreError(f"Cannot read {self._display(path)}: {exc}") from exc

    def remove(self, path: PurePosixPath) -> bool:
        """Delete an entry file and prune directories left empty."""
        target = self.root / path
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreError(f"Cannot remove {self._display(path)}: {exc}") from exc
        self._prune(target.parent)
        logger.debug("Removed %s", self._display(path))
        return True

    def list(self) -> List[StoreEntry]:
        if not self.exists():
            return []
        entries: List[StoreEntry] = []
        for file_path in self.root.rglob("*" + self.spec.layout.extension):
            if not file_path.is_file():
                continue
            relative = PurePosixPath(file_path.relative_to(self.root).as_posix())
            identity = identity_from_path(relative, self.spec)
            if identity is not None:
                entries.append(StoreEntry(relative, identity))
        entries.sort(key=lambda entry: path_sort_key(entry.path))
        return entries

    # ------------------------------------------------------------------
    # Manifest and preamble

    def read_manifest(self) -> Manifest:
        return parse_manifest(self._read_optional(MANIFEST_NAME))

    def write_manifest(self, order: Iterable[str]) -> None:
        self._write_bytes(PurePosixPath(MANIFEST_NAME), render_manifest(order).encode("utf-8"))

    def read_preamble(self) -> str:
        return self._read_optional(PREAMBLE_NAME) or ""

    def write_preamble(self, text: str) -> None:
        if text:
            self._write_bytes(PurePosixPath(PREAMBLE_NAME), text.encode("utf-8"))
        else:
            self.remove(PurePosixPath(PREAMBLE_NAME))

    def managed_files(self) -> Dict[str, str]:
        """Raw text of every entry file plus the manifest and preamble."""
        files: Dict[str, str] = {}
        for entry in self.list():
            files[entry.path.as_posix()] = self.read_text(entry.path)
        for name in (MANIFEST_NAME, PREAMBLE_NAME):
            text = self._read_optional(name)
            if text is not None:
                files[name] = text
        return files

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot.from_files(self.managed_files(), self.spec)

    def apply(
        self,
        writes: Mapping[PurePosixPath, str],
        removes: Iterable[PurePosixPath] = (),
    ) -> None:
        """Apply a batch of writes and removals.

        Every new file is first written to a temporary sibling. Only when all of
        them exist are they renamed into place, so a failure while preparing the
        batch leaves every existing file untouched.
        """
        prepared: List[Tuple[Path, str]] = []
        try:
            for path, text in writes.items():
                target = self.root / path
                prepared.append((target, _write_temp(target, text.encode("utf-8"))))
        except OSError as exc:
            _discard([tmp for _, tmp in prepared])
            raise StoreError(f"Cannot prepare writes in {self.spec.contents_path}: {exc}") from exc

        for position, (target, tmp_path) in enumerate(prepared):
            try:
                os.replace(tmp_path, str(target))
            except OSError as exc:
                _discard([tmp for _, tmp in prepared[position:]])
                raise StoreError(f"Cannot replace {target}: {exc}") from exc
        for path in writes:
            logger.debug("Wrote %s", self._display(path))
        for path in removes:
            self.remove(path)

    # ------------------------------------------------------------------
    # Internal helpers

    def _read_optional(self, name: str) -> Optional[str]:
        try:
            return self.read_text(PurePosixPath(name))
        except FileNotFoundError:
            return None

    def _write_bytes(self, path: PurePosixPath, data: bytes) -> None:
        target = self.root / path
        try:
            _atomic_write_bytes(target, data)
        except OSError as exc:
            raise StoreError(f"Cannot write {self._display(path)}: {exc}") from exc

    def _prune(self, directory: Path) -> None:
        root = self.root.resolve()
        current = directory
        while current.resolve() != root and root in current.resolve().parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent

    def _display(self, path: PurePosixPath) -> str:
        return f"{self.spec.contents_path}/{path.as_posix()}"


def _write_temp(path: Path, data: bytes) -> str:
    """Write ``data`` to a temporary file beside ``path`` and return its name."""
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = path.stat().st_mode & 0o777 if path.exists() else 0o644
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
    except BaseException:
        _discard([tmp_path])
        raise
    return tmp_path


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    tmp_path = _write_temp(path, data)
    try:
        os.replace(tmp_path, str(path))
    except BaseException:
        _discard([tmp_path])
        raise


def _discard(paths: Iterable[str]) -> None:
    for tmp_path in paths:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass


def write_file_atomic(path: Path, text: str) -> None:
    """Atomically replace a working dictionary file."""
    _atomic_write_bytes(path, text.encode("utf-8"))


__all__ = [
    "DecomposedStore",
    "MANIFEST_NAME",
    "Manifest",
    "PREAMBLE_NAME",
    "StoreEntry",
    "StoreSnapshot",
    "is_managed_path",
    "parse_manifest",
    "render_manifest",
    "write_file_atomic",
]
