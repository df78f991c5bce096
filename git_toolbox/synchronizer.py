"""Keep working dictionaries, their decomposed trees and the git index in step."""

from __future__ import annotations

import hashlib
import os
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .config import DictionarySpec
from .dictionary.codec import DecodedDictionary, decode, join_chunks
from .dictionary.identity import ResolvedRecords, assign_identities
from .dictionary.shard import path_sort_key, shard_path
from .errors import (
    BaselineMissing,
    DuplicateIdentity,
    ExternalChangesPending,
    MalformedInput,
    StageRefused,
    StoreError,
)
from .git.repository import GitRepository, StatusEntry
from .logging import get_logger
from .models import (
    Change,
    ChangeKind,
    Diagnostic,
    DiffStats,
    Identity,
    Record,
    Severity,
    sort_diagnostics,
)
from .stores.decomposed import (
    MANIFEST_NAME,
    PREAMBLE_NAME,
    DecomposedStore,
    StoreSnapshot,
    is_managed_path,
    render_manifest,
    write_file_atomic,
)

_MAX_WORKERS = 8


@dataclass
class Decomposition:
    """A working dictionary split into records with their identities and paths."""

    decoded: DecodedDictionary
    resolved: ResolvedRecords
    paths: Dict[str, PurePosixPath] = field(default_factory=dict)

    @property
    def preamble(self) -> str:
        return self.decoded.preamble

    @property
    def order(self) -> List[str]:
        return self.resolved.order

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return sort_diagnostics([*self.decoded.diagnostics, *self.resolved.diagnostics])

    def files(self) -> Dict[PurePosixPath, str]:
        return {self.paths[identity.key]: record.text for record, identity in self.resolved.entries}


@dataclass
class DictionaryStatus:
    """Outcome of :meth:`Synchronizer.status` for one dictionary."""

    spec: DictionarySpec
    working_exists: bool
    changes: List[Change] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    preamble: str = ""
    manifest_changed: bool = False
    preamble_changed: bool = False
    staged: List[StatusEntry] = field(default_factory=list)
    external: List[StatusEntry] = field(default_factory=list)
    duplicates: Dict[str, List[Record]] = field(default_factory=dict)

    @property
    def stats(self) -> DiffStats:
        return DiffStats.from_changes(self.changes)

    @property
    def pending(self) -> List[Change]:
        return [change for change in self.changes if change.kind is not ChangeKind.UNCHANGED]

    @property
    def has_errors(self) -> bool:
        return any(diagnostic.is_error for diagnostic in self.diagnostics)

    @property
    def is_clean(self) -> bool:
        return not self.pending and not self.manifest_changed and not self.preamble_changed

    def changes_of(self, kind: ChangeKind) -> List[Change]:
        return [change for change in self.changes if change.kind is kind]


@dataclass
class StageResult:
    status: DictionaryStatus
    written: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.written or self.removed)


@dataclass
class RecomposeResult:
    spec: DictionarySpec
    text: str
    order: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class ResetResult:
    recomposed: RecomposeResult
    written: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


@dataclass
class StagedCheck:
    """Comparison of a working dictionary with the decomposed tree in the index."""

    spec: DictionarySpec
    differing: List[str] = field(default_factory=list)
    manifest_differs: bool = False
    preamble_differs: bool = False
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not (
            self.differing
            or self.manifest_differs
            or self.preamble_differs
            or any(diagnostic.is_error for diagnostic in self.diagnostics)
        )


class Synchronizer:
    """Runs status, stage, reset and recompose for configured dictionaries."""

    def __init__(
        self,
        root: Path,
        git: GitRepository | None = None,
        *,
        workers: int | None = None,
    ) -> None:
        self.root = root
        self.git = git or GitRepository(root)
        self.workers = workers or min(_MAX_WORKERS, os.cpu_count() or 1)
        self.logger = get_logger("synchronizer")

    def store_for(self, spec: DictionarySpec) -> DecomposedStore:
        return DecomposedStore.for_dictionary(self.root, spec)

    # ------------------------------------------------------------------
    # Decomposition

    def read_working(self, spec: DictionarySpec) -> Optional[str]:
        """Return the working dictionary text, or ``None`` when the file is absent."""
        path = spec.working_file(self.root)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Cannot read {spec.path}: {exc}") from exc
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInput(f"{spec.path} is not valid UTF-8: {exc}") from exc

    def decompose(self, spec: DictionarySpec, text: str) -> Decomposition:
        decoded = decode(text, spec.record_tag, strict=False)
        with self._executor() as executor:
            resolved = assign_identities(decoded.records, spec, executor=executor)
        paths = {
            identity.key: shard_path(identity, spec.layout) for _, identity in resolved.entries
        }
        return Decomposition(decoded=decoded, resolved=resolved, paths=paths)

    # ------------------------------------------------------------------
    # Status

    def status(self, spec: DictionarySpec) -> DictionaryStatus:
        """Classify every identity of ``spec`` without writing anything."""
        text = self.read_working(spec)
        git_entries = self.git.status(spec.contents_path)
        staged = [entry for entry in git_entries if entry.staged]
        external = [
            entry
            for entry in git_entries
            if entry.changed_in_worktree and self._is_store_path(entry.path, spec)
        ]

        if text is None:
            missing = Diagnostic(
                code="missing-working-file",
                message=f"working dictionary {spec.path} does not exist",
            )
            return DictionaryStatus(
                spec=spec,
                working_exists=False,
                diagnostics=[missing],
                staged=staged,
                external=external,
            )

        decomposition = self.decompose(spec, text)
        snapshot = self.store_for(spec).snapshot()
        changes = self._classify(decomposition, snapshot)
        manifest = snapshot.manifest
        diagnostics = decomposition.diagnostics
        if manifest.exists and not manifest.valid:
            diagnostics.append(_invalid_manifest(spec))

        status = DictionaryStatus(
            spec=spec,
            working_exists=True,
            changes=changes,
            diagnostics=diagnostics,
            order=decomposition.order,
            preamble=decomposition.preamble,
            manifest_changed=not manifest.exists or not manifest.valid or manifest.order != decomposition.order,
            preamble_changed=snapshot.preamble != decomposition.preamble,
            staged=staged,
            external=external,
            duplicates=decomposition.resolved.duplicates,
        )
        self.logger.debug("Status of %s: %s", spec.name, status.stats)
        return status

    def _classify(self, decomposition: Decomposition, snapshot: StoreSnapshot) -> List[Change]:
        stored = snapshot.paths_by_key()

        def classify(item: Tuple[Record, Identity]) -> Change:
            record, identity = item
            target = decomposition.paths[identity.key]
            existing = stored.get(identity.key, [])
            stale = tuple(path for path in existing if path != target)
            if target not in existing:
                kind = ChangeKind.MODIFIED if existing else ChangeKind.ADDED
            elif stale or _digest(snapshot.entries[target]) != record.digest:
                kind = ChangeKind.MODIFIED
            else:
                kind = ChangeKind.UNCHANGED
            return Change(kind=kind, identity=identity, path=target, record=record, stale_paths=stale)

        with self._executor() as executor:
            entries = decomposition.resolved.entries
            if executor is None:
                changes = [classify(item) for item in entries]
            else:
                changes = list(executor.map(classify, entries))

        working_keys = set(decomposition.paths)
        deleted: List[Change] = []
        for key, paths in stored.items():
            if key in working_keys:
                continue
            deleted.append(
                Change(
                    kind=ChangeKind.DELETED,
                    identity=snapshot.identities[paths[0]],
                    path=paths[0],
                    stale_paths=tuple(paths[1:]),
                )
            )
        deleted.sort(key=lambda change: path_sort_key(change.path))
        return changes + deleted

    # ------------------------------------------------------------------
    # Stage

    def stage(
        self,
        spec: DictionarySpec,
        *,
        discard_external_changes: bool = False,
    ) -> StageResult:
        """Write the working dictionary into its decomposed tree and add it to the index.

        Every check runs before the first write: duplicate identities, other
        identity or structural errors and conflicting external edits abort the
        whole dictionary.
        """
        status = self.status(spec)
        if not status.working_exists:
            raise StageRefused(f"Cannot stage {spec.name}: {spec.path} does not exist", status.diagnostics)
        if status.duplicates:
            keys = ", ".join(sorted(status.duplicates))
            duplicates = [d for d in status.diagnostics if d.code == "duplicate-identity"]
            raise DuplicateIdentity(f"{spec.name}: duplicate identities {keys}", duplicates)
        errors = [diagnostic for diagnostic in status.diagnostics if diagnostic.is_error]
        if errors:
            raise StageRefused(f"{spec.name} has {len(errors)} error(s); nothing was staged", errors)

        writes: Dict[PurePosixPath, str] = {}
        removes: List[PurePosixPath] = []
        for change in status.pending:
            if change.kind is ChangeKind.DELETED:
                removes.append(change.path)
            elif change.record is not None:
                writes[change.path] = change.record.text
            removes.extend(change.stale_paths)
        if status.manifest_changed:
            writes[PurePosixPath(MANIFEST_NAME)] = render_manifest(status.order)
        if status.preamble_changed:
            if status.preamble:
                writes[PurePosixPath(PREAMBLE_NAME)] = status.preamble
            else:
                removes.append(PurePosixPath(PREAMBLE_NAME))

        targets = {self._repo_path(spec, path) for path in [*writes, *removes]}
        conflicts = sorted(entry.path for entry in status.external if entry.path in targets)
        if conflicts and not discard_external_changes:
            raise ExternalChangesPending(
                f"{len(conflicts)} file(s) in {spec.contents_path} were edited outside git-toolbox",
                conflicts,
            )
        if conflicts:
            self.logger.warning("Discarding external changes to %d file(s)", len(conflicts))

        store = self.store_for(spec)
        store.apply(writes, removes)

        written = sorted(self._repo_path(spec, path) for path in writes)
        removed = sorted(self._repo_path(spec, path) for path in removes)
        resync = [entry.path for entry in status.external if entry.path not in targets]
        to_add = written + [path for path in resync if (self.root / path).exists()]
        to_remove = removed + [path for path in resync if not (self.root / path).exists()]
        self.git.add(sorted(set(to_add)))
        self.git.remove_cached(sorted(set(to_remove)))

        if written or removed:
            self.logger.info("Staged %s: %s", spec.name, status.stats)
        else:
            self.logger.info("%s is already staged", spec.name)
        return StageResult(status=status, written=written, removed=removed)

    # ------------------------------------------------------------------
    # Recompose, show and reset

    def recompose(self, spec: DictionarySpec, snapshot: StoreSnapshot) -> RecomposeResult:
        """Rebuild monolithic text from a snapshot, following its manifest."""
        by_key = snapshot.paths_by_key()
        diagnostics: List[Diagnostic] = []
        manifest = snapshot.manifest
        if manifest.exists and not manifest.valid:
            diagnostics.append(_invalid_manifest(spec))

        chunks = [snapshot.preamble]
        order: List[str] = []
        emitted: Set[str] = set()
        for key in manifest.order:
            if key in emitted:
                continue
            paths = by_key.get(key)
            if not paths:
                diagnostics.append(
                    Diagnostic(
                        code="stale-manifest-entry",
                        message=f"manifest lists '{key}' but {spec.contents_path} has no entry for it",
                        severity=Severity.WARNING,
                        identity=key,
                    )
                )
                continue
            emitted.add(key)
            chunks.append(snapshot.entries[paths[0]])
            order.append(key)

        unlisted = sorted(
            (paths[0] for key, paths in by_key.items() if key not in emitted),
            key=path_sort_key,
        )
        for path in unlisted:
            chunks.append(snapshot.entries[path])
            order.append(snapshot.identities[path].key)
        if unlisted:
            self.logger.info(
                "Appended %d entr%s missing from the %s manifest",
                len(unlisted),
                "y" if len(unlisted) == 1 else "ies",
                spec.name,
            )

        return RecomposeResult(spec=spec, text=join_chunks(chunks), order=order, diagnostics=diagnostics)

    def show(self, spec: DictionarySpec, rev: Optional[str] = None) -> RecomposeResult:
        """Recompose ``spec`` from the index (``rev=None``) or a revision."""
        snapshot = self.baseline_snapshot(spec, rev)
        return self.recompose(spec, snapshot)

    def baseline_snapshot(self, spec: DictionarySpec, rev: Optional[str] = "HEAD") -> StoreSnapshot:
        return self._read_baseline(spec, rev)[1]

    def _read_baseline(
        self, spec: DictionarySpec, rev: Optional[str]
    ) -> Tuple[Dict[str, str], StoreSnapshot]:
        if rev is not None and not self.git.has_revision(rev):
            raise BaselineMissing(f"Revision {rev} does not exist")
        files = {
            name: text
            for name, text in self.git.read_snapshot(spec.contents_path, rev).items()
            if is_managed_path(name, spec)
        }
        snapshot = StoreSnapshot.from_files(files, spec)
        if snapshot.is_empty:
            where = "the index" if rev is None else rev
            raise BaselineMissing(f"{where} holds no decomposed tree for {spec.name}")
        return files, snapshot

    def recompose_working_tree(self, spec: DictionarySpec) -> Optional[RecomposeResult]:
        """Recompose from the decomposed tree on disk; ``None`` if there is none."""
        store = self.store_for(spec)
        if not store.exists():
            return None
        snapshot = store.snapshot()
        if snapshot.is_empty:
            return None
        return self.recompose(spec, snapshot)

    def write_working(self, spec: DictionarySpec, text: str) -> None:
        path = spec.working_file(self.root)
        try:
            write_file_atomic(path, text)
        except OSError as exc:
            raise StoreError(f"Cannot write {spec.path}: {exc}") from exc

    def reset(self, spec: DictionarySpec) -> ResetResult:
        """Restore the working file and decomposed tree to HEAD.

        Uncommitted edits to the working dictionary and staged entry changes
        are lost.
        """
        baseline_files, snapshot = self._read_baseline(spec, "HEAD")
        recomposed = self.recompose(spec, snapshot)

        store = self.store_for(spec)
        current = store.managed_files()
        writes = {
            PurePosixPath(name): text
            for name, text in baseline_files.items()
            if current.get(name) != text
        }
        removes = [PurePosixPath(name) for name in sorted(current) if name not in baseline_files]

        self.git.unstage(spec.contents_path)
        store.apply(writes, removes)
        self.write_working(spec, recomposed.text)
        self.logger.info("Reset %s to HEAD (%d entries)", spec.name, len(recomposed.order))
        return ResetResult(
            recomposed=recomposed,
            written=sorted(self._repo_path(spec, path) for path in writes),
            removed=sorted(self._repo_path(spec, path) for path in removes),
        )

    # ------------------------------------------------------------------
    # Index consistency

    def check_staged(self, spec: DictionarySpec) -> Optional[StagedCheck]:
        """Compare the working dictionary with the index; ``None`` if it is absent."""
        text = self.read_working(spec)
        if text is None:
            return None
        decomposition = self.decompose(spec, text)
        staged = StoreSnapshot.from_files(self.git.read_snapshot(spec.contents_path, None), spec)

        desired = decomposition.files()
        differing: List[str] = []
        for record, identity in decomposition.resolved.entries:
            path = decomposition.paths[identity.key]
            if staged.entries.get(path) != record.text:
                differing.append(identity.key)
        for path, identity in sorted(staged.identities.items(), key=lambda item: path_sort_key(item[0])):
            if path not in desired and identity.key not in differing:
                differing.append(identity.key)

        manifest = staged.manifest
        return StagedCheck(
            spec=spec,
            differing=differing,
            manifest_differs=not manifest.exists or not manifest.valid or manifest.order != decomposition.order,
            preamble_differs=staged.preamble != decomposition.preamble,
            diagnostics=[d for d in decomposition.diagnostics if d.is_error],
        )

    # ------------------------------------------------------------------
    # Helpers

    @contextmanager
    def _executor(self) -> Iterator[Optional[Executor]]:
        if self.workers <= 1:
            yield None
            return
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="git-toolbox") as pool:
            yield pool

    @staticmethod
    def _repo_path(spec: DictionarySpec, path: PurePosixPath) -> str:
        return f"{spec.contents_path}/{path.as_posix()}"

    @staticmethod
    def _is_store_path(repo_path: str, spec: DictionarySpec) -> bool:
        base = spec.contents_path + "/"
        if not repo_path.startswith(base):
            return False
        return is_managed_path(repo_path[len(base):], spec)


def _digest(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def _invalid_manifest(spec: DictionarySpec) -> Diagnostic:
    return Diagnostic(
        code="invalid-manifest",
        message=f"{spec.contents_path}/{MANIFEST_NAME} is unreadable; entries fall back to path order",
        severity=Severity.WARNING,
    )


__all__ = [
    "Decomposition",
    "DictionaryStatus",
    "RecomposeResult",
    "ResetResult",
    "StageResult",
    "StagedCheck",
    "Synchronizer",
]
