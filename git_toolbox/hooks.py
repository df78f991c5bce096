"""Callbacks run from git's post-checkout, post-merge and pre-commit hooks."""

from __future__ import annotations

import shutil
from typing import List, Sequence

from .config import DictionarySpec
from .errors import DivergenceError, StoreError
from .logging import get_logger
from .models import Diagnostic
from .synchronizer import RecomposeResult, StagedCheck, Synchronizer

BACKUP_SUFFIX = ".orig"


class Hooks:
    """Re-derives all state from disk on every event; hooks get no payload."""

    def __init__(
        self,
        synchronizer: Synchronizer,
        specs: Sequence[DictionarySpec],
        *,
        backup: bool = True,
    ) -> None:
        self.synchronizer = synchronizer
        self.specs = list(specs)
        self.backup = backup
        self.logger = get_logger("hooks")

    def on_checkout_or_merge(self) -> List[RecomposeResult]:
        """Rebuild every working dictionary from its checked-out decomposed tree."""
        results: List[RecomposeResult] = []
        for spec in self.specs:
            result = self.synchronizer.recompose_working_tree(spec)
            if result is None:
                self.logger.debug("No decomposed tree for %s; skipping", spec.name)
                continue
            current = self.synchronizer.read_working(spec)
            if current == result.text:
                self.logger.debug("%s already matches its decomposed tree", spec.name)
            else:
                if current is not None and self.backup:
                    self._backup(spec)
                self.synchronizer.write_working(spec, result.text)
                self.logger.info("Recomposed %s (%d entries)", spec.path, len(result.order))
            for diagnostic in result.diagnostics:
                self.logger.warning("%s: %s", spec.name, diagnostic)
            results.append(result)
        return results

    def on_pre_commit(self) -> List[StagedCheck]:
        """Fail when a working dictionary differs from its staged decomposition."""
        checks: List[StagedCheck] = []
        failures: List[StagedCheck] = []
        for spec in self.specs:
            check = self.synchronizer.check_staged(spec)
            if check is None:
                self.logger.debug("%s has no working file; skipping", spec.name)
                continue
            checks.append(check)
            if not check.consistent:
                failures.append(check)
        if failures:
            raise DivergenceError(_describe(failures), _collect(failures))
        return checks

    def _backup(self, spec: DictionarySpec) -> None:
        source = spec.working_file(self.synchronizer.root)
        target = source.with_name(source.name + BACKUP_SUFFIX)
        try:
            shutil.copy2(source, target)
        except OSError as exc:
            raise StoreError(f"Cannot back up {spec.path} to {target.name}: {exc}") from exc
        self.logger.info("Saved previous %s as %s", spec.path, target.name)


def _describe(failures: Sequence[StagedCheck]) -> str:
    lines = ["Working dictionaries differ from their staged decomposition:"]
    for check in failures:
        reasons: List[str] = []
        if check.differing:
            shown = ", ".join(check.differing[:8])
            more = f" (+{len(check.differing) - 8} more)" if len(check.differing) > 8 else ""
            reasons.append(f"entries {shown}{more}")
        if check.manifest_differs:
            reasons.append("record order")
        if check.preamble_differs:
            reasons.append("preamble")
        if any(diagnostic.is_error for diagnostic in check.diagnostics):
            reasons.append(f"{len(check.diagnostics)} unresolved error(s)")
        lines.append(f"  {check.spec.path}: " + "; ".join(reasons))
    lines.append("Run `git-toolbox stage` and retry the commit.")
    return "\n".join(lines)


def _collect(failures: Sequence[StagedCheck]) -> List[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    for check in failures:
        diagnostics.extend(check.diagnostics)
    return diagnostics


__all__ = ["BACKUP_SUFFIX", "Hooks"]
