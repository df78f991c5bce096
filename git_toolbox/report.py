"""Render human-readable reports with Jinja templates."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Sequence

from jinja2 import Environment, FileSystemLoader

from .config import DictionarySpec, ShardLayout
from .git.repository import StatusEntry
from .synchronizer import DictionaryStatus

MAX_TO_SHOW = 8

_STATUS_LABELS = {
    "A": "new file:",
    "M": "modified:",
    "D": "deleted:",
    "R": "renamed:",
    "?": "untracked:",
}


def _environment(templates_dir: Path | None = None) -> Environment:
    directory = templates_dir or Path(__file__).with_name("templates")
    return Environment(
        loader=FileSystemLoader(str(directory)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def render_status(statuses: Sequence[DictionaryStatus], *, verbose: bool = False) -> str:
    """Render the ``git-toolbox status`` report."""
    context = [_status_context(status, verbose=verbose) for status in statuses]
    template = _environment().get_template("status.j2")
    return template.render(dictionaries=context)


def render_sample_config(
    dictionaries: Sequence[DictionarySpec] = (),
    layout: ShardLayout | None = None,
) -> str:
    """Render a commented git-toolbox.yml."""
    entries = [
        {
            "name": spec.name,
            "path": spec.path,
            "record_tag": spec.record_tag,
            "unique_id": spec.unique_id,
            "id_tag": spec.id_tag,
            "id_pattern": spec.pattern.pattern if spec.pattern is not None else "",
        }
        for spec in dictionaries
    ]
    template = _environment().get_template("config.yml.j2")
    return template.render(dictionaries=entries, layout=layout or ShardLayout())


def _status_context(status: DictionaryStatus, *, verbose: bool) -> Dict[str, Any]:
    limit = None if verbose else MAX_TO_SHOW
    diagnostics = [str(diagnostic) for diagnostic in status.diagnostics]
    changes = [
        {"kind": change.kind.value, "identity": change.identity.key, "path": change.path.as_posix()}
        for change in status.pending
    ]
    staged = [_describe_entry(entry, entry.index) for entry in status.staged]
    external = [_describe_entry(entry, entry.worktree) for entry in status.external]
    return {
        "name": status.spec.name,
        "path": status.spec.path,
        "stats": str(status.stats),
        "working_exists": status.working_exists,
        "order_changed": status.working_exists
        and (status.manifest_changed or status.preamble_changed),
        "diagnostics": _take(diagnostics, limit),
        "hidden_diagnostics": _hidden(diagnostics, limit),
        "changes": _take(changes, limit),
        "hidden_changes": _hidden(changes, limit),
        "staged": _take(staged, limit),
        "hidden_staged": _hidden(staged, limit),
        "external": _take(external, limit),
        "hidden_external": _hidden(external, limit),
    }


def _describe_entry(entry: StatusEntry, code: str) -> str:
    label = _STATUS_LABELS.get(code, f"{code}:")
    return f"{label:<10} {entry.path}"


def _take(items: List[Any], limit: int | None) -> List[Any]:
    return items if limit is None else items[:limit]


def _hidden(items: List[Any], limit: int | None) -> int:
    return 0 if limit is None else max(len(items) - limit, 0)


__all__ = ["MAX_TO_SHOW", "render_sample_config", "render_status"]
