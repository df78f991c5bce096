"""CLI entrypoints for git-toolbox commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Sequence

from .config import CONFIG_FILENAME, ConfigError, ToolboxConfig, load_config
from .errors import (
    DivergenceError,
    ExternalChangesPending,
    GitError,
    ToolboxError,
)
from .git.repository import GitRepository
from .hooks import Hooks
from .logging import configure_logging, get_logger
from .report import MAX_TO_SHOW, render_sample_config, render_status
from .synchronizer import Synchronizer

HOOK_EVENTS = ("post-checkout", "post-merge", "pre-commit")

logger = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity and list every change and issue.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_dictionary_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "dictionaries",
        nargs="*",
        metavar="DICT",
        help="Dictionary names or paths from git-toolbox.yml (defaults to all).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-toolbox",
        description="Track Toolbox dictionaries in git as one file per record.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-C",
        "--repo",
        default=".",
        help="Run as if started in this directory (defaults to the current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log output to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help=f"Write a commented {CONFIG_FILENAME} to the repository root.",
    )
    _add_verbose_option(init_parser, suppress_default=True)

    status_parser = subparsers.add_parser(
        "status",
        help="Show how working dictionaries differ from their decomposed trees.",
    )
    _add_verbose_option(status_parser, suppress_default=True)
    _add_dictionary_argument(status_parser)

    stage_parser = subparsers.add_parser(
        "stage",
        help="Decompose working dictionaries and add the changed entries to the index.",
    )
    _add_verbose_option(stage_parser, suppress_default=True)
    _add_dictionary_argument(stage_parser)
    stage_parser.add_argument(
        "--discard-external-changes",
        action="store_true",
        help="Overwrite entry files that were edited outside git-toolbox.",
    )

    reset_parser = subparsers.add_parser(
        "reset",
        help="Restore working dictionaries and decomposed trees to HEAD (destructive).",
    )
    _add_verbose_option(reset_parser, suppress_default=True)
    _add_dictionary_argument(reset_parser)
    reset_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Discard uncommitted dictionary edits and staged entry changes.",
    )

    show_parser = subparsers.add_parser(
        "show",
        help="Print a dictionary recomposed from a revision or the index.",
    )
    _add_verbose_option(show_parser, suppress_default=True)
    show_parser.add_argument(
        "pathspec",
        help="[REV:]PATH; REV defaults to HEAD and an empty REV means the index.",
    )

    hook_parser = subparsers.add_parser(
        "hook",
        help="Entry point for git hooks.",
    )
    _add_verbose_option(hook_parser, suppress_default=True)
    hook_parser.add_argument("event", choices=HOOK_EVENTS)
    hook_parser.add_argument("hook_args", nargs="*", help=argparse.SUPPRESS)
    hook_parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Do not keep a .orig copy of working dictionaries replaced on checkout.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for git-toolbox commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    verbose = bool(args.verbose)
    configure_logging(
        verbose=verbose,
        quiet=args.command == "hook",
        log_file=args.log_file,
    )
    start = Path(args.repo)

    if args.command == "init":
        _run_init(parser, start)
        return

    try:
        repository = GitRepository.discover(start)
        config = load_config(repository.root)
    except (GitError, ConfigError) as exc:
        parser.exit(1, f"git-toolbox: {exc}\n")
    if not config.dictionaries:
        parser.exit(1, f"git-toolbox: no dictionaries configured in {CONFIG_FILENAME}\n")

    synchronizer = Synchronizer(repository.root, repository, workers=config.workers)

    try:
        if args.command == "status":
            _run_status(config, synchronizer, args.dictionaries, verbose=verbose)
        elif args.command == "stage":
            _run_stage(
                config,
                synchronizer,
                args.dictionaries,
                discard_external_changes=bool(args.discard_external_changes),
            )
        elif args.command == "reset":
            if not _run_reset(config, synchronizer, args.dictionaries, force=bool(args.force), verbose=verbose):
                parser.exit(1, "Nothing was reset. Rerun with --force to discard these changes.\n")
        elif args.command == "show":
            _run_show(parser, config, synchronizer, args.pathspec)
        elif args.command == "hook":
            _run_hook(config, synchronizer, args.event, backup=not args.no_backup)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except DivergenceError as exc:
        parser.exit(1, f"{exc}\n")
    except ExternalChangesPending as exc:
        listing = "\n".join(f"        {path}" for path in _limit(exc.paths, verbose))
        parser.exit(
            1,
            f"git-toolbox {args.command} failed: {exc}\n{listing}\n"
            "Rerun with --discard-external-changes to overwrite them.\n",
        )
    except (ToolboxError, ConfigError) as exc:
        parser.exit(1, _failure(args.command, exc, verbose=verbose))


def _run_init(parser: argparse.ArgumentParser, start: Path) -> None:
    try:
        root = GitRepository.discover(start).root
    except GitError:
        root = start
    target = root / CONFIG_FILENAME
    if target.exists():
        parser.exit(1, f"{_relativize(target)} already exists\n")
    try:
        target.write_text(render_sample_config(), encoding="utf-8")
    except OSError as exc:
        parser.exit(1, f"git-toolbox init failed: cannot write {_relativize(target)}: {exc}\n")
    print(f"Configuration template written to {_relativize(target)}")


def _run_status(
    config: ToolboxConfig,
    synchronizer: Synchronizer,
    selectors: Sequence[str],
    *,
    verbose: bool,
) -> None:
    statuses = [synchronizer.status(spec) for spec in config.select(selectors)]
    sys.stdout.write(render_status(statuses, verbose=verbose))


def _run_stage(
    config: ToolboxConfig,
    synchronizer: Synchronizer,
    selectors: Sequence[str],
    *,
    discard_external_changes: bool,
) -> None:
    for spec in config.select(selectors):
        result = synchronizer.stage(spec, discard_external_changes=discard_external_changes)
        if result.changed:
            print(f"{spec.path}: staged {result.status.stats}")
        else:
            print(f"{spec.path}: nothing to stage")


def _run_reset(
    config: ToolboxConfig,
    synchronizer: Synchronizer,
    selectors: Sequence[str],
    *,
    force: bool,
    verbose: bool,
) -> bool:
    specs = config.select(selectors)
    if not force:
        statuses = [synchronizer.status(spec) for spec in specs]
        at_risk = [status for status in statuses if not status.is_clean or status.staged]
        if at_risk:
            sys.stdout.write(render_status(at_risk, verbose=verbose))
            return False
    for spec in specs:
        result = synchronizer.reset(spec)
        print(f"{spec.path}: reset to HEAD ({len(result.recomposed.order)} entries)")
        for diagnostic in result.recomposed.diagnostics:
            logger.warning("%s: %s", spec.name, diagnostic)
    return True


def _run_show(
    parser: argparse.ArgumentParser,
    config: ToolboxConfig,
    synchronizer: Synchronizer,
    pathspec: str,
) -> None:
    rev, path = _parse_pathspec(pathspec)
    spec = config.find_by_path(path)
    if spec is None:
        parser.exit(1, f"git-toolbox: {path} is not a configured dictionary\n")
    result = synchronizer.show(spec, rev)
    for diagnostic in result.diagnostics:
        logger.warning("%s: %s", spec.name, diagnostic)
    sys.stdout.write(result.text)


def _run_hook(
    config: ToolboxConfig,
    synchronizer: Synchronizer,
    event: str,
    *,
    backup: bool,
) -> None:
    hooks = Hooks(synchronizer, config.dictionaries, backup=backup)
    if event == "pre-commit":
        hooks.on_pre_commit()
    else:
        hooks.on_checkout_or_merge()


def _parse_pathspec(pathspec: str) -> tuple[str | None, str]:
    """Split ``[rev:]path``; no colon means HEAD and an empty rev means the index."""
    if ":" not in pathspec:
        return "HEAD", pathspec
    rev, _, path = pathspec.partition(":")
    return (rev or None), path


def _failure(command: str, exc: Exception, *, verbose: bool) -> str:
    lines = [f"git-toolbox {command} failed: {exc}"]
    diagnostics = getattr(exc, "diagnostics", [])
    for diagnostic in _limit(diagnostics, verbose):
        lines.append(f"        {diagnostic}")
    if not verbose:
        if len(diagnostics) > MAX_TO_SHOW:
            lines.append(f"        ... ({len(diagnostics) - MAX_TO_SHOW} more)")
        lines.append("Run with --verbose for more details.")
    return "\n".join(lines) + "\n"


def _limit(items: Sequence, verbose: bool) -> List:
    return list(items) if verbose else list(items)[:MAX_TO_SHOW]


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
