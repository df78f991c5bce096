"""Exception hierarchy raised by the git-toolbox core."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import Diagnostic


class ToolboxError(RuntimeError):
    """Base error; carries the diagnostics that explain the failure."""

    def __init__(self, message: str, diagnostics: Optional[Iterable[Diagnostic]] = None) -> None:
        super().__init__(message)
        self.diagnostics: List[Diagnostic] = list(diagnostics or [])


class MalformedInput(ToolboxError):
    """The monolithic text cannot be split into records."""


class IdentityError(ToolboxError):
    """A record's canonical identity could not be derived."""

    code = "identity-error"


class MissingIdentityField(IdentityError):
    code = "missing-identity-field"


class IdentityPatternMismatch(IdentityError):
    code = "identity-pattern-mismatch"


class IdentityPatternIncomplete(IdentityError):
    code = "identity-pattern-incomplete"


class MissingRecordLabel(IdentityError):
    code = "missing-record-label"


class DuplicateIdentity(ToolboxError):
    """Two working records resolve to the same canonical identity."""


class StageRefused(ToolboxError):
    """Structural or identity errors block staging a dictionary."""


class ExternalChangesPending(ToolboxError):
    """Entry files were edited outside git-toolbox and would be overwritten."""

    def __init__(self, message: str, paths: Iterable[str]) -> None:
        super().__init__(message)
        self.paths: List[str] = list(paths)


class StoreError(ToolboxError):
    """Reading or writing the decomposed tree failed."""


class GitError(ToolboxError):
    """A git command failed or no repository was found."""


class BaselineMissing(ToolboxError):
    """The requested revision holds no decomposed snapshot of the dictionary."""


class DivergenceError(ToolboxError):
    """The working dictionary and the staged decomposed tree disagree."""


__all__ = [
    "BaselineMissing",
    "DivergenceError",
    "DuplicateIdentity",
    "ExternalChangesPending",
    "GitError",
    "IdentityError",
    "IdentityPatternIncomplete",
    "IdentityPatternMismatch",
    "MalformedInput",
    "MissingIdentityField",
    "MissingRecordLabel",
    "StageRefused",
    "StoreError",
    "ToolboxError",
]
