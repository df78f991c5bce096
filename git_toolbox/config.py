"""Configuration loading for git-toolbox (git-toolbox.yml)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Pattern, Sequence, Union

import yaml

CONFIG_FILENAME = "git-toolbox.yml"
CONTENTS_SUFFIX = ".contents"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or is invalid."""


@dataclass(frozen=True)
class ShardLayout:
    """Conventions used to derive directory segments from an identity."""

    placeholder: str = "_"
    numeric_width: int = 3
    lowercase: bool = False
    extension: str = ".txt"

    def __post_init__(self) -> None:
        if len(self.placeholder) != 1 or self.placeholder in "/\\.":
            raise ConfigError(f"Invalid shard placeholder {self.placeholder!r}")
        if self.numeric_width < 0:
            raise ConfigError("shard numeric-width must not be negative")
        if not self.extension.startswith("."):
            raise ConfigError(f"Invalid entry extension {self.extension!r}")


@dataclass(frozen=True)
class DictionarySpec:
    """Immutable description of one managed dictionary."""

    name: str
    path: str
    record_tag: str
    unique_id: bool = False
    id_tag: Optional[str] = None
    id_pattern: Union[Pattern[str], str, None] = None
    layout: ShardLayout = field(default_factory=ShardLayout)

    def __post_init__(self) -> None:
        object.__setattr__(self, "record_tag", _strip_marker(self.record_tag))
        if self.id_tag is not None:
            object.__setattr__(self, "id_tag", _strip_marker(self.id_tag))
        if isinstance(self.id_pattern, str):
            object.__setattr__(self, "id_pattern", _compile_pattern(self.name, self.id_pattern))
        if not self.record_tag:
            raise ConfigError(f"Dictionary '{self.name}' needs a record-tag")
        if not self.path:
            raise ConfigError(f"Dictionary '{self.name}' needs a path")
        if self.unique_id and (not self.id_tag or self.id_pattern is None):
            raise ConfigError(
                f"Dictionary '{self.name}' uses unique ids and needs both id-tag and id-pattern"
            )

    @property
    def record_marker(self) -> str:
        return "\\" + self.record_tag

    @property
    def id_marker(self) -> Optional[str]:
        return "\\" + self.id_tag if self.id_tag else None

    @property
    def pattern(self) -> Optional[Pattern[str]]:
        return self.id_pattern if not isinstance(self.id_pattern, str) else None

    @property
    def contents_path(self) -> str:
        """Repository-relative POSIX path of the decomposed tree."""
        return str(PurePosixPath(self.path)) + CONTENTS_SUFFIX

    def working_file(self, root: Path) -> Path:
        return root / PurePosixPath(self.path)

    def contents_root(self, root: Path) -> Path:
        return root / PurePosixPath(self.contents_path)

    def matches(self, selector: str) -> bool:
        normalised = selector.replace("\\", "/").strip("/")
        return selector == self.name or normalised == str(PurePosixPath(self.path))


@dataclass
class ToolboxConfig:
    """Represents the settings defined in git-toolbox.yml."""

    root: Path
    dictionaries: List[DictionarySpec] = field(default_factory=list)
    workers: Optional[int] = None
    layout: ShardLayout = field(default_factory=ShardLayout)

    def select(self, selectors: Sequence[str] | None = None) -> List[DictionarySpec]:
        """Return the dictionaries named by ``selectors`` (all when empty)."""
        if not selectors:
            return list(self.dictionaries)
        selected: List[DictionarySpec] = []
        for selector in selectors:
            matches = [spec for spec in self.dictionaries if spec.matches(selector)]
            if not matches:
                raise ConfigError(f"No dictionary named '{selector}' in {CONFIG_FILENAME}")
            for spec in matches:
                if spec not in selected:
                    selected.append(spec)
        return selected

    def find_by_path(self, path: str) -> Optional[DictionarySpec]:
        for spec in self.dictionaries:
            if spec.matches(path):
                return spec
        return None


def load_config(config_path: Path) -> ToolboxConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ToolboxConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    layout = _parse_layout(_as_dict(data.get("shard")), ShardLayout())
    workers = _as_int(data.get("workers"))
    if workers is not None and workers < 1:
        raise ConfigError("workers must be a positive integer")

    raw_dictionaries = data.get("dictionaries") or []
    if not isinstance(raw_dictionaries, list):
        raise ConfigError("dictionaries must be a list")

    dictionaries: List[DictionarySpec] = []
    for position, raw in enumerate(raw_dictionaries, start=1):
        if not isinstance(raw, dict):
            raise ConfigError(f"Dictionary entry #{position} must be a mapping")
        dictionaries.append(_parse_dictionary(raw, position, layout))

    _ensure_unique(dictionaries)
    return ToolboxConfig(root=root, dictionaries=dictionaries, workers=workers, layout=layout)


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _parse_dictionary(raw: Dict[str, Any], position: int, default_layout: ShardLayout) -> DictionarySpec:
    name = _as_str(raw.get("name")) or f"dictionary #{position}"
    path = _as_str(raw.get("path"))
    record_tag = _as_str(raw.get("record-tag"))
    if not path:
        raise ConfigError(f"Dictionary '{name}' is missing 'path'")
    if not record_tag:
        raise ConfigError(f"Dictionary '{name}' is missing 'record-tag'")

    unique_id = _as_bool(raw.get("unique-id"))
    if unique_id is None:
        unique_id = False
    layout = _parse_layout(_as_dict(raw.get("shard")), default_layout)

    return DictionarySpec(
        name=name,
        path=PurePosixPath(path.replace("\\", "/")).as_posix(),
        record_tag=record_tag,
        unique_id=unique_id,
        id_tag=_as_str(raw.get("id-tag")),
        id_pattern=_as_str(raw.get("id-pattern")),
        layout=layout,
    )


def _parse_layout(raw: Dict[str, Any], base: ShardLayout) -> ShardLayout:
    if not raw:
        return base
    placeholder = _as_str(raw.get("placeholder"))
    numeric_width = _as_int(raw.get("numeric-width"))
    lowercase = _as_bool(raw.get("lowercase"))
    return ShardLayout(
        placeholder=placeholder if placeholder is not None else base.placeholder,
        numeric_width=numeric_width if numeric_width is not None else base.numeric_width,
        lowercase=lowercase if lowercase is not None else base.lowercase,
        extension=base.extension,
    )


def _compile_pattern(name: str, pattern: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"Dictionary '{name}' has an invalid id-pattern: {exc}") from exc


def _strip_marker(tag: str) -> str:
    return tag.strip().lstrip("\\")


def _ensure_unique(dictionaries: Sequence[DictionarySpec]) -> None:
    names: set[str] = set()
    paths: set[str] = set()
    for spec in dictionaries:
        if spec.name in names:
            raise ConfigError(f"Duplicate dictionary name '{spec.name}'")
        if spec.path in paths:
            raise ConfigError(f"Dictionary path '{spec.path}' is configured twice")
        names.add(spec.name)
        paths.add(spec.path)


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return None


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DictionarySpec",
    "ShardLayout",
    "ToolboxConfig",
    "load_config",
]
