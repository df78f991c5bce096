"""Map canonical identities to fixed-depth entry paths and back."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional, Tuple

from ..config import DictionarySpec, ShardLayout
from ..models import Identity

PUBLIC_DIR = "public"
PRIVATE_DIR = "private"
SEGMENT_WIDTH = 2


def shard_segments(key: str, layout: ShardLayout) -> Tuple[str, str]:
    """Return the two directory segments for ``key``.

    Only letters and digits feed the segments. All-digit keys are zero-filled
    to ``layout.numeric_width`` first, so ``15`` lands in ``01/5_``.
    """
    chars = "".join(char for char in key if char.isalnum())
    if chars.isdigit() and len(chars) < layout.numeric_width:
        chars = chars.zfill(layout.numeric_width)
    padded = chars[: SEGMENT_WIDTH * 2].ljust(SEGMENT_WIDTH * 2, layout.placeholder)
    if layout.lowercase:
        padded = padded.lower()
    return padded[:SEGMENT_WIDTH], padded[SEGMENT_WIDTH:]


def shard_path(identity: Identity, layout: ShardLayout) -> PurePosixPath:
    """Relative path of the entry file for ``identity`` inside the contents root."""
    first, second = shard_segments(identity.key, layout)
    leaf = identity.key + layout.extension
    if identity.is_label:
        return PurePosixPath(first, second, leaf)
    if identity.is_private:
        return PurePosixPath(PRIVATE_DIR, identity.namespace or "", first, second, leaf)
    return PurePosixPath(PUBLIC_DIR, first, second, leaf)


def identity_from_path(path: PurePosixPath, spec: DictionarySpec) -> Optional[Identity]:
    """Recover the identity an entry path encodes, or ``None`` if it is not an entry."""
    extension = spec.layout.extension
    if not path.name.endswith(extension) or path.name.startswith("."):
        return None
    stem = path.name[: -len(extension)]
    if not stem:
        return None
    parts = path.parts

    if not spec.unique_id:
        if len(parts) != 3 or parts[0] in {PUBLIC_DIR, PRIVATE_DIR}:
            return None
        return Identity(id=stem)

    if parts[0] == PUBLIC_DIR and len(parts) == 4:
        return Identity(id=stem, namespace="")
    if parts[0] == PRIVATE_DIR and len(parts) == 5:
        namespace = parts[1]
        if stem.startswith(namespace) and len(stem) > len(namespace):
            return Identity(id=stem[len(namespace):], namespace=namespace)
    return None


def path_sort_key(path: PurePosixPath) -> str:
    return path.as_posix()


__all__ = [
    "PRIVATE_DIR",
    "PUBLIC_DIR",
    "identity_from_path",
    "path_sort_key",
    "shard_path",
    "shard_segments",
]
