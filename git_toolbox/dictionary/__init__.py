"""Toolbox dictionary parsing, identity resolution and entry paths."""

from .codec import DecodedDictionary, decode, decode_record, encode
from .identity import IdentityResolver, ResolvedRecords, assign_identities, resolve, sanitize_label
from .shard import identity_from_path, shard_path, shard_segments

__all__ = [
    "DecodedDictionary",
    "IdentityResolver",
    "ResolvedRecords",
    "assign_identities",
    "decode",
    "decode_record",
    "encode",
    "identity_from_path",
    "resolve",
    "sanitize_label",
    "shard_path",
    "shard_segments",
]
